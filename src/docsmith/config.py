import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[2] / ".env")

GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-pro")

ORACLE_TIMEOUT_SECONDS = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "120"))
STEP_ATTEMPTS = int(os.getenv("STEP_ATTEMPTS", "1"))

MAX_SCAN_DEPTH = int(os.getenv("MAX_SCAN_DEPTH", "3"))
EXISTING_DOC_LIMIT = 5
EXISTING_DOC_PREVIEW = 500
MATERIAL_PREVIEW_LENGTH = 200

DEFAULT_AUDIENCE = "technical professionals"
DEFAULT_CONTENT_TYPE = "documentation"

PROMPTS_DIR = Path(os.getenv("PROMPTS_DIR", Path(__file__).resolve().parent / "prompts"))
PATTERNS_PATH = os.getenv("PATTERNS_PATH", "")
