import asyncio
import logging
from collections import deque
from typing import Iterable, Protocol

import httpx
from google import genai
from google.genai import errors as genai_errors

from docsmith.config import GEMINI_MODEL, GOOGLE_API_KEY
from docsmith.errors import OracleError

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """You are a senior technical documentation architect working inside a
software repository. Each request asks you for one decision in a documentation workflow:
where content belongs, whether to create or update a document, which content pattern fits,
or the final markdown itself.

Rules:
- Base every decision on the repository analysis and source materials you are given.
- Never invent files that were not listed as existing.
- Respect the JSON response format of each request exactly, including field names.

IMPORTANT: Reply ONLY with valid JSON, inside a single ```json fenced block.
"""

_client: genai.Client | None = None


class ReasoningOracle(Protocol):
    async def send(self, prompt: str, timeout: float | None = None) -> str: ...


def _get_client() -> genai.Client:
    global _client
    if _client is None:
        if not GOOGLE_API_KEY:
            raise OracleError("GOOGLE_API_KEY is not set. Add it to your .env file.")
        _client = genai.Client(api_key=GOOGLE_API_KEY)
    return _client


class GeminiOracle:
    """Live oracle backed by the Gemini API. Stateless; safe to share between runs."""

    def __init__(
        self,
        model: str = GEMINI_MODEL,
        system_instruction: str = SYSTEM_INSTRUCTION,
        client: genai.Client | None = None,
    ):
        self.model = model
        self.system_instruction = system_instruction
        self._client = client

    async def send(self, prompt: str, timeout: float | None = None) -> str:
        client = self._client or _get_client()

        logger.info("Calling Gemini (%s), prompt of %d chars", self.model, len(prompt))

        config = None
        if self.system_instruction:
            config = genai.types.GenerateContentConfig(
                system_instruction=self.system_instruction,
            )

        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.model,
                    contents=prompt,
                    config=config,
                ),
                timeout,
            )
        except asyncio.TimeoutError:
            raise
        except genai_errors.APIError as e:
            raise OracleError(f"Gemini request failed: {e}") from e
        except (httpx.HTTPError, OSError) as e:
            raise OracleError(f"Gemini transport error: {e}") from e

        text = response.text
        if not text or not text.strip():
            raise OracleError("Gemini returned an empty response")
        return text


class ScriptedOracle:
    """Replays canned responses in order. Used for dry runs and for replaying recorded runs."""

    def __init__(self, responses: Iterable[str] = ()):
        self._responses = deque(responses)
        self.prompts: list[str] = []

    def queue(self, *responses: str) -> None:
        self._responses.extend(responses)

    async def send(self, prompt: str, timeout: float | None = None) -> str:
        self.prompts.append(prompt)
        if not self._responses:
            raise OracleError("Scripted oracle has no response left")
        response = self._responses.popleft()
        if not response.strip():
            raise OracleError("Scripted oracle returned an empty response")
        return response
