import logging
import os
import re
from pathlib import Path

from docsmith.config import MAX_SCAN_DEPTH
from docsmith.errors import NoWorkspaceError
from docsmith.models.content import RepositoryAnalysis

logger = logging.getLogger(__name__)

SKIP_DIRS = {
    "node_modules", "dist", "build", "target", "bin", "obj", "out",
    "__pycache__", "coverage", "vendor", "logs", "venv", "env", "site-packages",
}

DOC_KEYWORDS = {
    "docs", "doc", "documentation", "guide", "guides", "tutorial", "tutorials",
    "manual", "wiki", "readme", "api-docs", "reference", "examples",
    "how-to", "howto", "getting-started", "quickstart",
}

CONFIG_FILES = {
    "package.json", "requirements.txt", "pyproject.toml", "setup.py", "Cargo.toml",
    "go.mod", "pom.xml", "build.gradle", "composer.json", "README.md", "tsconfig.json",
    "mkdocs.yml", "conf.py", "docusaurus.config.js", "angular.json", "next.config.js",
}

# First match wins
PROJECT_TYPES = (
    ("package.json", "Node.js/JavaScript"),
    ("pyproject.toml", "Python"),
    ("requirements.txt", "Python"),
    ("setup.py", "Python"),
    ("Cargo.toml", "Rust"),
    ("go.mod", "Go"),
    ("pom.xml", "Java/Maven"),
    ("build.gradle", "Java/Gradle"),
    ("composer.json", "PHP"),
)

_TOKEN_SPLIT = re.compile(r"[-_.\s]+")


def should_skip_directory(name: str) -> bool:
    return name in SKIP_DIRS or name.startswith(".")


def is_documentation_related(name: str) -> bool:
    lower = name.lower()
    if lower in DOC_KEYWORDS:
        return True
    if any(token in DOC_KEYWORDS for token in _TOKEN_SPLIT.split(lower)):
        return True
    return any("-" in keyword and keyword in lower for keyword in DOC_KEYWORDS)


def is_markdown(name: str) -> bool:
    return name.lower().endswith((".md", ".markdown"))


def infer_project_type(root_config_files: list[str]) -> str:
    for filename, project_type in PROJECT_TYPES:
        if filename in root_config_files:
            return project_type
    return "General Software Project"


def infer_organization_pattern(doc_dirs: list[str], markdown_count: int) -> str:
    top_level = {d.split("/")[0].lower() for d in doc_dirs}
    if "docs" in top_level and markdown_count > 10:
        return "Centralized documentation in docs/"
    if "api" in top_level and top_level & {"guide", "guides"}:
        return "Segmented by type (api/, guide/)"
    if markdown_count > 5 and not doc_dirs:
        return "Distributed documentation in project root"
    if doc_dirs:
        return f"Documentation grouped in {', '.join(sorted(top_level))}"
    return "Minimal documentation structure"


class RepositoryAnalyzer:
    """Depth-bounded, read-only summary of how a workspace organizes its documentation."""

    def __init__(self, max_depth: int = MAX_SCAN_DEPTH):
        self.max_depth = max_depth

    def analyze(self, root_path: str | os.PathLike | None) -> RepositoryAnalysis:
        if not root_path:
            raise NoWorkspaceError("No workspace folder found")
        root = Path(root_path).resolve()
        if not root.is_dir():
            raise NoWorkspaceError(f"Workspace folder does not exist: {root}")

        logger.info("Analyzing repository structure under %s (max depth %d)", root, self.max_depth)

        doc_dirs: list[str] = []
        config_files: list[str] = []
        markdown_count = 0

        pending = [(root, 0)]
        while pending:
            directory, depth = pending.pop()
            try:
                entries = list(os.scandir(directory))
            except OSError as e:
                logger.debug("Cannot read directory %s: %s", directory, e)
                continue

            for entry in entries:
                relative = Path(entry.path).relative_to(root).as_posix()
                if entry.is_dir(follow_symlinks=False):
                    if should_skip_directory(entry.name):
                        continue
                    if is_documentation_related(entry.name):
                        doc_dirs.append(relative)
                    if depth + 1 < self.max_depth:
                        pending.append((Path(entry.path), depth + 1))
                elif entry.is_file():
                    if is_markdown(entry.name):
                        markdown_count += 1
                    if entry.name in CONFIG_FILES:
                        config_files.append(relative)

        doc_dirs.sort()
        config_files.sort()
        root_configs = [f for f in config_files if "/" not in f]

        analysis = RepositoryAnalysis(
            root_path=str(root),
            project_type=infer_project_type(root_configs),
            documentation_dirs=doc_dirs,
            markdown_file_count=markdown_count,
            config_files=config_files,
            organization_pattern=infer_organization_pattern(doc_dirs, markdown_count),
        )
        logger.info(
            "Repository analysis: %s, %d doc dirs, %d markdown files",
            analysis.project_type,
            len(doc_dirs),
            markdown_count,
        )
        return analysis
