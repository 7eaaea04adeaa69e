from __future__ import annotations

from pathlib import Path

import pytest

from docsmith.agents.executor import StepExecutor
from docsmith.config import PROMPTS_DIR
from docsmith.graph.workflow import PipelineOrchestrator
from docsmith.services.llm import ScriptedOracle
from docsmith.services.patterns import PatternCatalog
from docsmith.services.templates import FileTemplateStore
from tests._fixtures.workspace import WorkspaceBuilder


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a workspace builder rooted at the pytest tmp_path."""
    return WorkspaceBuilder(tmp_path)


@pytest.fixture(scope="session")
def templates() -> FileTemplateStore:
    return FileTemplateStore(PROMPTS_DIR)


@pytest.fixture
def catalog() -> PatternCatalog:
    return PatternCatalog.builtin()


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def orchestrator(oracle, templates, catalog) -> PipelineOrchestrator:
    return PipelineOrchestrator(StepExecutor(oracle, templates, timeout=5), catalog)
