"""End-to-end runs of the documentation pipeline against scripted oracles."""

from __future__ import annotations

import asyncio

import pytest

from docsmith.agents.executor import StepExecutor
from docsmith.cancellation import CancellationToken
from docsmith.graph.workflow import NO_DIRECTORY, PipelineOrchestrator
from docsmith.models.content import InputType, ProcessedContent
from docsmith.models.run import ArtifactAction, RunStatus
from docsmith.models.steps import StrategyAction
from docsmith.services.filesystem import LocalFileSystem
from docsmith.services.patterns import extract_headings
from docsmith.services.templates import InMemoryTemplateStore
from tests._fixtures.workspace import (
    QUICKSTART_CONTENT,
    artifact_answer,
    directory_answer,
    pattern_answer,
    strategy_answer,
)

GOAL = "Create a quickstart guide for authentication"

SAMPLE_REPO = {
    "package.json": '{"name": "demo-api"}\n',
    "README.md": "# Demo API\n",
    "src/index.js": "module.exports = {};\n",
    "docs/overview.md": """
        # Demo API overview

        ## Key Features

        Token based access.
        """,
    "docs/api-authentication.md": """
        # API Authentication

        ## Overview

        Requests carry a bearer token.

        ## Token Lifetime

        Tokens expire after one hour.

        ## References

        - RFC 6749
        """,
}

UPDATED_AUTH = """# API Authentication

## Overview

Requests carry a bearer token.

## Token Lifetime

Tokens expire after one hour.

## Refreshing Tokens

Call `/oauth/refresh` before the token expires.

## References

- RFC 6749
"""


class StalledOracle:
    """Never answers within any reasonable timeout."""

    def __init__(self) -> None:
        self.prompts: list[str] = []

    async def send(self, prompt: str, timeout: float | None = None) -> str:
        self.prompts.append(prompt)
        await asyncio.sleep(30)
        return "{}"


class CancellingOracle:
    """Answers from a script, but cancels the run while the n-th call is pending."""

    def __init__(self, token: CancellationToken, answers: list[str], cancel_on: int) -> None:
        self.token = token
        self.answers = answers
        self.cancel_on = cancel_on
        self.prompts: list[str] = []

    async def send(self, prompt: str, timeout: float | None = None) -> str:
        self.prompts.append(prompt)
        if len(self.prompts) == self.cancel_on:
            self.token.cancel()
            await asyncio.sleep(30)
        return self.answers[len(self.prompts) - 1]


def test_create_quickstart_in_docs(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer())

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.success
    assert result.status == RunStatus.SUCCEEDED
    assert result.action == ArtifactAction.CREATED
    assert result.relative_path == "docs/quickstart-authentication.md"
    assert result.message == "Content created successfully"
    assert list(result.steps) == ["select_directory", "determine_strategy", "select_pattern", "generate_content"]
    assert all(step.success for step in result.steps.values())

    written = workspace.read("docs/quickstart-authentication.md")
    assert written == QUICKSTART_CONTENT
    assert extract_headings(written, max_level=2) == [
        "Quickstart: Authenticate",
        "Prerequisites",
        "Procedure",
        "Next Steps",
    ]


def test_create_feeds_each_step_its_inputs(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer())

    result = asyncio.run(orchestrator.run(GOAL, workspace.root, audience="API integrators"))

    assert result.success
    directory_prompt, strategy_prompt, pattern_prompt, generation_prompt = oracle.prompts
    assert "Node.js/JavaScript" in directory_prompt
    assert "API integrators" in directory_prompt
    assert "### api-authentication.md" in strategy_prompt
    assert "### overview.md" in strategy_prompt
    assert '"quickstart"' in pattern_prompt
    assert '"api-docs"' in pattern_prompt
    assert "Next Steps" in generation_prompt
    assert "No source materials were provided." in generation_prompt
    assert result.content_request.audience == "API integrators"
    assert result.repository_analysis.documentation_dirs == ["docs"]


def test_source_materials_reach_generation(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    notes = ProcessedContent(source="notes.md", type=InputType.TEXT, text="Tokens come from /oauth/token.")
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer())

    result = asyncio.run(orchestrator.run(GOAL, workspace.root, [notes]))

    assert result.success
    assert result.content_request.input_materials[0].source == "notes.md"
    assert "### notes.md (text)\nTokens come from /oauth/token." in oracle.prompts[3]


def test_create_in_new_directory(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer("docs/guides"), strategy_answer(), pattern_answer(), artifact_answer())

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.success
    assert result.relative_path == "docs/guides/quickstart-authentication.md"
    assert NO_DIRECTORY in oracle.prompts[1]
    assert workspace.read("docs/guides/quickstart-authentication.md") == QUICKSTART_CONTENT


def test_update_existing_document(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(
        directory_answer(),
        strategy_answer("UPDATE", "api-authentication.md", overlap=75),
        artifact_answer(UPDATED_AUTH, filename="api-authentication.md", title="API Authentication"),
    )

    result = asyncio.run(orchestrator.run("Document token refresh", workspace.root))

    assert result.success
    assert result.action == ArtifactAction.UPDATED
    assert result.relative_path == "docs/api-authentication.md"
    assert result.message == "Content updated successfully"
    assert "select_pattern" not in result.steps
    assert result.steps["determine_strategy"].data.action == StrategyAction.UPDATE
    assert len(oracle.prompts) == 3
    assert "Tokens expire after one hour." in oracle.prompts[2]
    assert workspace.read("docs/api-authentication.md") == UPDATED_AUTH


def test_update_without_target_file_fails_without_writing(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    oracle.queue(directory_answer(), strategy_answer("UPDATE", None, overlap=80))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.status == RunStatus.FAILED
    assert result.failed_step == "determine_strategy"
    assert "without a targetFile" in result.error
    assert result.file_path is None
    assert result.action is None
    step = result.steps["determine_strategy"]
    assert not step.success
    assert step.data.action == StrategyAction.UPDATE
    assert len(oracle.prompts) == 2
    assert workspace.snapshot() == before


def test_update_of_missing_file_fails(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    oracle.queue(directory_answer(), strategy_answer("UPDATE", "authentication.md", overlap=80))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "determine_strategy"
    assert "is not an existing file" in result.error
    assert workspace.snapshot() == before


def test_create_with_target_file_fails(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer(), strategy_answer("CREATE", "overview.md"))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "determine_strategy"
    assert "CREATE" in result.error


def test_directory_outside_workspace_fails(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer("../elsewhere"))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "select_directory"
    assert "escapes the workspace" in result.error
    assert result.steps["select_directory"].data.selected_directory == "../elsewhere"
    assert len(oracle.prompts) == 1
    assert not (workspace.root.parent / "elsewhere").exists()


def test_unknown_pattern_fails(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer("faq", "FAQ"))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "select_pattern"
    assert "Unknown patternId 'faq'" in result.error
    assert workspace.snapshot() == before


def test_generated_content_missing_required_section_fails(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    content = QUICKSTART_CONTENT.split("## Next Steps")[0]
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer(content))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "generate_content"
    assert "missing required sections: Next Steps" in result.error
    assert result.steps["generate_content"].data is not None
    assert workspace.snapshot() == before


def test_terminal_section_must_come_last(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    content = "# Quickstart\n\n## Prerequisites\n\n## Next Steps\n\n## Procedure\n"
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer(content))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "generate_content"
    assert "terminal sections not last: Next Steps" in result.error


def test_create_never_overwrites_existing_file(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer(filename="overview.md"))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "generate_content"
    assert "overwrite" in result.error
    assert workspace.snapshot() == before


def test_update_dropping_a_section_fails(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    trimmed = UPDATED_AUTH.replace("## Token Lifetime\n\nTokens expire after one hour.\n\n", "")
    oracle.queue(
        directory_answer(),
        strategy_answer("UPDATE", "api-authentication.md", overlap=75),
        artifact_answer(trimmed, filename="api-authentication.md"),
    )

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "update_content"
    assert "Token Lifetime" in result.error
    assert workspace.snapshot() == before


def test_malformed_answer_fails_the_step(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue("I would put it somewhere sensible.")

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "select_directory"
    step = result.steps["select_directory"]
    assert step.error == "Could not parse JSON from response"
    assert step.response == "I would put it somewhere sensible."
    assert "Directory Selection" in step.prompt


def test_timeout_fails_without_writing(workspace, templates, catalog) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    orchestrator = PipelineOrchestrator(StepExecutor(StalledOracle(), templates), catalog)

    result = asyncio.run(orchestrator.run(GOAL, workspace.root, timeout=0.05))

    assert result.status == RunStatus.FAILED
    assert result.failed_step == "select_directory"
    assert result.steps["select_directory"].error == "timeout"
    assert workspace.snapshot() == before


def test_cancellation_during_generation_writes_nothing(workspace, templates, catalog) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()

    async def scenario():
        token = CancellationToken()
        answers = [directory_answer(), strategy_answer(), pattern_answer(), artifact_answer()]
        oracle = CancellingOracle(token, answers, cancel_on=4)
        orchestrator = PipelineOrchestrator(StepExecutor(oracle, templates), catalog)
        return await orchestrator.run(GOAL, workspace.root, cancel=token)

    result = asyncio.run(scenario())

    assert result.cancelled
    assert result.status == RunStatus.CANCELLED
    assert result.message == "Run cancelled at generate_content"
    assert result.error is None
    assert result.file_path is None
    assert "select_pattern" in result.steps
    assert "generate_content" not in result.steps
    assert workspace.snapshot() == before


def test_cancellation_before_start(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)

    async def scenario():
        token = CancellationToken()
        token.cancel()
        return await orchestrator.run(GOAL, workspace.root, cancel=token)

    result = asyncio.run(scenario())

    assert result.cancelled
    assert oracle.prompts == []


def test_progress_reports_every_transition(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer())
    events: list[str] = []

    result = asyncio.run(orchestrator.run(GOAL, workspace.root, on_progress=lambda step, _: events.append(step)))

    assert result.success
    assert set(events[:2]) == {"build_request", "analyze_repo"}
    assert events[2:] == [
        "select_directory",
        "determine_strategy",
        "select_pattern",
        "generate_content",
        "write_artifact",
        "complete",
    ]


def test_failing_progress_callback_is_ignored(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer())

    def explode(step: str, message: str) -> None:
        raise RuntimeError("panel closed")

    result = asyncio.run(orchestrator.run(GOAL, workspace.root, on_progress=explode))

    assert result.success
    assert workspace.read("docs/quickstart-authentication.md") == QUICKSTART_CONTENT


def test_missing_workspace_fails_before_any_oracle_call(tmp_path, oracle, orchestrator) -> None:
    events: list[str] = []

    result = asyncio.run(
        orchestrator.run(GOAL, tmp_path / "missing", on_progress=lambda step, _: events.append(step))
    )

    assert result.status == RunStatus.FAILED
    assert result.failed_step == "analyze_repo"
    assert "does not exist" in result.error
    assert oracle.prompts == []
    assert events[-1] == "failed"


def test_empty_goal_fails(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)

    result = asyncio.run(orchestrator.run("   ", workspace.root))

    assert result.failed_step == "build_request"
    assert oracle.prompts == []


class StepAwareOracle:
    """Answers by recognising which step a prompt belongs to, so runs can interleave."""

    ANSWERS = {
        "# Directory Selection": directory_answer(),
        "# Content Strategy": strategy_answer(),
        "# Content Pattern Selection": pattern_answer(),
        "# Content Generation": artifact_answer(),
    }

    async def send(self, prompt: str, timeout: float | None = None) -> str:
        await asyncio.sleep(0)
        for title, answer in self.ANSWERS.items():
            if prompt.startswith(title):
                return answer
        raise AssertionError(f"unexpected prompt: {prompt[:40]}")


def test_concurrent_runs_share_one_orchestrator(tmp_path, templates, catalog) -> None:
    roots = []
    for name in ("first", "second"):
        root = tmp_path / name
        (root / "docs").mkdir(parents=True)
        (root / "docs" / "index.md").write_text("# Index\n", encoding="utf-8")
        roots.append(root)
    orchestrator = PipelineOrchestrator(StepExecutor(StepAwareOracle(), templates), catalog)

    async def scenario():
        return await asyncio.gather(*(orchestrator.run(GOAL, root) for root in roots))

    results = asyncio.run(scenario())

    assert [r.status for r in results] == [RunStatus.SUCCEEDED, RunStatus.SUCCEEDED]
    assert [r.file_path for r in results] == [
        str((root / "docs" / "quickstart-authentication.md").resolve()) for root in roots
    ]


class BrokenTransport:
    async def send(self, prompt: str, timeout: float | None = None) -> str:
        raise ConnectionError("connection reset by peer")


class ReadOnlyFileSystem(LocalFileSystem):
    def write_file(self, path: str, text: str) -> None:
        raise OSError(30, "Read-only file system")


def test_transport_failure_fails_the_step(workspace, templates, catalog) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    orchestrator = PipelineOrchestrator(StepExecutor(BrokenTransport(), templates), catalog)

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.status == RunStatus.FAILED
    assert result.failed_step == "select_directory"
    assert result.steps["select_directory"].error == "ConnectionError: connection reset by peer"
    assert workspace.snapshot() == before


def test_missing_prompt_template_fails_the_run(workspace, oracle, catalog) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer())
    orchestrator = PipelineOrchestrator(StepExecutor(oracle, InMemoryTemplateStore({})), catalog)

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.status == RunStatus.FAILED
    assert result.failed_step == "select_directory"
    assert "Prompt template not found: orchestration/01-directory-selection" in result.error
    assert result.repository_analysis is not None
    assert oracle.prompts == []


@pytest.mark.parametrize(
    ("cancel_on", "answers", "step"),
    [
        (1, [directory_answer()], "select_directory"),
        (2, [directory_answer(), strategy_answer()], "determine_strategy"),
        (3, [directory_answer(), strategy_answer(), pattern_answer()], "select_pattern"),
        (4, [directory_answer(), strategy_answer(), pattern_answer(), artifact_answer()], "generate_content"),
        (
            3,
            [
                directory_answer(),
                strategy_answer("UPDATE", "api-authentication.md", overlap=75),
                artifact_answer(UPDATED_AUTH, filename="api-authentication.md"),
            ],
            "update_content",
        ),
    ],
)
def test_cancellation_at_every_oracle_step(workspace, templates, catalog, cancel_on, answers, step) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()

    async def scenario():
        token = CancellationToken()
        oracle = CancellingOracle(token, answers, cancel_on=cancel_on)
        orchestrator = PipelineOrchestrator(StepExecutor(oracle, templates), catalog)
        return await orchestrator.run(GOAL, workspace.root, cancel=token)

    result = asyncio.run(scenario())

    assert result.cancelled
    assert result.message == f"Run cancelled at {step}"
    assert step not in result.steps
    assert result.file_path is None
    assert workspace.snapshot() == before


def test_cancellation_just_before_writing(workspace, oracle, orchestrator) -> None:
    workspace.write(SAMPLE_REPO)
    before = workspace.snapshot()
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer())

    async def scenario():
        token = CancellationToken()

        def cancel_on_write(step: str, message: str) -> None:
            if step == "write_artifact":
                token.cancel()

        return await orchestrator.run(GOAL, workspace.root, on_progress=cancel_on_write, cancel=token)

    result = asyncio.run(scenario())

    assert result.cancelled
    assert result.message == "Run cancelled at write_artifact"
    assert result.steps["generate_content"].success
    assert workspace.snapshot() == before


def test_write_failure_fails_the_run(workspace, oracle, templates, catalog) -> None:
    workspace.write(SAMPLE_REPO)
    oracle.queue(directory_answer(), strategy_answer(), pattern_answer(), artifact_answer())
    orchestrator = PipelineOrchestrator(StepExecutor(oracle, templates), catalog, fs=ReadOnlyFileSystem())

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.status == RunStatus.FAILED
    assert result.failed_step == "write_artifact"
    assert "Read-only file system" in result.error
    assert result.file_path is None
    assert not (workspace.root / "docs" / "quickstart-authentication.md").exists()


def test_update_target_must_be_a_file(workspace, oracle, orchestrator) -> None:
    workspace.write({**SAMPLE_REPO, "docs/guides/setup.md": "# Setup\n"})
    oracle.queue(directory_answer(), strategy_answer("UPDATE", "guides", overlap=80))

    result = asyncio.run(orchestrator.run(GOAL, workspace.root))

    assert result.failed_step == "determine_strategy"
    assert "'guides' is not an existing file" in result.error
    assert len(oracle.prompts) == 2


def test_concurrent_creates_of_one_file_never_overwrite(workspace, templates, catalog) -> None:
    workspace.write(SAMPLE_REPO)
    orchestrator = PipelineOrchestrator(StepExecutor(StepAwareOracle(), templates), catalog)

    async def scenario():
        return await asyncio.gather(orchestrator.run(GOAL, workspace.root), orchestrator.run(GOAL, workspace.root))

    results = asyncio.run(scenario())

    assert sorted(r.status.value for r in results) == ["failed", "succeeded"]
    failed = next(r for r in results if not r.success)
    assert failed.failed_step in ("generate_content", "write_artifact")
    assert "overwrite" in failed.error
    assert workspace.read("docs/quickstart-authentication.md") == QUICKSTART_CONTENT
