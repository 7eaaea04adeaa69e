import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from docsmith.agents.analyzer import RepositoryAnalyzer, is_markdown
from docsmith.agents.contracts import (
    check_filename,
    check_generated,
    check_pattern,
    check_strategy,
    check_update,
    resolve_directory,
    resolve_target_file,
)
from docsmith.agents.executor import Executor
from docsmith.agents.request_builder import build_content_request, render_source_materials
from docsmith.agents.writer import write_artifact
from docsmith.cancellation import CancellationToken
from docsmith.config import EXISTING_DOC_LIMIT, EXISTING_DOC_PREVIEW
from docsmith.errors import ContractViolation, DocsmithError, NoWorkspaceError, PipelineCancelled
from docsmith.graph.state import PipelineRun
from docsmith.models.content import ProcessedContent
from docsmith.models.run import ArtifactAction, PipelineResult, RunStatus
from docsmith.models.steps import (
    ContentArtifact,
    ContentStrategy,
    DirectorySelection,
    PatternSelection,
    StepResult,
    StrategyAction,
)
from docsmith.services.filesystem import LocalFileSystem, PathLocks, WorkspaceFileSystem
from docsmith.services.patterns import PatternCatalog

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str, str], None]

DIRECTORY_PROMPT = "orchestration/01-directory-selection"
STRATEGY_PROMPT = "orchestration/02-content-strategy"
PATTERN_PROMPT = "orchestration/03-pattern-selection"
GENERATION_PROMPT = "orchestration/04-content-generation"
UPDATE_PROMPT = "orchestration/05-content-update"

NO_DIRECTORY = "Directory does not exist yet"
NO_MARKDOWN = "No existing markdown files in directory"

STEP_MESSAGES = {
    "build_request": "Preparing the content request...",
    "analyze_repo": "Analyzing repository structure...",
    "select_directory": "Selecting the target directory...",
    "determine_strategy": "Deciding whether to create or update content...",
    "select_pattern": "Selecting a content pattern...",
    "generate_content": "Generating content...",
    "update_content": "Updating existing content...",
    "write_artifact": "Writing the document...",
}


@dataclass
class RunOptions:
    cancel: CancellationToken
    progress: ProgressSink | None = None
    timeout: float | None = None
    step: str = ""

    def enter(self, step: str) -> None:
        self.step = step
        self.cancel.raise_if_cancelled(step)
        notify(self.progress, step, STEP_MESSAGES[step])


def notify(progress: ProgressSink | None, step: str, message: str) -> None:
    if progress is None:
        return
    try:
        progress(step, message)
    except Exception:
        logger.exception("Progress callback failed for step %s", step)


def _options(config: RunnableConfig) -> RunOptions:
    return config["configurable"]["run_options"]


def _to_json(value) -> str:
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json", by_alias=True)
    return json.dumps(value, indent=2, ensure_ascii=False)


def _fail(step: str, message: str, result: StepResult | None = None) -> dict:
    logger.warning("Step %s failed: %s", step, message)
    update = {"error": message, "failed_step": step}
    if result is not None:
        # Parsed fine but broke a contract: keep the data, mark the step failed
        if result.success:
            result = result.model_copy(update={"success": False, "error": message})
        update["step_results"] = {step: result}
    return update


def _proceed_to(next_step: str):
    def route(state: PipelineRun) -> str:
        return END if state.get("error") else next_step
    return route


def _route_strategy(state: PipelineRun) -> str:
    if state.get("error"):
        return END
    strategy = state["step_results"]["determine_strategy"].data
    if strategy.action == StrategyAction.UPDATE:
        return "update_content"
    return "select_pattern"


class PipelineOrchestrator:
    """Sequences the documentation decisions and commits exactly one file per successful run.

    The compiled graph holds no run state, so one orchestrator can serve
    concurrent runs; per-run objects travel in the run config.
    """

    def __init__(
        self,
        executor: Executor,
        catalog: PatternCatalog,
        fs: WorkspaceFileSystem | None = None,
        analyzer: RepositoryAnalyzer | None = None,
        locks: PathLocks | None = None,
        existing_doc_limit: int = EXISTING_DOC_LIMIT,
        existing_doc_preview: int = EXISTING_DOC_PREVIEW,
    ):
        self._executor = executor
        self._catalog = catalog
        self._fs = fs or LocalFileSystem()
        self._analyzer = analyzer or RepositoryAnalyzer()
        self._locks = locks or PathLocks()
        self.existing_doc_limit = existing_doc_limit
        self.existing_doc_preview = existing_doc_preview
        self._app = self.build_workflow().compile()

    def build_workflow(self) -> StateGraph:
        workflow = StateGraph(PipelineRun)

        workflow.add_node("build_request", self._build_request)
        workflow.add_node("analyze_repo", self._analyze_repo)
        workflow.add_node("inputs_ready", self._inputs_ready)
        workflow.add_node("select_directory", self._select_directory)
        workflow.add_node("determine_strategy", self._determine_strategy)
        workflow.add_node("select_pattern", self._select_pattern)
        workflow.add_node("generate_content", self._generate_content)
        workflow.add_node("update_content", self._update_content)
        workflow.add_node("write_artifact", self._write_artifact)

        # Request building and repository analysis are independent
        workflow.add_edge(START, "build_request")
        workflow.add_edge(START, "analyze_repo")
        workflow.add_edge(["build_request", "analyze_repo"], "inputs_ready")

        workflow.add_conditional_edges(
            "inputs_ready", _proceed_to("select_directory"), ["select_directory", END]
        )
        workflow.add_conditional_edges(
            "select_directory", _proceed_to("determine_strategy"), ["determine_strategy", END]
        )
        workflow.add_conditional_edges(
            "determine_strategy", _route_strategy, ["select_pattern", "update_content", END]
        )
        workflow.add_conditional_edges(
            "select_pattern", _proceed_to("generate_content"), ["generate_content", END]
        )
        workflow.add_conditional_edges(
            "generate_content", _proceed_to("write_artifact"), ["write_artifact", END]
        )
        workflow.add_conditional_edges(
            "update_content", _proceed_to("write_artifact"), ["write_artifact", END]
        )
        workflow.add_edge("write_artifact", END)

        return workflow

    async def run(
        self,
        goal: str,
        root_path: str | Path,
        contents: Sequence[ProcessedContent] = (),
        *,
        audience: str | None = None,
        content_type: str | None = None,
        on_progress: ProgressSink | None = None,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> PipelineResult:
        options = RunOptions(cancel=cancel or CancellationToken(), progress=on_progress, timeout=timeout)
        initial: PipelineRun = {
            "goal": goal,
            "contents": list(contents),
            "audience": audience,
            "content_type": content_type,
            "root_path": str(root_path),
            "step_results": {},
        }
        config: RunnableConfig = {"configurable": {"run_options": options}}

        logger.info("Starting documentation run for goal: %s", goal)
        state: PipelineRun = initial
        try:
            async for values in self._app.astream(initial, config, stream_mode="values"):
                state = values
        except PipelineCancelled as e:
            step = e.step or options.step
            logger.info("Run cancelled at %s, nothing was written", step)
            notify(on_progress, "cancelled", "Run cancelled, nothing was written")
            return self._result(state, RunStatus.CANCELLED, message=f"Run cancelled at {step}")
        except DocsmithError as e:
            state = {**state, "error": str(e), "failed_step": options.step}

        if state.get("error"):
            logger.error("Run failed at %s: %s", state.get("failed_step"), state["error"])
            notify(on_progress, "failed", state["error"])
            return self._result(state, RunStatus.FAILED, message=state["error"])

        action = state["action"]
        message = f"Content {action.value.lower()} successfully"
        logger.info("%s: %s", message, state["file_path"])
        notify(on_progress, "complete", message)
        return self._result(state, RunStatus.SUCCEEDED, message=message)

    def _result(self, state: PipelineRun, status: RunStatus, message: str) -> PipelineResult:
        file_path = state.get("file_path") if status == RunStatus.SUCCEEDED else None
        relative_path = None
        analysis = state.get("repository_analysis")
        if file_path and analysis:
            relative_path = Path(file_path).relative_to(analysis.root_path).as_posix()

        return PipelineResult(
            status=status,
            action=state.get("action") if file_path else None,
            file_path=file_path,
            relative_path=relative_path,
            steps=dict(state.get("step_results") or {}),
            failed_step=state.get("failed_step") if status == RunStatus.FAILED else None,
            error=state.get("error") if status == RunStatus.FAILED else None,
            message=message,
            content_request=state.get("content_request"),
            repository_analysis=analysis,
        )

    # --- Node functions ---

    async def _build_request(self, state: PipelineRun, config: RunnableConfig) -> dict:
        _options(config).enter("build_request")
        try:
            request = build_content_request(
                state["goal"],
                state.get("contents") or [],
                audience=state.get("audience"),
                content_type=state.get("content_type"),
            )
        except ValueError as e:
            return _fail("build_request", str(e))
        return {"content_request": request}

    async def _analyze_repo(self, state: PipelineRun, config: RunnableConfig) -> dict:
        _options(config).enter("analyze_repo")
        try:
            analysis = await asyncio.to_thread(self._analyzer.analyze, state["root_path"])
        except NoWorkspaceError as e:
            return _fail("analyze_repo", str(e))
        return {"repository_analysis": analysis}

    async def _inputs_ready(self, state: PipelineRun) -> dict:
        return {"current_step": "inputs_ready"}

    async def _select_directory(self, state: PipelineRun, config: RunnableConfig) -> dict:
        step = "select_directory"
        options = _options(config)
        options.enter(step)

        analysis = state["repository_analysis"]
        result = await self._executor.execute(
            DIRECTORY_PROMPT,
            {
                "content_request": _to_json(state["content_request"]),
                "repository_analysis": _to_json(analysis),
            },
            DirectorySelection,
            timeout=options.timeout,
            cancel=options.cancel,
        )
        if not result.success:
            return _fail(step, f"Directory selection failed: {result.error}", result)

        try:
            directory = resolve_directory(Path(analysis.root_path), result.data.selected_directory)
        except ContractViolation as e:
            return _fail(step, str(e), result)

        logger.info("Selected directory %s (confidence %.2f)", directory, result.data.confidence)
        return {"step_results": {step: result}, "directory_path": str(directory), "current_step": step}

    async def _read_existing(self, directory: Path) -> tuple[list[str], str]:
        """Bounded preview of the markdown already in the selected directory."""
        try:
            names = await asyncio.to_thread(self._fs.list_files, str(directory))
        except OSError:
            return [], NO_DIRECTORY

        previews = []
        for name in [n for n in names if is_markdown(n)][: self.existing_doc_limit]:
            try:
                text = await asyncio.to_thread(self._fs.read_file, str(directory / name))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Cannot read existing document %s: %s", name, e)
                continue
            previews.append(f"### {name}\n{text[: self.existing_doc_preview]}...\n")

        return names, "\n---\n".join(previews) if previews else NO_MARKDOWN

    async def _determine_strategy(self, state: PipelineRun, config: RunnableConfig) -> dict:
        step = "determine_strategy"
        options = _options(config)
        options.enter(step)

        directory = Path(state["directory_path"])
        existing_files, existing_content = await self._read_existing(directory)
        options.cancel.raise_if_cancelled(step)

        result = await self._executor.execute(
            STRATEGY_PROMPT,
            {
                "content_request": _to_json(state["content_request"]),
                "selected_directory": _to_json(state["step_results"]["select_directory"].data),
                "existing_files": _to_json(existing_files),
                "existing_content": existing_content,
            },
            ContentStrategy,
            timeout=options.timeout,
            cancel=options.cancel,
        )
        update = {"existing_files": existing_files, "existing_content": existing_content, "current_step": step}
        if not result.success:
            return {**update, **_fail(step, f"Content strategy failed: {result.error}", result)}

        strategy = result.data
        try:
            check_strategy(strategy)
            if strategy.action == StrategyAction.UPDATE:
                target = resolve_target_file(directory, strategy.target_file)
                if not await asyncio.to_thread(self._fs.is_file, str(target)):
                    raise ContractViolation(f"targetFile {strategy.target_file!r} is not an existing file in {directory}")
                update["target_path"] = str(target)
        except ContractViolation as e:
            return {**update, **_fail(step, str(e), result)}

        logger.info("Content strategy: %s (overlap %.0f%%)", strategy.action.value, strategy.content_overlap)
        return {**update, "step_results": {step: result}}

    async def _select_pattern(self, state: PipelineRun, config: RunnableConfig) -> dict:
        step = "select_pattern"
        options = _options(config)
        options.enter(step)

        selection = state["step_results"]["select_directory"].data
        result = await self._executor.execute(
            PATTERN_PROMPT,
            {
                "content_request": _to_json(state["content_request"]),
                "target_directory": selection.selected_directory,
                "available_patterns": _to_json(self._catalog.describe()),
            },
            PatternSelection,
            timeout=options.timeout,
            cancel=options.cancel,
        )
        if not result.success:
            return _fail(step, f"Pattern selection failed: {result.error}", result)

        try:
            pattern = check_pattern(self._catalog, result.data.pattern_id)
        except ContractViolation as e:
            return _fail(step, str(e), result)

        logger.info("Selected pattern %s", pattern.id)
        return {"step_results": {step: result}, "pattern": pattern, "current_step": step}

    async def _generate_content(self, state: PipelineRun, config: RunnableConfig) -> dict:
        step = "generate_content"
        options = _options(config)
        options.enter(step)

        pattern = state["pattern"]
        selection = state["step_results"]["select_pattern"].data
        content_pattern = {
            **selection.model_dump(mode="json", by_alias=True),
            "requiredSections": pattern.required_sections,
            "terminalSections": pattern.terminal_sections,
            "sectionOrder": [s.model_dump(mode="json", by_alias=True) for s in pattern.section_order],
            "frontMatter": pattern.front_matter,
            "template": pattern.markdown_template,
        }
        result = await self._executor.execute(
            GENERATION_PROMPT,
            {
                "content_request": _to_json(state["content_request"]),
                "content_pattern": _to_json(content_pattern),
                "target_location": state["step_results"]["select_directory"].data.selected_directory,
                "source_materials": render_source_materials(state.get("contents") or []),
            },
            ContentArtifact,
            timeout=options.timeout,
            cancel=options.cancel,
        )
        if not result.success:
            return _fail(step, f"Content generation failed: {result.error}", result)

        artifact = result.data
        try:
            filename = check_filename(artifact)
            check_generated(self._catalog, artifact, pattern)
            target = Path(state["directory_path"]) / filename
            if await asyncio.to_thread(self._fs.exists, str(target)):
                raise ContractViolation(f"CREATE would overwrite existing file {filename!r}")
        except ContractViolation as e:
            return _fail(step, str(e), result)

        return {
            "step_results": {step: result},
            "artifact": artifact,
            "target_path": str(target),
            "action": ArtifactAction.CREATED,
            "current_step": step,
        }

    async def _update_content(self, state: PipelineRun, config: RunnableConfig) -> dict:
        step = "update_content"
        options = _options(config)
        options.enter(step)

        strategy = state["step_results"]["determine_strategy"].data
        try:
            existing = await asyncio.to_thread(self._fs.read_file, state["target_path"])
        except (OSError, UnicodeDecodeError) as e:
            return _fail(step, f"Cannot read {strategy.target_file}: {e}")
        options.cancel.raise_if_cancelled(step)

        result = await self._executor.execute(
            UPDATE_PROMPT,
            {
                "content_request": _to_json(state["content_request"]),
                "existing_content": existing,
                "new_materials": render_source_materials(state.get("contents") or []),
                "update_requirements": _to_json({
                    "targetFile": strategy.target_file,
                    "reasoning": strategy.reasoning,
                    "userJourneyContext": strategy.user_journey_context,
                }),
            },
            ContentArtifact,
            timeout=options.timeout,
            cancel=options.cancel,
        )
        if not result.success:
            return _fail(step, f"Content update failed: {result.error}", result)

        try:
            check_update(existing, result.data)
        except ContractViolation as e:
            return _fail(step, str(e), result)

        return {
            "step_results": {step: result},
            "artifact": result.data,
            "action": ArtifactAction.UPDATED,
            "current_step": step,
        }

    async def _write_artifact(self, state: PipelineRun, config: RunnableConfig) -> dict:
        step = "write_artifact"
        options = _options(config)
        options.enter(step)

        try:
            file_path = await write_artifact(
                self._fs,
                Path(state["target_path"]),
                state["artifact"].content,
                self._locks,
                cancel=options.cancel,
                overwrite=state["action"] == ArtifactAction.UPDATED,
            )
        except OSError as e:
            return _fail(step, f"Writing {state['target_path']} failed: {e}")

        return {"file_path": file_path, "current_step": step}
