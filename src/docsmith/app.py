import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from docsmith.agents.executor import RetryingExecutor, StepExecutor
from docsmith.config import (
    GEMINI_MODEL,
    ORACLE_TIMEOUT_SECONDS,
    PATTERNS_PATH,
    PROMPTS_DIR,
    STEP_ATTEMPTS,
)
from docsmith.graph.workflow import PipelineOrchestrator
from docsmith.models.content import InputDescriptor
from docsmith.models.run import PipelineResult
from docsmith.services.inputs import AdapterRegistry
from docsmith.services.llm import GeminiOracle, ScriptedOracle
from docsmith.services.patterns import PatternCatalog
from docsmith.services.templates import FileTemplateStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsmith",
        description="Create or update a repository document from a goal and source materials.",
    )
    parser.add_argument("goal", help='What the document should achieve, e.g. "Create a quickstart for authentication".')
    parser.add_argument("--root", default=".", help="Repository root (defaults to the current directory).")
    parser.add_argument(
        "-i", "--input", dest="inputs", action="append", default=[],
        help="Source material file; may be repeated.",
    )
    parser.add_argument("--audience", help="Target audience of the document.")
    parser.add_argument("--content-type", help="Kind of content requested.")
    parser.add_argument("--model", default=GEMINI_MODEL, help="Gemini model to consult.")
    parser.add_argument(
        "--timeout", type=float, default=ORACLE_TIMEOUT_SECONDS,
        help="Seconds to wait for each oracle answer.",
    )
    parser.add_argument(
        "--attempts", type=int, default=STEP_ATTEMPTS,
        help="Times to ask the oracle before a step is considered failed.",
    )
    parser.add_argument("--patterns", default=PATTERNS_PATH, help="Content standards JSON file.")
    parser.add_argument(
        "--replay", type=Path,
        help="JSON list of recorded oracle answers to replay instead of calling Gemini.",
    )
    parser.add_argument("--json", action="store_true", help="Print the full run result as JSON.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase log verbosity.")
    return parser


def _print_progress(step: str, message: str) -> None:
    print(f"[{step}] {message}", file=sys.stderr)


def _build_orchestrator(args: argparse.Namespace) -> PipelineOrchestrator:
    if args.replay:
        oracle = ScriptedOracle(json.loads(args.replay.read_text(encoding="utf-8")))
    else:
        oracle = GeminiOracle(model=args.model)

    executor = StepExecutor(oracle, FileTemplateStore(PROMPTS_DIR), timeout=args.timeout)
    if args.attempts > 1:
        executor = RetryingExecutor(executor, attempts=args.attempts)

    return PipelineOrchestrator(executor, PatternCatalog.load(args.patterns))


def _report(result: PipelineResult) -> None:
    if result.success:
        print(f"{result.action.value}: {result.relative_path or result.file_path}")
        return

    print(f"Run {result.status.value}: {result.message}", file=sys.stderr)
    for name, step in result.steps.items():
        state = "ok" if step.success else f"failed ({step.error})"
        print(f"  {name}: {state}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    registry = AdapterRegistry.default()
    contents, errors = registry.process_all(
        InputDescriptor(uri=path, name=Path(path).name) for path in args.inputs
    )
    for error in errors:
        print(f"warning: {error}", file=sys.stderr)

    orchestrator = _build_orchestrator(args)
    result = asyncio.run(
        orchestrator.run(
            args.goal,
            args.root,
            contents,
            audience=args.audience,
            content_type=args.content_type,
            on_progress=_print_progress,
        )
    )

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        _report(result)

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
