from pathlib import Path, PurePosixPath

from docsmith.errors import ContractViolation
from docsmith.models.patterns import ContentPattern
from docsmith.models.steps import ContentArtifact, ContentStrategy, StrategyAction
from docsmith.services.patterns import PatternCatalog, extract_headings, find_section


def resolve_directory(root: Path, selected_directory: str) -> Path:
    """Absolute path of the selected directory; it must stay inside the workspace root."""
    root = root.resolve()
    candidate = PurePosixPath(selected_directory.replace("\\", "/").strip())
    if candidate.is_absolute():
        raise ContractViolation(f"selectedDirectory must be relative to the workspace: {selected_directory}")

    resolved = (root / candidate).resolve()
    if resolved != root and root not in resolved.parents:
        raise ContractViolation(f"selectedDirectory escapes the workspace: {selected_directory}")
    return resolved


def resolve_target_file(directory: Path, target_file: str) -> Path:
    directory = directory.resolve()
    resolved = (directory / target_file.replace("\\", "/")).resolve()
    if directory not in resolved.parents:
        raise ContractViolation(f"targetFile must name a file inside {directory}: {target_file}")
    return resolved


def check_strategy(strategy: ContentStrategy) -> None:
    """Branch exclusivity: UPDATE names a target file, CREATE does not."""
    if strategy.action == StrategyAction.UPDATE and not strategy.target_file:
        raise ContractViolation("Content strategy chose UPDATE without a targetFile")
    if strategy.action == StrategyAction.CREATE and strategy.target_file:
        raise ContractViolation(
            f"Content strategy chose CREATE but also named targetFile {strategy.target_file!r}"
        )


def check_pattern(catalog: PatternCatalog, pattern_id: str) -> ContentPattern:
    pattern = catalog.get_pattern_by_id(pattern_id)
    if pattern is None:
        known = ", ".join(p.id for p in catalog.get_available_patterns())
        raise ContractViolation(f"Unknown patternId {pattern_id!r} (known: {known})")
    return pattern


def check_filename(artifact: ContentArtifact) -> str:
    name = artifact.filename.strip()
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise ContractViolation(f"filename must be a bare file name: {artifact.filename!r}")
    return name


def check_generated(catalog: PatternCatalog, artifact: ContentArtifact, pattern: ContentPattern) -> None:
    check = catalog.validate_content(artifact.content, pattern)
    problems = []
    if check.missing_required:
        problems.append(f"missing required sections: {', '.join(check.missing_required)}")
    if check.misplaced_terminal:
        problems.append(f"terminal sections not last: {', '.join(check.misplaced_terminal)}")
    if problems:
        raise ContractViolation(f"Generated content does not follow pattern {pattern.id}: {'; '.join(problems)}")


def check_update(existing: str, artifact: ContentArtifact) -> None:
    """The updated document keeps every level-1 and level-2 heading of the original."""
    updated = extract_headings(artifact.content)
    missing = [h for h in extract_headings(existing, max_level=2) if find_section(updated, h) == -1]
    if missing:
        raise ContractViolation(f"Updated content dropped existing sections: {', '.join(missing)}")
