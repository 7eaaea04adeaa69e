import operator
from typing import Annotated, TypedDict

from docsmith.models.content import ContentRequest, ProcessedContent, RepositoryAnalysis
from docsmith.models.patterns import ContentPattern
from docsmith.models.run import ArtifactAction
from docsmith.models.steps import ContentArtifact, StepResult


def _latest(current, new):
    return new


def _first(current, new):
    return current if current is not None else new


class PipelineRun(TypedDict, total=False):
    # User inputs
    goal: str
    contents: list[ProcessedContent]
    audience: str | None
    content_type: str | None
    root_path: str
    # Intermediate state
    content_request: ContentRequest | None
    repository_analysis: RepositoryAnalysis | None
    step_results: Annotated[dict[str, StepResult], operator.or_]
    directory_path: str | None
    existing_files: list[str]
    existing_content: str
    pattern: ContentPattern | None
    artifact: ContentArtifact | None
    target_path: str | None
    action: ArtifactAction | None
    file_path: str | None
    # Control
    current_step: Annotated[str, _latest]
    error: Annotated[str | None, _first]
    failed_step: Annotated[str | None, _first]
