from enum import Enum

from pydantic import BaseModel, SerializeAsAny

from docsmith.models.content import ContentRequest, RepositoryAnalysis
from docsmith.models.steps import StepResult


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ArtifactAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"


class PipelineResult(BaseModel):
    status: RunStatus
    action: ArtifactAction | None = None
    file_path: str | None = None
    relative_path: str | None = None
    steps: dict[str, SerializeAsAny[StepResult]] = {}
    failed_step: str | None = None
    error: str | None = None
    message: str = ""
    content_request: ContentRequest | None = None
    repository_analysis: RepositoryAnalysis | None = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED
