from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator

from docsmith.models.content import _ContractModel

T = TypeVar("T")


class AlternativeDirectory(_ContractModel):
    directory: str
    reason: str = ""


class DirectorySelection(_ContractModel):
    selected_directory: str
    reasoning: str
    confidence: float = Field(ge=0.0, le=1.0)
    existing_files: list[str] = []
    directory_purpose: str = ""
    alternative_options: list[AlternativeDirectory] = []


class StrategyAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


class ContentStrategy(_ContractModel):
    action: StrategyAction
    target_file: str | None = None
    reasoning: str
    content_overlap: float = Field(ge=0.0, le=100.0)
    existing_content_summary: str | None = None
    user_journey_context: str = ""

    @field_validator("target_file", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AlternativePattern(_ContractModel):
    pattern_id: str
    reason: str = ""


class PatternSelection(_ContractModel):
    pattern_id: str
    pattern_name: str
    reasoning: str
    required_sections: list[str] = []
    audience_alignment: str = ""
    alternative_patterns: list[AlternativePattern] = []


class ArtifactSection(_ContractModel):
    heading: str
    content: str = ""


class ArtifactMetadata(_ContractModel):
    word_count: int = 0
    reading_time: float = 0
    technical_level: str = ""


class ContentArtifact(_ContractModel):
    content: str
    title: str
    filename: str
    front_matter: dict[str, str] = {}
    sections: list[ArtifactSection] = []
    metadata: ArtifactMetadata = Field(default_factory=ArtifactMetadata)

    @field_validator("front_matter", mode="before")
    @classmethod
    def _stringify_front_matter(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


class StepResult(BaseModel, Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None
    prompt: str = ""
    response: str = ""
