from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _ContractModel(BaseModel):
    """Base model that speaks the camelCase JSON contract and revalidates copies."""
    model_config = ConfigDict(
        revalidate_instances="always",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class InputType(str, Enum):
    WORD_DOC = "word"
    PDF = "pdf"
    POWERPOINT = "powerpoint"
    GITHUB_PR = "github_pr"
    URL = "url"
    TEXT = "text"
    UNKNOWN = "unknown"


class InputDescriptor(_ContractModel):
    uri: str
    name: str
    type: InputType = InputType.UNKNOWN


class ProcessedContent(_ContractModel):
    source: str
    type: InputType
    text: str
    metadata: dict[str, Any] | None = None


class InputMaterial(_ContractModel):
    model_config = ConfigDict(frozen=True)

    source: str
    type: str
    preview: str


class ContentRequest(_ContractModel):
    model_config = ConfigDict(frozen=True)

    goal: str
    audience: str
    content_type: str
    input_materials: tuple[InputMaterial, ...] = ()
    timestamp: datetime


class RepositoryAnalysis(_ContractModel):
    root_path: str
    project_type: str
    documentation_dirs: list[str] = []
    markdown_file_count: int = 0
    config_files: list[str] = []
    organization_pattern: str
