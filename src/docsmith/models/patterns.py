from pydantic import Field

from docsmith.models.content import _ContractModel


class SectionDefinition(_ContractModel):
    name: str
    position: int
    required: bool = False
    allow_multiple: bool = False
    terminal: bool = False
    alternate_names: list[str] = []


class ContentPattern(_ContractModel):
    id: str
    name: str
    purpose: str = ""
    description: str = ""
    front_matter: dict[str, str] = {}
    required_sections: list[str] = []
    section_order: list[SectionDefinition] = []
    terminal_sections: list[str] = []
    markdown_template: str = ""

    def describe(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "purpose": self.purpose,
            "requiredSections": self.required_sections,
        }


class ContentStandards(_ContractModel):
    version: str = "1.0"
    document_purpose: str = ""
    content_types: list[ContentPattern] = Field(default_factory=list)
