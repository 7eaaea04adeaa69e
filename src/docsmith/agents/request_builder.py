import logging
from datetime import datetime, timezone
from typing import Sequence

from docsmith.config import DEFAULT_AUDIENCE, DEFAULT_CONTENT_TYPE, MATERIAL_PREVIEW_LENGTH
from docsmith.models.content import ContentRequest, InputMaterial, ProcessedContent

logger = logging.getLogger(__name__)


def build_content_request(
    goal: str,
    contents: Sequence[ProcessedContent] = (),
    audience: str | None = None,
    content_type: str | None = None,
    preview_length: int = MATERIAL_PREVIEW_LENGTH,
) -> ContentRequest:
    if not goal or not goal.strip():
        raise ValueError("A content goal is required")

    materials = tuple(
        InputMaterial(
            source=item.source,
            type=item.type.value,
            preview=item.text[:preview_length],
        )
        for item in contents
    )

    logger.info("Built content request with %d input materials", len(materials))

    return ContentRequest(
        goal=goal.strip(),
        audience=audience or DEFAULT_AUDIENCE,
        content_type=content_type or DEFAULT_CONTENT_TYPE,
        input_materials=materials,
        timestamp=datetime.now(timezone.utc),
    )


def render_source_materials(contents: Sequence[ProcessedContent]) -> str:
    if not contents:
        return "No source materials were provided."
    return "\n\n".join(f"### {item.source} ({item.type.value})\n{item.text}" for item in contents)
