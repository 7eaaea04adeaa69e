import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from docsmith.models.patterns import ContentPattern, ContentStandards

logger = logging.getLogger(__name__)

_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")
_NUMBERING = re.compile(r"^(step\s+)?\d+[.):]?\s+", re.IGNORECASE)

DEFAULT_STANDARDS = {
    "version": "1.0",
    "documentPurpose": "Default content standards for technical documentation",
    "contentTypes": [
        {
            "id": "overview",
            "name": "Overview",
            "purpose": "High-level service introductions and feature comparisons",
            "description": "Explains what a product or feature is, who it is for and when to use it",
            "frontMatter": {"title": "Overview title", "description": "One-sentence summary", "ms.topic": "overview"},
            "requiredSections": ["Key Features", "Use Cases", "Related Content"],
            "sectionOrder": [
                {"name": "Key Features", "position": 1, "required": True},
                {"name": "Use Cases", "position": 2, "required": True},
                {"name": "Limitations", "position": 3},
                {"name": "Related Content", "position": 99, "required": True, "terminal": True},
            ],
            "terminalSections": ["Related Content"],
            "markdownTemplate": "# {{title}}\n\n{{description}}\n\n## Key Features\n\n## Use Cases\n\n## Related Content\n",
        },
        {
            "id": "concept",
            "name": "Concept",
            "purpose": "Deep-dive explanations of how things work",
            "description": "Builds the mental model a reader needs before doing tasks",
            "frontMatter": {"title": "Concept title", "description": "One-sentence summary", "ms.topic": "concept-article"},
            "requiredSections": ["How It Works", "Key Concepts", "Related Content"],
            "sectionOrder": [
                {"name": "How It Works", "position": 1, "required": True},
                {"name": "Key Concepts", "position": 2, "required": True, "allowMultiple": True},
                {"name": "Related Content", "position": 99, "required": True, "terminal": True},
            ],
            "terminalSections": ["Related Content"],
            "markdownTemplate": "# {{title}}\n\n{{description}}\n\n## How It Works\n\n## Key Concepts\n\n## Related Content\n",
        },
        {
            "id": "quickstart",
            "name": "Quickstart",
            "purpose": "Getting users up and running quickly (under 10 minutes)",
            "description": "Shortest path to a first working result",
            "frontMatter": {"title": "Quickstart title", "description": "One-sentence summary", "ms.topic": "quickstart"},
            "requiredSections": ["Prerequisites", "Procedure", "Next Steps"],
            "sectionOrder": [
                {"name": "Prerequisites", "position": 1, "required": True},
                {"name": "Procedure", "position": 2, "required": True, "allowMultiple": True},
                {"name": "Verify the Results", "position": 3, "alternateNames": ["Verify"]},
                {"name": "Clean Up Resources", "position": 4, "alternateNames": ["Clean Up"]},
                {"name": "Next Steps", "position": 99, "required": True, "terminal": True},
            ],
            "terminalSections": ["Next Steps"],
            "markdownTemplate": "# Quickstart: {{title}}\n\n{{description}}\n\n## Prerequisites\n\n## Procedure\n\n## Next Steps\n",
        },
        {
            "id": "howto",
            "name": "How-to Guide",
            "purpose": "Step-by-step task completion with options and decisions",
            "description": "Task-focused instructions for readers who know what they want to do",
            "frontMatter": {"title": "How-to title", "description": "One-sentence summary", "ms.topic": "how-to"},
            "requiredSections": ["Prerequisites", "Procedure", "Next Steps"],
            "sectionOrder": [
                {"name": "Prerequisites", "position": 1, "required": True},
                {"name": "Procedure", "position": 2, "required": True, "allowMultiple": True},
                {"name": "Troubleshooting", "position": 3},
                {"name": "Next Steps", "position": 99, "required": True, "terminal": True},
            ],
            "terminalSections": ["Next Steps"],
            "markdownTemplate": "# How to {{title}}\n\n{{description}}\n\n## Prerequisites\n\n## Procedure\n\n## Next Steps\n",
        },
        {
            "id": "tutorial",
            "name": "Tutorial",
            "purpose": "Guided learning experiences with specific scenarios",
            "description": "End-to-end scenario that teaches by building something",
            "frontMatter": {"title": "Tutorial title", "description": "One-sentence summary", "ms.topic": "tutorial"},
            "requiredSections": ["Prerequisites", "Summary", "Next Steps"],
            "sectionOrder": [
                {"name": "Prerequisites", "position": 1, "required": True},
                {"name": "Steps", "position": 2, "allowMultiple": True},
                {"name": "Summary", "position": 3, "required": True},
                {"name": "Next Steps", "position": 99, "required": True, "terminal": True},
            ],
            "terminalSections": ["Next Steps"],
            "markdownTemplate": "# Tutorial: {{title}}\n\n{{description}}\n\n## Prerequisites\n\n## Summary\n\n## Next Steps\n",
        },
        {
            "id": "technical-guide",
            "name": "Technical Guide",
            "purpose": "Comprehensive technical documentation for developers and technical users",
            "description": "In-depth technical guide covering implementation, configuration, and best practices",
            "frontMatter": {"title": "Technical guide title", "description": "Brief description of the guide", "author": "author-name"},
            "requiredSections": ["Introduction", "Prerequisites", "Implementation", "Related Resources"],
            "sectionOrder": [
                {"name": "Introduction", "position": 1, "required": True},
                {"name": "Prerequisites", "position": 2, "required": True},
                {"name": "Implementation", "position": 3, "required": True, "allowMultiple": True},
                {"name": "Best Practices", "position": 4},
                {"name": "Related Resources", "position": 99, "required": True, "terminal": True},
            ],
            "terminalSections": ["Related Resources"],
            "markdownTemplate": "# {{title}}\n\n{{description}}\n\n## Introduction\n\n## Prerequisites\n\n## Implementation\n\n## Best Practices\n\n## Related Resources\n",
        },
        {
            "id": "api-docs",
            "name": "API Documentation",
            "purpose": "Document APIs, endpoints, and integration guides",
            "description": "Comprehensive API documentation with examples and integration guides",
            "frontMatter": {"title": "API documentation title", "description": "API overview and usage guide", "author": "author-name"},
            "requiredSections": ["Overview", "Authentication", "Endpoints", "Examples", "Error Handling", "References"],
            "sectionOrder": [
                {"name": "Overview", "position": 1, "required": True},
                {"name": "Authentication", "position": 2, "required": True},
                {"name": "Endpoints", "position": 3, "required": True, "allowMultiple": True},
                {"name": "Examples", "position": 4, "required": True},
                {"name": "Error Handling", "position": 5, "required": True},
                {"name": "References", "position": 99, "required": True, "terminal": True},
            ],
            "terminalSections": ["References"],
            "markdownTemplate": "# {{title}}\n\n{{description}}\n\n## Overview\n\n## Authentication\n\n## Endpoints\n\n## Examples\n\n## Error Handling\n\n## References\n",
        },
    ],
}


@dataclass
class PatternCheck:
    missing_required: list[str] = field(default_factory=list)
    misplaced_terminal: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.missing_required and not self.misplaced_terminal


def extract_headings(content: str, max_level: int = 6) -> list[str]:
    """Markdown ATX headings in document order, ignoring fenced code blocks."""
    headings = []
    in_fence = False
    for line in content.splitlines():
        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING.match(line)
        if match and len(match.group(1)) <= max_level:
            headings.append(match.group(2))
    return headings


def _normalize(text: str) -> str:
    text = " ".join(text.lower().split())
    return _NUMBERING.sub("", text).rstrip(" .:")


def heading_matches(heading: str, section: str) -> bool:
    heading = _normalize(heading)
    section = _normalize(section)
    if heading == section:
        return True
    return heading.startswith(section) and not heading[len(section)].isalnum()


def find_section(headings: list[str], section: str, alternates: list[str] | None = None) -> int:
    """Index of the first heading matching `section` or one of its alternates, -1 if absent."""
    names = [section, *(alternates or [])]
    for index, heading in enumerate(headings):
        if any(heading_matches(heading, name) for name in names):
            return index
    return -1


class PatternCatalog:
    """Read-only registry of content patterns, loaded once."""

    def __init__(self, standards: ContentStandards):
        self._standards = standards
        self._by_id = {pattern.id: pattern for pattern in standards.content_types}

    @classmethod
    def builtin(cls) -> "PatternCatalog":
        return cls(ContentStandards.model_validate(DEFAULT_STANDARDS))

    @classmethod
    def load(cls, path: str | Path | None) -> "PatternCatalog":
        if not path:
            return cls.builtin()

        path = Path(path)
        if not path.exists():
            logger.warning("Content standards file not found: %s, using built-in patterns", path)
            return cls.builtin()

        try:
            standards = ContentStandards.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("Failed to load content standards from %s: %s", path, e)
            return cls.builtin()

        if not standards.content_types:
            logger.warning("Content standards file %s defines no patterns, using built-in patterns", path)
            return cls.builtin()

        logger.info("Loaded content standards: %d patterns", len(standards.content_types))
        return cls(standards)

    @property
    def version(self) -> str:
        return self._standards.version

    def get_available_patterns(self) -> list[ContentPattern]:
        return list(self._standards.content_types)

    def get_pattern_by_id(self, pattern_id: str) -> ContentPattern | None:
        return self._by_id.get(pattern_id)

    def describe(self) -> list[dict]:
        return [pattern.describe() for pattern in self._standards.content_types]

    def validate_content(self, content: str, pattern: ContentPattern) -> PatternCheck:
        headings = extract_headings(content)
        alternates = {s.name: s.alternate_names for s in pattern.section_order}
        terminal = set(pattern.terminal_sections) | {s.name for s in pattern.section_order if s.terminal}

        check = PatternCheck()
        positions = {}
        for section in pattern.required_sections:
            index = find_section(headings, section, alternates.get(section))
            if index == -1:
                check.missing_required.append(section)
            else:
                positions[section] = index

        body_end = max((i for s, i in positions.items() if s not in terminal), default=-1)
        for section in sorted(terminal):
            index = find_section(headings, section, alternates.get(section))
            if index != -1 and index < body_end:
                check.misplaced_terminal.append(section)

        return check
