import logging
import re
from pathlib import Path
from typing import Mapping, Protocol

from docsmith.errors import TemplateNotFoundError, UnresolvedVariableError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class TemplateStore(Protocol):
    def get(self, template_id: str) -> str: ...

    def ids(self) -> list[str]: ...


class InMemoryTemplateStore:
    def __init__(self, templates: Mapping[str, str]):
        self._templates = dict(templates)

    def get(self, template_id: str) -> str:
        try:
            return self._templates[template_id]
        except KeyError:
            raise TemplateNotFoundError(template_id) from None

    def ids(self) -> list[str]:
        return sorted(self._templates)


class FileTemplateStore(InMemoryTemplateStore):
    """Loads every `<category>/<name>.md` under a directory once, as `category/name` ids."""

    def __init__(self, root: Path):
        root = Path(root)
        templates: dict[str, str] = {}
        if root.is_dir():
            for path in sorted(root.glob("*/*.md")):
                templates[f"{path.parent.name}/{path.stem}"] = path.read_text(encoding="utf-8")
        else:
            logger.warning("Prompt directory not found: %s", root)
        super().__init__(templates)
        logger.info("Loaded %d prompt templates from %s", len(templates), root)


def template_variables(template: str) -> list[str]:
    names: list[str] = []
    for name in _PLACEHOLDER.findall(template):
        if name not in names:
            names.append(name)
    return names


def render_template(
    template_id: str,
    template: str,
    variables: Mapping[str, str],
    strict: bool = False,
) -> str:
    """Substitute `{{key}}` placeholders.

    Placeholders without a value are left in place. With `strict` they raise
    UnresolvedVariableError, otherwise they are only logged.
    """
    rendered = _PLACEHOLDER.sub(
        lambda m: str(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
        template,
    )

    unresolved = [name for name in template_variables(template) if name not in variables]
    if unresolved:
        error = UnresolvedVariableError(template_id, unresolved)
        if strict:
            raise error
        logger.warning("%s", error)

    return rendered
