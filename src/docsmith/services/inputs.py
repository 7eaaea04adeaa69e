import logging
from pathlib import Path
from typing import Iterable, Protocol
from urllib.parse import urlparse

from docsmith.errors import InputProcessingError
from docsmith.models.content import InputDescriptor, InputType, ProcessedContent

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    ".docx": InputType.WORD_DOC,
    ".doc": InputType.WORD_DOC,
    ".pdf": InputType.PDF,
    ".pptx": InputType.POWERPOINT,
    ".ppt": InputType.POWERPOINT,
    ".txt": InputType.TEXT,
    ".md": InputType.TEXT,
    ".markdown": InputType.TEXT,
}


class InputAdapter(Protocol):
    def process(self, descriptor: InputDescriptor) -> ProcessedContent: ...


def detect_input_type(name: str, uri: str = "") -> InputType:
    # URLs first: a URL path may carry a file extension
    parsed = urlparse(uri.lower())
    if parsed.scheme in ("http", "https"):
        if (parsed.hostname or "").endswith("github.com") and "/pull/" in parsed.path:
            return InputType.GITHUB_PR
        return InputType.URL

    return _EXTENSIONS.get(Path(name or uri).suffix.lower(), InputType.UNKNOWN)


class TextAdapter:
    """Reads plain text and markdown files as-is."""

    def process(self, descriptor: InputDescriptor) -> ProcessedContent:
        path = Path(descriptor.uri)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise InputProcessingError(f"Cannot read {descriptor.name}: {e}") from e

        return ProcessedContent(
            source=descriptor.name,
            type=InputType.TEXT,
            text=text,
            metadata={"path": str(path), "characters": len(text)},
        )


class AdapterRegistry:
    """Capability-keyed adapters, registered explicitly at startup."""

    def __init__(self):
        self._adapters: dict[InputType, InputAdapter] = {}

    @classmethod
    def default(cls) -> "AdapterRegistry":
        registry = cls()
        registry.register(InputType.TEXT, TextAdapter())
        return registry

    def register(self, input_type: InputType, adapter: InputAdapter) -> None:
        self._adapters[input_type] = adapter

    def supported_types(self) -> list[InputType]:
        return list(self._adapters)

    def process(self, descriptor: InputDescriptor) -> ProcessedContent:
        input_type = descriptor.type
        if input_type == InputType.UNKNOWN:
            input_type = detect_input_type(descriptor.name, descriptor.uri)
            descriptor = descriptor.model_copy(update={"type": input_type})

        adapter = self._adapters.get(input_type)
        if adapter is None:
            raise InputProcessingError(f"No adapter available for input type: {input_type.value}")

        logger.debug("Processing input %s as %s", descriptor.name, input_type.value)
        return adapter.process(descriptor)

    def process_all(
        self, descriptors: Iterable[InputDescriptor]
    ) -> tuple[list[ProcessedContent], list[str]]:
        contents = []
        errors = []
        for descriptor in descriptors:
            try:
                contents.append(self.process(descriptor))
            except InputProcessingError as e:
                logger.warning("Skipping input %s: %s", descriptor.name, e)
                errors.append(str(e))

        logger.info("Processed %d inputs (%d failed)", len(contents), len(errors))
        return contents, errors
