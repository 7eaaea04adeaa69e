"""JSON extraction from free-form oracle answers.

Strategies are tried in order and the first one whose candidate parses as
JSON wins:

1. ``fenced`` - the body of the first ```json fenced block
2. ``whole`` - the entire response
3. ``balanced`` - the first balanced ``{...}`` substring
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

_FENCED_JSON = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def fenced_block(text: str) -> str | None:
    match = _FENCED_JSON.search(text)
    return match.group(1) if match else None


def whole_response(text: str) -> str | None:
    stripped = text.strip()
    return stripped or None


def balanced_object(text: str) -> str | None:
    """First `{...}` whose braces balance, skipping braces inside JSON strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
        elif c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    candidate: Callable[[str], str | None]


@dataclass(frozen=True)
class Extraction:
    strategy: str
    value: Any


STRATEGIES = (
    ExtractionStrategy("fenced", fenced_block),
    ExtractionStrategy("whole", whole_response),
    ExtractionStrategy("balanced", balanced_object),
)


class JSONExtractionError(ValueError):
    pass


def extract_json(text: str, strategies=STRATEGIES) -> Extraction:
    for strategy in strategies:
        candidate = strategy.candidate(text)
        if candidate is None:
            continue
        try:
            return Extraction(strategy.name, json.loads(candidate))
        except json.JSONDecodeError:
            continue
    raise JSONExtractionError("Could not parse JSON from response")
