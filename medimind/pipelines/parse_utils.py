"""Turn a model's free-text answer into JSON-compatible Python data.

Models asked for "one JSON object" still wrap it in markdown fences, add a
sentence before or after it, answer with Python literals, leave trailing
commas or stop mid-object when they hit the token limit.  Parsing goes from
strict to lenient:

1. ``json.loads`` on the fenced content and on the embedded JSON region;
2. ``ast.literal_eval`` for Python-literal answers (single quotes, ``None``);
3. ``json_repair`` on the embedded JSON region.

The result only ever contains dicts, lists, strings, numbers, booleans and
``None``: sets and tuples produced by ``literal_eval`` become lists.
"""

from __future__ import annotations

import ast
import json
import re
from typing import Any

from json_repair import repair_json

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)

_MAX_LITERAL_CHARS = 200_000


def strip_markdown_fences(text: str) -> str:
    """Return the content of the first fenced block, or *text* unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def json_region(text: str) -> str | None:
    """Text from the first ``{``/``[`` to its last matching closer.

    When the closer is missing (a truncated answer) the region runs to the
    end of *text*.  ``None`` if there is no opener at all.
    """
    starts = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    return text[start:end + 1] if end > start else text[start:]


def to_json_compatible(value: Any) -> Any:
    """Recursively replace sets/tuples with lists and stringify odd dict keys."""
    if isinstance(value, dict):
        return {
            key if isinstance(key, str) else str(key): to_json_compatible(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return [to_json_compatible(item) for item in sorted(value, key=repr)]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _strict(text: str) -> Any | None:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _python_literal(text: str) -> Any | None:
    if len(text) > _MAX_LITERAL_CHARS:
        return None
    try:
        return ast.literal_eval(text)
    except (SyntaxError, ValueError, TypeError, MemoryError, RecursionError):
        return None


def _repaired(region: str) -> Any | None:
    repaired = repair_json(region, return_objects=True)
    # repair_json answers "" when it finds nothing to salvage.
    return repaired if isinstance(repaired, (dict, list)) else None


def parse_json_like(raw: str | None) -> Any | None:
    """Parse JSON-like model output; ``None`` when nothing parseable is found."""
    text = strip_markdown_fences(raw or "")
    if not text:
        return None

    region = json_region(text)
    candidates = [text] if region in (None, text) else [text, region]

    for parse in (_strict, _python_literal):
        for candidate in candidates:
            parsed = parse(candidate)
            if parsed is not None:
                return to_json_compatible(parsed)

    if region is None:
        return None
    parsed = _repaired(region)
    return to_json_compatible(parsed) if parsed is not None else None
