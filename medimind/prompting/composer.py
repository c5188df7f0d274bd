"""Prompt composer — renders a schema and a request into model instructions.

The composed prompt encodes, per field, which evidence source is
authoritative:

* ``document``  -- only what the document states; null otherwise.
* ``knowledge`` -- general medical knowledge, even when the document is silent.
* ``context``   -- the document when it states it; null otherwise.

The normalizer relies on the same classification to pick the wording of a
default, so the two must stay in step.  Composition is a pure function of
``(schema, request)``.
"""

from __future__ import annotations

import json
import re
import textwrap
from dataclasses import dataclass, field
from typing import Any, Optional

from medimind.errors import CompositionError
from medimind.history import ChatHistory
from medimind.models import ExtractionRequest
from medimind.payload import DocumentPayload
from medimind.schemas.registry import DocumentSchema, FieldSpec

__all__ = ["Prompt", "compose", "build_output_shape", "build_response_skeleton"]

_EVIDENCE_GUIDANCE: dict[str, str] = {
    "document": "Extract ONLY from the document. If it is not stated there, use null. Never guess.",
    "knowledge": "Answer from your general medical knowledge, even when the document does not state it.",
    "context": "Use the document when it states this; otherwise use null.",
}

_ABSENT_CONTEXT = {"", "unspecified", "none", "null", "n/a"}

_LIST_SPLIT_RE = re.compile(r"[\n;,]+")


@dataclass(frozen=True)
class Prompt:
    """Everything the generation invoker sends to the backend."""

    document_type: str
    instructions: str
    document: Optional[DocumentPayload] = None
    context: tuple[tuple[str, str], ...] = ()
    history: ChatHistory = field(default_factory=ChatHistory)
    output_shape: dict[str, Any] = field(default_factory=dict)

    @property
    def has_media(self) -> bool:
        return self.document is not None and not self.document.is_text

    def render(self) -> str:
        """Return the full prompt text (media payloads are sent separately)."""
        parts = [self.instructions]
        if self.document is not None and self.document.is_text:
            parts.append("Document\n--------\n" + (self.document.text or "").strip())
        elif self.document is not None:
            parts.append(
                "Document\n--------\n"
                f"The document is attached as media ({self.document.mime_type})."
            )
        return "\n\n".join(parts).strip() + "\n"


# ---------------------------------------------------------------------------
# Shape descriptors
# ---------------------------------------------------------------------------


def _field_shape(spec: FieldSpec) -> dict[str, Any]:
    desc = spec.description.strip()
    if spec.kind == "scalar":
        shape: dict[str, Any] = {"type": ["string", "null"]}
    elif spec.kind == "enum":
        shape = {"type": ["string", "null"], "enum": list(spec.enum_values)}
    elif spec.kind == "array-of-scalar":
        shape = {"type": "array", "items": {"type": "string"}}
    else:
        props = {sub.name: _field_shape(sub) for sub in spec.fields}
        identity = spec.identity_field
        shape = {
            "type": "array",
            "items": {
                "type": "object",
                "properties": props,
                "required": [identity.name] if identity else [],
            },
        }
    if desc:
        shape["description"] = desc
    shape["x-evidence"] = spec.source
    return shape


def build_output_shape(schema: DocumentSchema) -> dict[str, Any]:
    """Machine-checkable JSON-Schema-like descriptor of the expected output."""
    return {
        "title": schema.title or schema.name,
        "type": "object",
        "properties": {spec.name: _field_shape(spec) for spec in schema.fields},
        "required": [spec.name for spec in schema.fields if spec.required],
        "additionalProperties": False,
    }


def _skeleton_value(spec: FieldSpec) -> Any:
    if spec.kind == "array-of-record":
        return [{sub.name: _skeleton_value(sub) for sub in spec.fields}]
    if spec.kind == "array-of-scalar":
        return []
    return None


def build_response_skeleton(schema: DocumentSchema) -> dict[str, Any]:
    """Response template with nulls / empty containers, in field order."""
    return {spec.name: _skeleton_value(spec) for spec in schema.fields}


# ---------------------------------------------------------------------------
# Guidance blocks
# ---------------------------------------------------------------------------


def _field_guidance(fields: tuple[FieldSpec, ...], indent: int = 0) -> list[str]:
    pad = "  " * indent
    lines: list[str] = []
    for spec in fields:
        flags = []
        if spec.identity:
            flags.append("identity: omit the entry entirely if this is unknown")
        elif spec.required:
            flags.append("required")
        if spec.kind == "enum":
            flags.append("one of: " + ", ".join(spec.enum_values))
        if spec.kind in {"array-of-scalar", "array-of-record"}:
            flags.append("JSON array")
        head = f"{pad}- {spec.name}"
        if flags:
            head += f" ({'; '.join(flags)})"
        if spec.description:
            head += f": {' '.join(spec.description.split())}"
        lines.append(head)
        if spec.kind != "array-of-record":
            lines.append(f"{pad}  Evidence: {_EVIDENCE_GUIDANCE[spec.source]}")
        else:
            lines.extend(_field_guidance(spec.fields, indent + 1))
    return lines


def _split_multi(value: str) -> list[str]:
    return [part.strip() for part in _LIST_SPLIT_RE.split(value) if part.strip()]


def _resolve_context(schema: DocumentSchema, request: ExtractionRequest) -> tuple[tuple[str, str], ...]:
    supplied = {
        str(key).strip().lower(): str(value).strip()
        for key, value in (request.context or {}).items()
        if value is not None
    }
    resolved: list[tuple[str, str]] = []
    for spec in schema.context:
        value = supplied.get(spec.name.lower(), "")
        if value.lower() in _ABSENT_CONTEXT:
            value = ""
        if spec.multiple and value:
            value = "\n".join(_split_multi(value))
        if not value:
            if spec.required:
                raise CompositionError(
                    f"{schema.title or schema.name} requires '{spec.name}'", field=spec.name
                )
            continue
        resolved.append((spec.name, value))
    return tuple(resolved)


def _context_block(schema: DocumentSchema, context: tuple[tuple[str, str], ...]) -> list[str]:
    if not schema.context:
        return []
    values = dict(context)
    lines = ["Input", "-----"]
    for spec in schema.context:
        if spec.name not in values:
            if spec.name == "patient_information":
                lines.append(f"- {spec.display_label}: No additional patient information provided.")
            continue
        value = values[spec.name]
        if spec.multiple:
            lines.append(f"- {spec.display_label}:")
            lines.extend(f"  - {item}" for item in value.splitlines())
        else:
            lines.append(f"- {spec.display_label}: {value}")
    return lines


def _history_block(history: ChatHistory) -> list[str]:
    if not len(history):
        return []
    lines = ["Conversation so far", "-------------------"]
    for turn in history.turns:
        who = "User" if turn.speaker == "user" else "Model"
        lines.append(f"{who}: {turn.text.strip()}")
    return lines


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def compose(schema: DocumentSchema, request: ExtractionRequest) -> Prompt:
    """Render *request* into a :class:`Prompt` for *schema*.

    Raises :class:`CompositionError` when a mandatory payload or context
    value is missing, or a payload is given to a schema that takes none.
    """
    if schema.payload == "required" and request.payload is None:
        raise CompositionError(
            f"{schema.title or schema.name} requires a document payload", field="payload"
        )
    if schema.payload == "none" and request.payload is not None:
        raise CompositionError(
            f"{schema.title or schema.name} does not accept a document payload", field="payload"
        )

    context = _resolve_context(schema, request)
    history = request.history if schema.conversational else ChatHistory()

    skeleton = json.dumps(build_response_skeleton(schema), indent=2, ensure_ascii=False)
    lines = [textwrap.dedent(schema.instructions).strip(), ""]

    # History precedes the latest message.
    history_lines = _history_block(history)
    if history_lines:
        lines.extend(history_lines + [""])
    context_lines = _context_block(schema, context)
    if context_lines:
        lines.extend(context_lines + [""])

    lines.extend(
        [
            "Field guidance",
            "--------------",
            *_field_guidance(schema.fields),
            "",
            "Rules",
            "-----",
            "- Return ONLY a JSON object. No markdown, no commentary, no extra keys.",
            "- Use JSON arrays for list fields, even when there is a single entry.",
            "- Use null for any value you cannot provide under its evidence rule.",
            "",
            "Response skeleton (strict key order):",
            skeleton,
        ]
    )

    return Prompt(
        document_type=schema.name,
        instructions="\n".join(lines).strip(),
        document=request.payload,
        context=context,
        history=history,
        output_shape=build_output_shape(schema),
    )
