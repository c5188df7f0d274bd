# medimind/schemas/registry.py
"""Document schema registry — discovery via YAML file scanning.

Built-in document types live as YAML files in ``documents/`` alongside
this module.  The registry scans those files on first access, validates
them into frozen :class:`DocumentSchema` values and exposes them through
``get_schema()`` / ``list_schemas()``.

Schemas are immutable.  A new document type is added with
``register_schema()``; an existing one can never be patched in place.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from medimind.errors import UnknownDocumentType

logger = logging.getLogger(__name__)

__all__ = [
    "FieldKind",
    "EvidenceSource",
    "DEFAULT_WORDING",
    "DefaultPolicy",
    "FieldSpec",
    "ContextSpec",
    "DocumentSchema",
    "get_schema",
    "list_schemas",
    "register_schema",
    "load_schema_file",
]

FieldKind = Literal["scalar", "enum", "array-of-scalar", "array-of-record"]
EvidenceSource = Literal["document", "knowledge", "context"]

# Fixed default texts.  Document-sourced and knowledge fields must never share
# wording: the two carry different guarantees to the reader.
DEFAULT_WORDING: dict[str, str] = {
    "not_on_document": "Not specified on document",
    "not_determined": "Not determined",
    "not_specified": "Not specified",
    "assessment_not_determined": "Assessment not determined",
}

_SOURCE_WORDING: dict[str, str] = {
    "document": "not_on_document",
    "knowledge": "not_determined",
    "context": "not_specified",
}

_ARRAY_KINDS = frozenset({"array-of-scalar", "array-of-record"})


# ---------------------------------------------------------------------------
# Field-level descriptors
# ---------------------------------------------------------------------------


class DefaultPolicy(BaseModel):
    """How a missing value is filled in.

    ``literal``  -- use ``value`` verbatim.
    ``computed`` -- run the named ``rule`` over the sibling fields of the
                    same record; ``value`` is the rule's preferred output.
    ``drop``     -- no default; the enclosing record is discarded.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["literal", "computed", "drop"]
    value: Any = None
    rule: Optional[str] = None

    @model_validator(mode="after")
    def _check(self) -> "DefaultPolicy":
        if self.kind == "computed" and not self.rule:
            raise ValueError("computed default requires a 'rule'")
        if self.kind == "literal" and self.value is None:
            raise ValueError("literal default requires a 'value'")
        return self


class FieldSpec(BaseModel):
    """Specification for a single field of a document schema."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: FieldKind = "scalar"
    description: str = ""
    required: bool = False
    identity: bool = False
    source: EvidenceSource = "document"
    enum_values: tuple[str, ...] = ()
    fields: tuple["FieldSpec", ...] = ()
    default: DefaultPolicy

    @model_validator(mode="before")
    @classmethod
    def _resolve_default(cls, data: Any) -> Any:
        """Fill in the default policy implied by kind, source and identity."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw = data.get("default")
        kind = data.get("kind", "scalar")

        if raw is None and "wording" in data:
            raw = {"kind": "literal", "wording": data.pop("wording")}
        else:
            data.pop("wording", None)

        if isinstance(raw, DefaultPolicy):
            return data
        if raw is None:
            if data.get("identity"):
                raw = {"kind": "drop"}
            elif kind in _ARRAY_KINDS:
                raw = {"kind": "literal", "value": []}
            elif kind == "enum":
                raise ValueError(
                    f"enum field {data.get('name')!r} must declare a default value"
                )
            else:
                source = data.get("source", "document")
                raw = {"kind": "literal", "wording": _SOURCE_WORDING[source]}
        elif not isinstance(raw, dict):
            raw = {"kind": "literal", "value": raw}

        raw = dict(raw)
        wording = raw.pop("wording", None)
        if wording is not None:
            if wording not in DEFAULT_WORDING:
                raise ValueError(f"unknown default wording {wording!r}")
            raw["value"] = DEFAULT_WORDING[wording]
        data["default"] = raw
        return data

    @model_validator(mode="after")
    def _check_shape(self) -> "FieldSpec":
        if self.kind == "array-of-record":
            if not self.fields:
                raise ValueError(f"array-of-record field {self.name!r} needs nested fields")
            identities = [f.name for f in self.fields if f.identity]
            if len(identities) != 1:
                raise ValueError(
                    f"record field {self.name!r} must declare exactly one identity field, "
                    f"got {identities or 'none'}"
                )
        elif self.fields:
            raise ValueError(f"only array-of-record fields may nest fields ({self.name!r})")

        if self.kind == "enum":
            if not self.enum_values:
                raise ValueError(f"enum field {self.name!r} has no enum_values")
            if self.default.kind == "literal" and self.default.value not in self.enum_values:
                raise ValueError(
                    f"default {self.default.value!r} of {self.name!r} is not one of its enum values"
                )
        if self.identity and (self.kind != "scalar" or not self.required):
            raise ValueError(f"identity field {self.name!r} must be a required scalar")
        if self.default.kind == "drop" and not self.identity:
            raise ValueError(f"only identity fields may use the 'drop' default ({self.name!r})")
        return self

    @property
    def identity_field(self) -> Optional["FieldSpec"]:
        """The identity sub-field of an ``array-of-record`` field."""
        for sub in self.fields:
            if sub.identity:
                return sub
        return None

    def accepts(self, value: Any) -> bool:
        """Return True when *value* is a valid, populated value for this field."""
        if value is None:
            return False
        if self.kind == "scalar":
            return isinstance(value, str) and bool(value.strip())
        if self.kind == "enum":
            return value in self.enum_values
        if not isinstance(value, list):
            return False
        if self.kind == "array-of-scalar":
            return all(isinstance(v, str) and v.strip() for v in value)
        return all(
            isinstance(item, dict) and all(sub.accepts(item.get(sub.name)) for sub in self.fields)
            for item in value
        )


FieldSpec.model_rebuild()


class ContextSpec(BaseModel):
    """A named context input accepted alongside the document payload."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str = ""
    description: str = ""
    required: bool = False
    multiple: bool = False

    @property
    def display_label(self) -> str:
        return self.label or self.name.replace("_", " ").capitalize()


# ---------------------------------------------------------------------------
# Schema descriptor
# ---------------------------------------------------------------------------


class DocumentSchema(BaseModel):
    """Declarative output contract for one document type."""

    model_config = ConfigDict(frozen=True)

    name: str
    title: str = ""
    description: str = ""
    version: str = "1"
    payload: Literal["required", "optional", "none"] = "required"
    conversational: bool = False
    context: tuple[ContextSpec, ...] = ()
    instructions: str = ""
    disclaimer: Optional[str] = None
    outcome: Literal["records", "object"] = "object"
    signal_fields: tuple[str, ...] = ()
    messages: dict[str, str] = Field(default_factory=dict)
    fields: tuple[FieldSpec, ...]

    @field_validator("fields")
    @classmethod
    def _no_top_level_identity(cls, value: tuple[FieldSpec, ...]) -> tuple[FieldSpec, ...]:
        for spec in value:
            if spec.identity:
                raise ValueError(f"identity field {spec.name!r} must live inside a record")
        names = [spec.name for spec in value]
        if len(names) != len(set(names)):
            raise ValueError("duplicate top-level field names")
        return value

    @model_validator(mode="after")
    def _check_signals(self) -> "DocumentSchema":
        known = {f.name for f in self.fields}
        unknown = [name for name in self.signal_fields if name not in known]
        if unknown:
            raise ValueError(f"signal fields not declared in schema {self.name!r}: {unknown}")
        if self.outcome == "records":
            for name in self.effective_signal_fields:
                if self.field(name).kind != "array-of-record":
                    raise ValueError(
                        f"records schema {self.name!r} signals on non-record field {name!r}"
                    )
        return self

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    @property
    def effective_signal_fields(self) -> tuple[str, ...]:
        """Fields that decide between success and success_empty."""
        if self.signal_fields:
            return self.signal_fields
        if self.outcome == "records":
            return tuple(f.name for f in self.fields if f.kind == "array-of-record")
        return tuple(f.name for f in self.fields)

    @property
    def primary_record_field(self) -> Optional[FieldSpec]:
        """The single record collection of a ``records`` schema, if unambiguous."""
        records = [f for f in self.fields if f.kind == "array-of-record"]
        return records[0] if self.outcome == "records" and len(records) == 1 else None

    def validate_result(self, result: Any) -> list[str]:
        """Return a list of problems; empty when *result* satisfies the schema."""
        if not isinstance(result, dict):
            return [f"result is {type(result).__name__}, expected dict"]
        problems: list[str] = []
        for spec in self.fields:
            if spec.name not in result:
                problems.append(f"missing field {spec.name!r}")
            elif not spec.accepts(result[spec.name]):
                problems.append(f"invalid value for {spec.name!r}: {result[spec.name]!r}")
        return problems


# ---------------------------------------------------------------------------
# YAML scanning
# ---------------------------------------------------------------------------

_DOCUMENTS_DIR = Path(__file__).parent / "documents"

_lock = threading.Lock()
_cache: dict[str, DocumentSchema] | None = None


def load_schema_file(path: Path) -> DocumentSchema:
    """Parse and validate one YAML schema definition."""
    import yaml

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: expected a mapping at the top level")
    data.setdefault("name", path.stem)
    return DocumentSchema.model_validate(data)


def _scan_yaml_schemas() -> dict[str, DocumentSchema]:
    """Scan the built-in ``documents/`` directory."""
    schemas: dict[str, DocumentSchema] = {}
    if not _DOCUMENTS_DIR.is_dir():
        return schemas
    for path in sorted(_DOCUMENTS_DIR.glob("*.yaml")):
        schema = load_schema_file(path)
        if schema.name in schemas:
            raise ValueError(f"duplicate document type {schema.name!r} in {path.name}")
        schemas[schema.name] = schema
        logger.debug("Registered document type %s (v%s)", schema.name, schema.version)
    return schemas


def _ensure_loaded() -> dict[str, DocumentSchema]:
    """Populate the cache on first access."""
    global _cache
    if _cache is None:
        with _lock:
            if _cache is None:
                _cache = _scan_yaml_schemas()
    return _cache


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_schema(document_type: str) -> DocumentSchema:
    """Return the schema registered for *document_type*.

    Raises :class:`UnknownDocumentType` if it is not registered.
    """
    schemas = _ensure_loaded()
    key = str(document_type or "").strip().lower().replace("-", "_")
    if key not in schemas:
        raise UnknownDocumentType(document_type, sorted(schemas))
    return schemas[key]


def list_schemas() -> list[DocumentSchema]:
    """Return all registered schemas ordered by name."""
    schemas = _ensure_loaded()
    return [schemas[name] for name in sorted(schemas)]


def register_schema(schema: DocumentSchema) -> DocumentSchema:
    """Register a new document type.

    Raises ``ValueError`` if the name is already taken.
    """
    global _cache
    schemas = _ensure_loaded()
    with _lock:
        if schema.name in schemas:
            raise ValueError(
                f"Document type {schema.name!r} is already registered; "
                "register a new type instead of replacing it"
            )
        _cache = {**schemas, schema.name: schema}
    logger.info("Registered document type %s", schema.name)
    return schema
