# medimind/pipelines/normalizer.py
"""Normalizer / repairer — turn an untrusted candidate into a schema-valid result.

``normalize(candidate, schema)`` is total: for any candidate (including
``None``) it returns a dict with every declared field present and valid.
Repairs are deterministic and driven entirely by the schema:

1. Keys are matched case- and style-insensitively
   (``commonSideEffects`` -> ``common_side_effects``); unknown keys go.
2. Nullish strings (``"null"``, ``"N/A"`` ...) count as missing.
3. Scalars are coerced to text; enums are matched case-insensitively.
4. A bare value where a list is expected becomes a one-element list.
5. Records without an identity value are dropped.
6. Missing values receive the field's default policy.  Computed defaults
   run last so they can look at normalized siblings.

Because the result is built bottom-up from canonical values only, running
``normalize`` on its own output changes nothing.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from medimind.schemas.registry import (
    DEFAULT_WORDING,
    DocumentSchema,
    FieldSpec,
    get_schema,
)

logger = logging.getLogger(__name__)

__all__ = [
    "NormalizationReport",
    "COMPUTED_RULES",
    "normalize",
    "normalize_with_report",
    "register_rule",
]

_NULLISH = frozenset({
    "",
    "none",
    "null",
    "nil",
    "n/a",
    "not available",
    "undefined",
    "unknown",
})

_KEY_STRIP_RE = re.compile(r"[\s_\-]+")
_ENUM_TRIM = " \t\r\n.,;:!\"'`()[]"


def _is_nullish_string(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return value.strip().lower() in _NULLISH


def _is_missing_value(value: Any) -> bool:
    return value is None or _is_nullish_string(value)


def _canonical_key(key: Any) -> str:
    return _KEY_STRIP_RE.sub("", str(key).lower())


_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _as_items(raw: Any) -> list[Any]:
    """List view of a sequence value; sets come out in a stable order."""
    if isinstance(raw, (set, frozenset)):
        return sorted(raw, key=repr)
    return list(raw)


def _json_fallback(value: Any) -> Any:
    if isinstance(value, (set, frozenset, tuple)):
        return _as_items(value)
    return str(value)


# ---------------------------------------------------------------------------
# Computed default rules
# ---------------------------------------------------------------------------

# A rule receives (field spec, normalized sibling values, enclosing record spec)
# and returns the value to use.
ComputedRule = Callable[[FieldSpec, dict[str, Any], Optional[FieldSpec]], Any]


def _generic_when_identified(
    spec: FieldSpec, siblings: dict[str, Any], record: Optional[FieldSpec]
) -> Any:
    """Generic safe advice for an identified record, else "Not specified"."""
    identity = record.identity_field if record is not None else None
    if identity is not None and not _is_missing_value(siblings.get(identity.name)):
        return spec.default.value
    return DEFAULT_WORDING["not_specified"]


def _interpretation_for_status(
    spec: FieldSpec, siblings: dict[str, Any], record: Optional[FieldSpec]
) -> Any:
    """Nothing to interpret for normal/info results; otherwise undetermined."""
    if siblings.get("status") in {"normal", "info"}:
        return spec.default.value
    return DEFAULT_WORDING["not_determined"]


COMPUTED_RULES: dict[str, ComputedRule] = {
    "generic_when_identified": _generic_when_identified,
    "interpretation_for_status": _interpretation_for_status,
}


def register_rule(name: str, rule: ComputedRule) -> None:
    """Make a computed default rule available to schemas."""
    if name in COMPUTED_RULES:
        raise ValueError(f"computed default rule {name!r} is already registered")
    COMPUTED_RULES[name] = rule


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class NormalizationReport:
    """Normalized result plus what had to be repaired to get there.

    ``degraded`` lists knowledge fields that fell back to a default: the
    model should have inferred them but did not.
    """

    result: dict[str, Any]
    defaulted: list[str] = field(default_factory=list)
    degraded: list[str] = field(default_factory=list)
    coerced: list[str] = field(default_factory=list)
    dropped_records: int = 0

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "defaulted": list(self.defaulted),
            "degraded": list(self.degraded),
            "coerced": list(self.coerced),
            "dropped_records": self.dropped_records,
        }


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class _Normalizer:
    def __init__(self) -> None:
        self.defaulted: list[str] = []
        self.degraded: list[str] = []
        self.coerced: list[str] = []
        self.dropped = 0

    # -- lookup --------------------------------------------------------------

    @staticmethod
    def _index(source: dict[str, Any]) -> dict[str, list[str]]:
        index: dict[str, list[str]] = {}
        for key in source:
            index.setdefault(_canonical_key(key), []).append(key)
        return index

    @staticmethod
    def _lookup(source: dict[str, Any], index: dict[str, list[str]], name: str) -> Any:
        if not _is_missing_value(source.get(name)):
            return source[name]
        # Fall back to any spelling variant that carries a value.
        for key in index.get(_canonical_key(name), ()):
            if not _is_missing_value(source[key]):
                return source[key]
        return source.get(name)

    # -- field groups --------------------------------------------------------

    def fields(
        self,
        source: dict[str, Any],
        specs: tuple[FieldSpec, ...],
        prefix: str,
        record: Optional[FieldSpec] = None,
    ) -> dict[str, Any]:
        index = self._index(source)
        out: dict[str, Any] = {}
        pending: list[FieldSpec] = []

        for spec in specs:
            path = f"{prefix}{spec.name}"
            value = self.value(self._lookup(source, index, spec.name), spec, path)
            if value is None:
                if spec.default.kind == "computed":
                    out[spec.name] = None
                    pending.append(spec)
                    continue
                value = self.literal_default(spec, path)
            out[spec.name] = value

        # Computed defaults see the normalized siblings.
        for spec in pending:
            path = f"{prefix}{spec.name}"
            rule = COMPUTED_RULES.get(spec.default.rule or "")
            if rule is None:
                raise ValueError(
                    f"unknown computed default rule {spec.default.rule!r} for {path}"
                )
            value = rule(spec, out, record)
            out[spec.name] = value
            self.defaulted.append(path)
            if spec.source == "knowledge" and value != spec.default.value:
                self.degraded.append(path)
        return out

    def literal_default(self, spec: FieldSpec, path: str) -> Any:
        value = spec.default.value
        if isinstance(value, list):
            value = list(value)
        self.defaulted.append(path)
        if spec.source == "knowledge":
            self.degraded.append(path)
        return value

    # -- values --------------------------------------------------------------

    def value(self, raw: Any, spec: FieldSpec, path: str) -> Any:
        """Return the repaired value, or ``None`` when it is missing."""
        if spec.kind == "scalar":
            return self.scalar(raw, path)
        if spec.kind == "enum":
            return self.enum(raw, spec, path)
        if spec.kind == "array-of-scalar":
            return self.scalar_list(raw, path)
        return self.records(raw, spec, path)

    def scalar(self, raw: Any, path: str) -> Optional[str]:
        if _is_missing_value(raw):
            return None
        if isinstance(raw, str):
            return raw.strip()

        self.coerced.append(path)
        if isinstance(raw, _SEQUENCE_TYPES):
            parts = [self._text(item) for item in _as_items(raw)]
            joined = "; ".join(p for p in parts if p)
            return joined or None
        return self._text(raw) or None

    def _text(self, raw: Any) -> str:
        if _is_missing_value(raw):
            return ""
        if isinstance(raw, str):
            return raw.strip()
        if isinstance(raw, bool):
            return "Yes" if raw else "No"
        if isinstance(raw, (int, float)):
            return str(raw)
        if isinstance(raw, dict):
            if "value" in raw:
                text = self._text(raw["value"])
                unit = self._text(raw.get("unit"))
                return f"{text} {unit}".strip() if text else ""
            return json.dumps(raw, ensure_ascii=False, default=_json_fallback)
        if isinstance(raw, _SEQUENCE_TYPES):
            return "; ".join(p for p in (self._text(item) for item in _as_items(raw)) if p)
        return str(raw).strip()

    def enum(self, raw: Any, spec: FieldSpec, path: str) -> Optional[str]:
        if isinstance(raw, str) and raw in spec.enum_values:
            return raw
        text = self.scalar(raw, path)
        if text is None:
            return None
        probe = text.strip(_ENUM_TRIM).lower()
        for option in spec.enum_values:
            if option.lower() == probe:
                if option != raw:
                    self.coerced.append(path)
                return option
        logger.debug("Value %r for %s is not one of %s", text, path, spec.enum_values)
        return None

    def scalar_list(self, raw: Any, path: str) -> Optional[list[str]]:
        if _is_missing_value(raw):
            return None
        if isinstance(raw, _SEQUENCE_TYPES):
            raw = _as_items(raw)
        else:
            self.coerced.append(path)
            raw = [raw]
        items = [self._text(item) for item in raw]
        cleaned = [item for item in items if item and not _is_nullish_string(item)]
        if len(cleaned) != len(raw):
            self.coerced.append(path)
        return cleaned

    def records(self, raw: Any, spec: FieldSpec, path: str) -> Optional[list[dict[str, Any]]]:
        if _is_missing_value(raw):
            return None
        if isinstance(raw, _SEQUENCE_TYPES):
            raw = _as_items(raw)
        else:
            self.coerced.append(path)
            raw = [raw]

        identity = spec.identity_field
        if identity is None:
            raise ValueError(f"record field {path} declares no identity field")
        kept: list[dict[str, Any]] = []
        for idx, item in enumerate(raw):
            item_path = f"{path}[{idx}]"
            if isinstance(item, str) and not _is_nullish_string(item):
                self.coerced.append(item_path)
                item = {identity.name: item}
            if not isinstance(item, dict):
                self.dropped += 1
                logger.debug("Dropping %s: not a record (%s)", item_path, type(item).__name__)
                continue
            index = self._index(item)
            if self.scalar(self._lookup(item, index, identity.name), f"{item_path}.{identity.name}") is None:
                self.dropped += 1
                logger.debug("Dropping %s: no %s", item_path, identity.name)
                continue
            kept.append(self.fields(item, spec.fields, f"{item_path}.", record=spec))
        return kept


def _resolve(schema: Union[DocumentSchema, str]) -> DocumentSchema:
    if isinstance(schema, DocumentSchema):
        return schema
    return get_schema(schema)


def normalize_with_report(
    candidate: Any, schema: Union[DocumentSchema, str]
) -> NormalizationReport:
    """Normalize *candidate* and report every repair that was applied.

    *schema* may be a :class:`DocumentSchema` or a registered document type
    name (unknown names raise :class:`~medimind.errors.UnknownDocumentType`).
    The candidate itself is never modified.
    """
    schema = _resolve(schema)
    worker = _Normalizer()

    if candidate is None:
        source: dict[str, Any] = {}
    elif isinstance(candidate, dict):
        source = candidate
    elif isinstance(candidate, (list, tuple)) and schema.primary_record_field is not None:
        source = {schema.primary_record_field.name: candidate}
        worker.coerced.append(schema.primary_record_field.name)
    else:
        logger.warning(
            "Candidate for %s is a %s, normalizing from defaults",
            schema.name,
            type(candidate).__name__,
        )
        source = {}
        worker.coerced.append("$")

    result = worker.fields(source, schema.fields, "")
    report = NormalizationReport(
        result=result,
        defaulted=worker.defaulted,
        degraded=worker.degraded,
        coerced=sorted(set(worker.coerced), key=worker.coerced.index),
        dropped_records=worker.dropped,
    )
    if report.dropped_records or report.degraded:
        logger.info(
            "Normalized %s: %d record(s) dropped, %d degraded field(s)",
            schema.name,
            report.dropped_records,
            len(report.degraded),
        )
    return report


def normalize(candidate: Any, schema: Union[DocumentSchema, str]) -> dict[str, Any]:
    """Return a schema-valid dict for *candidate* (``None`` allowed)."""
    return normalize_with_report(candidate, schema).result
