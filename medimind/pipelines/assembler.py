# medimind/pipelines/assembler.py
"""Response assembler — wrap a normalized result into the final response.

Status rules:

* ``records`` schemas succeed when a signal field holds at least one record
  (records only survive normalization when they carry an identity).
* ``object`` schemas succeed when at least one signal field differs from the
  value the normalizer produces for an absent candidate.
* Anything else that normalized is ``success_empty``.  Invoker failures that
  cannot be normalized go through :func:`assemble_failure`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from medimind.errors import BackendUnavailable, GenerationError, MalformedResponse
from medimind.models import ErrorInfo, ExtractionResponse, ResponseStatus
from medimind.schemas.disclaimers import get_disclaimer
from medimind.schemas.registry import DocumentSchema, get_schema

from .normalizer import NormalizationReport, normalize

logger = logging.getLogger(__name__)

__all__ = [
    "OVERLOADED_MESSAGE",
    "MALFORMED_MESSAGE",
    "assemble",
    "assemble_failure",
    "outcome_status",
    "failure_message",
]

OVERLOADED_MESSAGE = "The AI model is currently overloaded. Please try again in a few moments."
MALFORMED_MESSAGE = "AI analysis returned an invalid response. Please try again."
SERVER_ERROR_PREFIX = "Server error: "

_DEFAULT_SUCCESS = "Analysis completed successfully."
_DEFAULT_EMPTY = "No meaningful information could be extracted."


def outcome_status(normalized: dict[str, Any], schema: DocumentSchema) -> ResponseStatus:
    """Decide between ``success`` and ``success_empty`` for a normalized result."""
    signals = schema.effective_signal_fields
    if schema.outcome == "records":
        found = any(normalized.get(name) for name in signals)
    else:
        baseline = normalize(None, schema)
        found = any(normalized.get(name) != baseline.get(name) for name in signals)
    return ResponseStatus.SUCCESS if found else ResponseStatus.SUCCESS_EMPTY


def assemble(
    normalized: dict[str, Any],
    document_type: str,
    *,
    report: Optional[NormalizationReport] = None,
    meta: Optional[dict[str, Any]] = None,
) -> ExtractionResponse:
    """Attach disclaimer, status and message to a normalized result."""
    schema = get_schema(document_type)
    problems = schema.validate_result(normalized)
    if problems:
        logger.warning("Result for %s was not normalized (%s); normalizing", schema.name, problems[0])
        normalized = normalize(normalized, schema)

    status = outcome_status(normalized, schema)
    if status is ResponseStatus.SUCCESS:
        message = schema.messages.get("success", _DEFAULT_SUCCESS)
    else:
        message = schema.messages.get("empty", _DEFAULT_EMPTY)

    meta = dict(meta or {})
    if report is not None and meta.get("normalization") is None:
        meta["normalization"] = report.to_dict()

    return ExtractionResponse(
        document_type=schema.name,
        status=status,
        message=" ".join(message.split()),
        data=normalized,
        disclaimer=get_disclaimer(schema.name),
        meta=meta,
    )


def failure_message(error: BaseException) -> str:
    """User-facing message for a failed generation."""
    if isinstance(error, MalformedResponse):
        return MALFORMED_MESSAGE
    if isinstance(error, BackendUnavailable) and error.retryable:
        return OVERLOADED_MESSAGE
    return f"{SERVER_ERROR_PREFIX}{error}"


def assemble_failure(
    error: BaseException,
    document_type: str,
    *,
    meta: Optional[dict[str, Any]] = None,
) -> ExtractionResponse:
    """Build the ``failure`` response for an invoker error."""
    code = getattr(error, "code", "error")
    retryable = bool(isinstance(error, GenerationError) and error.retryable)
    return ExtractionResponse(
        document_type=document_type,
        status=ResponseStatus.FAILURE,
        message=failure_message(error),
        error=ErrorInfo(code=code, retryable=retryable, detail=str(error)),
        meta=dict(meta or {}),
    )
