# medimind/pipelines/extraction.py
"""Extraction pipeline — Compose -> Invoke -> Normalize -> Assemble.

One request is one sequential run with a single backend call.  Request
errors (unknown document type, missing mandatory input) are raised to the
caller; everything that happens after the backend was asked is reported
through the response status instead.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Mapping, Optional, Union

from medimind.envelope import build_envelope
from medimind.errors import EmptyResponse, GenerationError
from medimind.history import ChatHistory
from medimind.metrics import PipelineMetrics, track_step
from medimind.models import ExtractionRequest, ExtractionResponse
from medimind.payload import DocumentPayload
from medimind.prompting.composer import compose
from medimind.schemas.registry import DocumentSchema, get_schema
from medimind.utils.logging import log_extraction_complete, log_extraction_start

from .assembler import assemble, assemble_failure
from .generation import GenerationInvoker
from .normalizer import NormalizationReport, normalize_with_report

logger = logging.getLogger(__name__)

__all__ = ["build_request", "run_extraction", "run_request"]

PayloadLike = Union[DocumentPayload, str, None]
ContextLike = Optional[Mapping[str, Any]]
HistoryLike = Union[ChatHistory, Iterable[Any], None]


def _coerce_payload(payload: PayloadLike) -> Optional[DocumentPayload]:
    if payload is None or isinstance(payload, DocumentPayload):
        return payload
    text = str(payload)
    if text.lstrip().startswith("data:"):
        return DocumentPayload.from_data_uri(text)
    return DocumentPayload.from_text(text)


def _coerce_context(context: ContextLike) -> dict[str, str]:
    """Flatten context values to strings; list values are one entry per line."""
    flat: dict[str, str] = {}
    for key, value in (context or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            flat[str(key)] = "\n".join(str(v).strip() for v in value if str(v).strip())
        else:
            flat[str(key)] = str(value)
    return flat


def build_request(
    document_type: str,
    payload: PayloadLike = None,
    context: ContextLike = None,
    *,
    history: HistoryLike = None,
) -> ExtractionRequest:
    """Assemble a validated :class:`ExtractionRequest` from loose inputs."""
    if history is None or isinstance(history, ChatHistory):
        chat = history or ChatHistory()
    else:
        chat = ChatHistory.from_messages(history)
    return ExtractionRequest(
        document_type=document_type,
        payload=_coerce_payload(payload),
        context=_coerce_context(context),
        history=chat,
    )


def _meta(
    schema: DocumentSchema,
    request: ExtractionRequest,
    metrics: PipelineMetrics,
    started: float,
    report: Optional[NormalizationReport],
) -> dict[str, Any]:
    return build_envelope(
        document_type=schema.name,
        schema_version=schema.version,
        duration_s=round(time.perf_counter() - started, 4),
        tokens={
            "input": metrics.total_input_tokens,
            "output": metrics.total_output_tokens,
        },
        steps=metrics.to_dict()["steps"],
        normalization=report.to_dict() if report is not None else None,
        document=(
            {"mime_type": request.payload.mime_type, "source": request.payload.source_name}
            if request.payload is not None
            else None
        ),
    )


def run_request(
    request: ExtractionRequest,
    *,
    invoker: Optional[GenerationInvoker] = None,
) -> ExtractionResponse:
    """Run the full pipeline for one prepared request.

    Raises :class:`~medimind.errors.UnknownDocumentType` and
    :class:`~medimind.errors.CompositionError`; every other outcome is
    returned as an :class:`ExtractionResponse`.
    """
    schema = get_schema(request.document_type)
    invoker = invoker or GenerationInvoker()
    metrics = PipelineMetrics()
    started = time.perf_counter()

    from medimind.config import get_config

    log_extraction_start(
        logger,
        schema.name,
        request.payload.describe() if request.payload is not None else "(none)",
        get_config().lm,
    )

    with track_step(metrics, "Compose"):
        prompt = compose(schema, request)

    candidate: Optional[dict[str, Any]] = None
    try:
        with track_step(metrics, "Invoke"):
            candidate = invoker.invoke(prompt, schema)
    except EmptyResponse as exc:
        logger.info("Empty answer for %s (%s); normalizing from defaults", schema.name, exc)
    except GenerationError as exc:
        response = assemble_failure(
            exc, schema.name, meta=_meta(schema, request, metrics, started, None)
        )
        log_extraction_complete(
            logger, schema.name, response.status.value, time.perf_counter() - started
        )
        return response

    with track_step(metrics, "Normalize"):
        report = normalize_with_report(candidate, schema)

    with track_step(metrics, "Assemble"):
        response = assemble(report.result, schema.name, report=report)

    response = response.model_copy(
        update={"meta": _meta(schema, request, metrics, started, report)}
    )
    records = None
    if schema.outcome == "records":
        records = sum(len(report.result.get(name) or []) for name in schema.effective_signal_fields)
    log_extraction_complete(
        logger,
        schema.name,
        response.status.value,
        time.perf_counter() - started,
        records=records,
    )
    return response


def run_extraction(
    document_type: str,
    payload: PayloadLike = None,
    context: ContextLike = None,
    *,
    history: HistoryLike = None,
    invoker: Optional[GenerationInvoker] = None,
) -> ExtractionResponse:
    """Extract a schema-valid result for *document_type* from *payload*.

    Parameters
    ----------
    document_type:
        Registered document type, e.g. ``"prescription"``.
    payload:
        A :class:`DocumentPayload`, a ``data:<mime>;base64,...`` URI, plain
        document text, or ``None`` for types that take no document.
    context:
        Named context inputs (``{"age": "54"}``).  List values are joined
        one per line.
    history:
        Prior conversation for conversational types, as a
        :class:`ChatHistory` or a list of message dicts.
    invoker:
        Generation invoker to use; defaults to the DSPy-backed one.
    """
    request = build_request(document_type, payload, context, history=history)
    return run_request(request, invoker=invoker)
