"""
MediMind Python SDK -- programmatic access without the CLI.

Usage::

    from medimind.sdk import run_extraction, encode_file

    response = run_extraction("prescription", encode_file("rx.jpg"))
    if response.ok:
        for med in response.data["medications"]:
            print(med["name"], med["purpose"])

    # Several requests at once (order preserved)
    from medimind.sdk import run_batch
    responses = run_batch(
        [
            {"document_type": "medicine_search", "context": {"search_term": "Ibuprofen"}},
            {"document_type": "medicine_by_disease", "context": {"diseases": ["Asthma"]}},
        ],
        workers=2,
    )

The DSPy language model is configured on first use from
:class:`~medimind.config.MedimindConfig`.  Passing a custom ``invoker``
bypasses DSPy entirely.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .errors import MedimindError
from .models import ErrorInfo, ExtractionRequest, ExtractionResponse, ResponseStatus
from .payload import DocumentPayload, encode_file
from .pipelines.extraction import build_request, run_extraction, run_request
from .pipelines.generation import GenerationInvoker

logger = logging.getLogger(__name__)

__all__ = [
    "DocumentPayload",
    "encode_file",
    "run_extraction",
    "run_batch",
    "list_document_types",
    "describe_document_type",
    "health",
]

RequestLike = Union[ExtractionRequest, Mapping[str, Any]]


def _to_request(item: RequestLike) -> ExtractionRequest:
    if isinstance(item, ExtractionRequest):
        return item
    data = dict(item)
    return build_request(
        data.pop("document_type"),
        data.pop("payload", None),
        data.pop("context", None),
        history=data.pop("history", None),
    )


def _request_error_response(document_type: str, exc: MedimindError) -> ExtractionResponse:
    return ExtractionResponse(
        document_type=document_type,
        status=ResponseStatus.FAILURE,
        message=str(exc),
        error=ErrorInfo(code=exc.code, retryable=False, detail=str(exc)),
    )


# ---------------------------------------------------------------------------
# run_batch
# ---------------------------------------------------------------------------


def run_batch(
    requests: Iterable[RequestLike],
    *,
    workers: Optional[int] = None,
    invoker: Optional[GenerationInvoker] = None,
    on_progress: Optional[Callable[[int, ExtractionResponse], None]] = None,
) -> list[ExtractionResponse]:
    """Run one independent pipeline per request.

    Parameters
    ----------
    requests:
        :class:`ExtractionRequest` objects or dicts with ``document_type``,
        ``payload``, ``context`` and ``history`` keys.
    workers:
        Parallel workers.  Defaults to ``MedimindConfig.batch_workers``.
    invoker:
        Shared generation invoker (must be thread-safe).
    on_progress:
        Called as ``on_progress(index, response)`` when a request finishes.

    Returns
    -------
    list[ExtractionResponse]
        One response per request, in input order.  Requests that are
        themselves invalid (unknown type, missing input) come back as
        ``failure`` responses carrying the request error code.
    """
    items = list(requests)
    if workers is None:
        from .config import get_config

        workers = get_config().batch_workers

    def _do_run(item: RequestLike) -> ExtractionResponse:
        document_type = str(
            item.document_type if isinstance(item, ExtractionRequest) else item.get("document_type", "")
        )
        try:
            return run_request(_to_request(item), invoker=invoker)
        except MedimindError as exc:
            logger.warning("Request for %s rejected: %s", document_type, exc)
            return _request_error_response(document_type, exc)

    results: list[Optional[ExtractionResponse]] = [None] * len(items)

    if len(items) <= 1 or workers <= 1:
        for idx, item in enumerate(items):
            results[idx] = _do_run(item)
            if on_progress:
                on_progress(idx, results[idx])  # type: ignore[arg-type]
        return results  # type: ignore[return-value]

    max_w = min(max(1, workers), 32)
    with ThreadPoolExecutor(max_workers=max_w) as pool:
        futures = {pool.submit(_do_run, item): idx for idx, item in enumerate(items)}
        for future in as_completed(futures):
            idx = futures[future]
            results[idx] = future.result()
            if on_progress:
                on_progress(idx, results[idx])  # type: ignore[arg-type]

    return results  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------


def list_document_types() -> list[dict[str, Any]]:
    """List registered document types with a short description each."""
    from .schemas.registry import list_schemas

    return [
        {
            "name": schema.name,
            "title": schema.title,
            "description": " ".join(schema.description.split()),
            "version": schema.version,
            "payload": schema.payload,
        }
        for schema in list_schemas()
    ]


def describe_document_type(document_type: str) -> dict[str, Any]:
    """Return the schema of *document_type* as a plain dict plus its output shape."""
    from .prompting.composer import build_output_shape
    from .schemas.registry import get_schema

    schema = get_schema(document_type)
    data = schema.model_dump(mode="json")
    data["output_shape"] = build_output_shape(schema)
    return data


def health() -> dict[str, Any]:
    """Report configuration status.  Does NOT make an LLM call."""
    from .config import get_config
    from .envelope import package_version

    cfg = get_config()
    return {
        "version": package_version(),
        "configured": bool(cfg.api_key),
        "lm_model": cfg.lm,
        "api_base": cfg.api_base,
        "document_types": [item["name"] for item in list_document_types()],
    }
