# medimind/envelope.py
"""
Response metadata envelope builder.

Every :class:`~medimind.models.ExtractionResponse` carries a ``meta`` block
built by :func:`build_envelope`: package version, model, timing, token use
and the normalization diagnostics of the run.
"""
from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from typing import Any


@lru_cache(maxsize=1)
def package_version() -> str:
    """Installed MediMind version (the source tree version when not installed)."""
    try:
        return version("medimind")
    except PackageNotFoundError:
        # Running from a source checkout.
        from medimind import __version__

        return __version__


def build_envelope(
    *,
    document_type: str,
    pipeline: str = "extraction",
    schema_version: str | None = None,
    duration_s: float | None = None,
    tokens: dict[str, int] | None = None,
    steps: list[dict[str, Any]] | None = None,
    normalization: dict[str, Any] | None = None,
    document: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON-serializable ``meta`` dict of a response.

    ``normalization`` is the :class:`~medimind.pipelines.normalizer.NormalizationReport`
    summary, or ``None`` when the run failed before normalization.
    ``document`` describes the payload (mime type and source name).
    """
    from medimind.config import get_config

    cfg = get_config()
    return {
        "version": package_version(),
        "pipeline": pipeline,
        "document_type": document_type,
        "schema_version": schema_version,
        "model": cfg.lm,
        "model_temperature": cfg.lm_temperature,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "duration_s": duration_s,
        "tokens": dict(tokens) if tokens else {"input": 0, "output": 0},
        "steps": list(steps or []),
        "normalization": normalization,
        "document": document,
    }
