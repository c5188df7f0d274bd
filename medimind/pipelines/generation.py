# medimind/pipelines/generation.py
"""Generation invoker — one call to the generative backend per request.

The backend is asked for a JSON object shaped like the schema, but its
answer is never trusted: the invoker only guarantees that a *dict* comes
back (or raises), and the normalizer repairs everything below the top level.

Failure taxonomy (see :mod:`medimind.errors`):

* ``BackendUnavailable`` -- the call itself failed.  ``retryable`` is set for
  transient overload signals (503, rate limits, timeouts, connection drops).
* ``EmptyResponse``      -- the backend produced nothing usable.
* ``MalformedResponse``  -- the payload cannot be read as a JSON object.

No retries happen here; the calling layer decides based on ``retryable``.

DSPy-dependent classes are lazily imported via module-level ``__getattr__``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from medimind.config import get_config
from medimind.errors import (
    BackendUnavailable,
    EmptyResponse,
    GenerationError,
    MalformedResponse,
)
from medimind.prompting.composer import Prompt
from medimind.schemas.registry import DocumentSchema
from medimind.utils.logging import log_llm_response, log_prompt

from .parse_utils import parse_json_like

logger = logging.getLogger(__name__)

Backend = Callable[[Prompt, DocumentSchema], Any]

# Substrings (lower-cased) of exception text that signal a transient overload.
_TRANSIENT_MARKERS = (
    "503",
    "429",
    "overloaded",
    "unavailable",
    "rate limit",
    "ratelimit",
    "resource exhausted",
    "resource_exhausted",
    "too many requests",
    "timed out",
    "timeout",
    "connection reset",
    "connection refused",
    "connection error",
    "try again later",
)

# Exception class names raised by LiteLLM / httpx for the same conditions.
_TRANSIENT_TYPES = frozenset({
    "ServiceUnavailableError",
    "RateLimitError",
    "Timeout",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
    "ConnectError",
    "ReadTimeout",
    "ConnectTimeout",
    "TimeoutError",
    "ConnectionError",
})

_PARSE_FAILURE_TYPES = frozenset({"AdapterParseError", "JSONDecodeError"})

_NULL_ANSWERS = frozenset({"null", "none", "\"\"", "''"})


def classify_backend_error(exc: BaseException) -> GenerationError:
    """Map an arbitrary backend exception onto the failure taxonomy."""
    if isinstance(exc, GenerationError):
        return exc

    type_names = {cls.__name__ for cls in type(exc).__mro__}
    message = str(exc).strip() or type(exc).__name__

    if type_names & _PARSE_FAILURE_TYPES:
        return MalformedResponse(f"Backend output could not be parsed: {message}")

    lowered = message.lower()
    transient = bool(type_names & _TRANSIENT_TYPES) or any(
        marker in lowered for marker in _TRANSIENT_MARKERS
    )
    return BackendUnavailable(message, retryable=transient)


def parse_candidate(raw: Any, schema: DocumentSchema) -> dict[str, Any]:
    """Turn raw backend output into a top-level candidate dict.

    A bare JSON array is accepted for ``records`` schemas with a single
    record collection and wrapped into that field.
    """
    if raw is None:
        raise EmptyResponse("Backend returned no output")
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    if isinstance(raw, dict):
        return dict(raw)

    if isinstance(raw, (list, tuple)):
        parsed: Any = list(raw)
        text = ""
    else:
        text = str(raw).strip()
        if not text or text.lower() in _NULL_ANSWERS:
            raise EmptyResponse("Backend returned an empty answer")
        parsed = parse_json_like(text)
        if parsed is None:
            raise MalformedResponse("Backend output is not valid JSON", raw=text)

    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list):
        primary = schema.primary_record_field
        if primary is not None:
            logger.debug("Wrapping bare array into %s.%s", schema.name, primary.name)
            return {primary.name: parsed}
        if not parsed:
            raise EmptyResponse("Backend returned an empty array")
    raise MalformedResponse(
        f"Expected a JSON object for {schema.name}, got {type(parsed).__name__}",
        raw=text or None,
    )


class GenerationInvoker:
    """Single-attempt wrapper around the generative backend.

    ``backend`` is any callable ``(prompt, schema) -> raw`` where *raw* is
    JSON text, a dict, or ``None``.  By default the DSPy backend is used.
    """

    def __init__(self, backend: Optional[Backend] = None) -> None:
        self._backend = backend

    @property
    def backend(self) -> Backend:
        if self._backend is None:
            import sys

            mod = sys.modules[__name__]
            self._backend = mod.DspyBackend()
        return self._backend

    def invoke(self, prompt: Prompt, schema: DocumentSchema) -> dict[str, Any]:
        """Run one generation and return the untrusted candidate dict."""
        preview = get_config().prompt_preview_chars
        log_prompt(logger, schema.name, prompt.render(), truncate_at=preview)

        try:
            raw = self.backend(prompt, schema)
        except Exception as exc:
            failure = classify_backend_error(exc)
            logger.warning(
                "Generation for %s failed (%s, retryable=%s): %s",
                schema.name,
                failure.code,
                failure.retryable,
                failure,
            )
            raise failure from exc

        if isinstance(raw, str):
            log_llm_response(logger, schema.name, raw, truncate_at=preview)
        candidate = parse_candidate(raw, schema)
        logger.info("Candidate for %s has %d top-level keys", schema.name, len(candidate))
        return candidate


# ---------------------------------------------------------------------------
# DSPy backend (lazy)
# ---------------------------------------------------------------------------


def _build_dspy_classes():
    """Lazily define the DSPy signatures and the default backend."""
    from medimind.runtime import configure_dspy, import_dspy

    dspy = import_dspy()

    class GenerateCandidate(dspy.Signature):
        """Carry out the task and answer with one JSON object that matches the output shape."""

        task: str = dspy.InputField(
            desc="Task description, input values, per-field evidence rules and response skeleton"
        )
        output_shape: str = dspy.InputField(
            desc="JSON schema the answer must satisfy"
        )
        candidate_json: str = dspy.OutputField(
            desc="A single JSON object as text. No markdown, no commentary."
        )

    GenerateCandidateFromDocument = GenerateCandidate.append(
        "document",
        dspy.InputField(desc="The uploaded document (image or PDF)"),
        type_=dspy.Image,
    )

    class DspyBackend:
        """Default backend: one ``dspy.Predict`` call per invocation."""

        def __init__(self) -> None:
            self.text_predictor = dspy.Predict(GenerateCandidate)
            self.media_predictor = dspy.Predict(GenerateCandidateFromDocument)

        def __call__(self, prompt: Prompt, schema: DocumentSchema) -> Any:
            configure_dspy()
            kwargs: dict[str, Any] = {
                "task": prompt.render(),
                "output_shape": json.dumps(prompt.output_shape, ensure_ascii=False),
            }
            document = prompt.document
            if document is not None and not document.is_text:
                kwargs["document"] = dspy.Image(url=document.data_uri)
                prediction = self.media_predictor(**kwargs)
            else:
                prediction = self.text_predictor(**kwargs)
            return getattr(prediction, "candidate_json", None)

    return {
        "GenerateCandidate": GenerateCandidate,
        "GenerateCandidateFromDocument": GenerateCandidateFromDocument,
        "DspyBackend": DspyBackend,
    }


_dspy_classes: dict[str, type] | None = None

_DSPY_CLASS_NAMES = frozenset({
    "GenerateCandidate",
    "GenerateCandidateFromDocument",
    "DspyBackend",
})


def __getattr__(name: str):
    """Module-level __getattr__ for lazy loading of DSPy classes."""
    global _dspy_classes

    if name in _DSPY_CLASS_NAMES:
        if _dspy_classes is None:
            _dspy_classes = _build_dspy_classes()
        return _dspy_classes[name]

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
