# medimind/errors.py
"""Exception taxonomy for the extraction pipeline.

``UnknownDocumentType`` and ``CompositionError`` are raised to the caller.
``GenerationError`` subclasses are raised by the generation invoker and are
turned into response statuses by :mod:`medimind.pipelines.extraction`.
"""

from __future__ import annotations


class MedimindError(Exception):
    """Base class for all MediMind errors."""

    code: str = "error"


class UnknownDocumentType(MedimindError, KeyError):
    """No schema is registered under the requested document type."""

    code = "unknown_document_type"

    def __init__(self, document_type: str, available: list[str] | None = None) -> None:
        self.document_type = document_type
        self.available = list(available or [])
        listing = ", ".join(self.available) or "(none)"
        super().__init__(f"Unknown document type: {document_type!r}. Available: {listing}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return str(self.args[0]) if self.args else self.code


class CompositionError(MedimindError, ValueError):
    """The request is missing (or carries an unusable) mandatory input."""

    code = "composition_error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class GenerationError(MedimindError):
    """Base class for failures reported by the generation invoker."""

    retryable: bool = False


class BackendUnavailable(GenerationError):
    """The generative backend could not be reached or refused the call."""

    code = "backend_unavailable"

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(message)


class EmptyResponse(GenerationError):
    """The backend answered without any usable payload."""

    code = "empty_response"


class MalformedResponse(GenerationError):
    """The backend payload cannot be read as the expected top-level shape."""

    code = "malformed_response"

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)
