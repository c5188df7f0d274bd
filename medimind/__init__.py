"""
MediMind - schema-constrained extraction for medical documents.

Turns an uploaded prescription, lab report or a short query into a
structured, schema-valid result with a fixed disclaimer:

    - medimind.schemas: document type registry (YAML-backed)
    - medimind.pipelines: compose, invoke, normalize and assemble stages
    - medimind.sdk: programmatic entry points (single and batch)
    - medimind.cli: the ``medimind`` command
"""

__version__ = "1.0.0"

from .errors import (
    BackendUnavailable,
    CompositionError,
    EmptyResponse,
    GenerationError,
    MalformedResponse,
    MedimindError,
    UnknownDocumentType,
)
from .models import ExtractionRequest, ExtractionResponse, ResponseStatus
from .payload import DocumentPayload, encode_file
from .sdk import run_batch, run_extraction

__all__ = [
    "__version__",
    "BackendUnavailable",
    "CompositionError",
    "DocumentPayload",
    "EmptyResponse",
    "ExtractionRequest",
    "ExtractionResponse",
    "GenerationError",
    "MalformedResponse",
    "MedimindError",
    "ResponseStatus",
    "UnknownDocumentType",
    "encode_file",
    "run_batch",
    "run_extraction",
]
