"""Extraction pipeline stages: generation, normalization, assembly."""

from .assembler import assemble, assemble_failure, outcome_status
from .extraction import build_request, run_extraction, run_request
from .generation import GenerationInvoker, classify_backend_error, parse_candidate
from .normalizer import NormalizationReport, normalize, normalize_with_report

__all__ = [
    "GenerationInvoker",
    "NormalizationReport",
    "assemble",
    "assemble_failure",
    "build_request",
    "classify_backend_error",
    "normalize",
    "normalize_with_report",
    "outcome_status",
    "parse_candidate",
    "run_extraction",
    "run_request",
]
