"""Compliance disclaimer provider.

Disclaimers are part of the document type definition, never model output.
Types that do not declare one fall back to :data:`GENERAL_DISCLAIMER`.
"""

from __future__ import annotations

from .registry import get_schema

GENERAL_DISCLAIMER = (
    "This information is generated by an AI model for educational purposes only "
    "and is not a substitute for professional medical advice. Consult a "
    "healthcare professional before making any medical decision."
)


def get_disclaimer(document_type: str) -> str:
    """Return the fixed disclaimer text for *document_type*."""
    schema = get_schema(document_type)
    text = " ".join((schema.disclaimer or "").split())
    return text or GENERAL_DISCLAIMER
