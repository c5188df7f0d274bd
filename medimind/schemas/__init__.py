"""
MediMind schema package — declarative output contracts per document type.

- ``registry``: FieldSpec / DocumentSchema descriptors and the YAML-backed
  registry of built-in document types.
- ``disclaimers``: the fixed compliance text attached to every response.
"""

from .disclaimers import GENERAL_DISCLAIMER, get_disclaimer
from .registry import (
    DEFAULT_WORDING,
    ContextSpec,
    DefaultPolicy,
    DocumentSchema,
    FieldSpec,
    get_schema,
    list_schemas,
    register_schema,
)

__all__ = [
    "DEFAULT_WORDING",
    "ContextSpec",
    "DefaultPolicy",
    "DocumentSchema",
    "FieldSpec",
    "GENERAL_DISCLAIMER",
    "get_disclaimer",
    "get_schema",
    "list_schemas",
    "register_schema",
]
