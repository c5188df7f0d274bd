# medimind/models.py
"""Request / response models for the extraction pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from medimind.history import ChatHistory
from medimind.payload import DocumentPayload

__all__ = [
    "ExtractionRequest",
    "ResponseStatus",
    "ErrorInfo",
    "ExtractionResponse",
]


class ExtractionRequest(BaseModel):
    """One extraction call: document type, payload and optional context."""

    model_config = ConfigDict(frozen=True)

    document_type: str
    payload: Optional[DocumentPayload] = None
    context: dict[str, str] = Field(default_factory=dict)
    history: ChatHistory = Field(default_factory=ChatHistory)


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    SUCCESS_EMPTY = "success_empty"
    FAILURE = "failure"


class ErrorInfo(BaseModel):
    code: str
    retryable: bool = False
    detail: str = ""


class ExtractionResponse(BaseModel):
    """Final typed outcome returned to the caller."""

    document_type: str
    status: ResponseStatus
    message: str
    data: Optional[dict[str, Any]] = None
    disclaimer: Optional[str] = None
    error: Optional[ErrorInfo] = None
    meta: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is not ResponseStatus.FAILURE

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)
