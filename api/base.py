"""Unified action result format and error codes."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class FieldError(BaseModel):
    """One invalid field, addressed by dot-separated path."""

    field: str
    message: str


class ActionError(BaseModel):
    """Error details in an action result."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="User-facing error message")
    field_errors: list[FieldError] = Field(default_factory=list, description="Per-field validation failures")


class ActionMeta(BaseModel):
    """Metadata included in every action result."""

    timestamp: datetime = Field(..., description="Result timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class ActionResult(BaseModel):
    """
    Tagged outcome of every repository action.

    Routine failures come back as success=False with an error instead of an
    exception, so the UI layer branches on one shape.
    """

    success: bool
    data: Any | None = None
    error: ActionError | None = None
    meta: ActionMeta


def _meta() -> ActionMeta:
    return ActionMeta(timestamp=now_utc(), request_id=str(uuid4()))


def success_result(data: Any) -> ActionResult:
    """Create a success result."""
    return ActionResult(success=True, data=data, error=None, meta=_meta())


def error_result(code: str, message: str, field_errors: list[FieldError] | None = None) -> ActionResult:
    """Create an error result."""
    return ActionResult(
        success=False,
        data=None,
        error=ActionError(code=code, message=message, field_errors=field_errors or []),
        meta=_meta(),
    )


class ErrorCodes:
    """Standard error codes, one per failure kind."""

    # Resource Errors
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    ATTACHMENT_NOT_FOUND = "ATTACHMENT_NOT_FOUND"
    DUPLICATE_INVOICE_NUMBER = "DUPLICATE_INVOICE_NUMBER"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ATTACHMENT_INVALID = "ATTACHMENT_INVALID"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Attachments
    ATTACHMENT_LIMIT = "ATTACHMENT_LIMIT"
    ATTACHMENT_STORAGE_LIMIT = "ATTACHMENT_STORAGE_LIMIT"
    ENCODING_CANCELLED = "ENCODING_CANCELLED"

    # Storage
    STORAGE_QUOTA_EXCEEDED = "STORAGE_QUOTA_EXCEEDED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    DATA_CORRUPTED = "DATA_CORRUPTED"
    STORAGE_ERROR = "STORAGE_ERROR"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
