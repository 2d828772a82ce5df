"""Mapping from typed store errors to error codes and user-facing messages."""

import logging

from api.base import ErrorCodes, FieldError, error_result, ActionResult
from core.exceptions import (
    AttachmentValidationError,
    DataCorruptionError,
    DuplicateInvoiceNumberError,
    EncodingCancelledError,
    FileAttachmentError,
    FileNotFoundError,
    InvoiceNotFoundError,
    InvoiceStoreError,
    LocalStorageError,
    StorageLimitError,
    StorageQuotaError,
    StorageUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
_ERROR_CODES: list[tuple[type[Exception], str]] = [
    (InvoiceNotFoundError, ErrorCodes.INVOICE_NOT_FOUND),
    (DuplicateInvoiceNumberError, ErrorCodes.DUPLICATE_INVOICE_NUMBER),
    (AttachmentValidationError, ErrorCodes.ATTACHMENT_INVALID),
    (ValidationError, ErrorCodes.VALIDATION_ERROR),
    (FileNotFoundError, ErrorCodes.ATTACHMENT_NOT_FOUND),
    (StorageLimitError, ErrorCodes.ATTACHMENT_STORAGE_LIMIT),
    (EncodingCancelledError, ErrorCodes.ENCODING_CANCELLED),
    (FileAttachmentError, ErrorCodes.ATTACHMENT_LIMIT),
    (StorageQuotaError, ErrorCodes.STORAGE_QUOTA_EXCEEDED),
    (StorageUnavailableError, ErrorCodes.STORAGE_UNAVAILABLE),
    (DataCorruptionError, ErrorCodes.DATA_CORRUPTED),
    (LocalStorageError, ErrorCodes.STORAGE_ERROR),
]

_USER_MESSAGES = {
    ErrorCodes.INVOICE_NOT_FOUND: "The requested invoice could not be found.",
    ErrorCodes.ATTACHMENT_NOT_FOUND: "The requested file could not be found.",
    ErrorCodes.STORAGE_QUOTA_EXCEEDED: "Storage limit reached. Please free up some space or contact support.",
    ErrorCodes.STORAGE_UNAVAILABLE: "Local storage is not available. Changes cannot be saved.",
    ErrorCodes.DATA_CORRUPTED: "Saved data could not be read. It can be reset or recovered.",
    ErrorCodes.STORAGE_ERROR: "Saving data failed. Please try again.",
    ErrorCodes.ENCODING_CANCELLED: "The upload was cancelled.",
    ErrorCodes.INTERNAL_ERROR: (
        "An unexpected error occurred. Please try again or contact support if the problem persists."
    ),
}

# These messages are already written for the user.
_PASSTHROUGH_CODES = {
    ErrorCodes.DUPLICATE_INVOICE_NUMBER,
    ErrorCodes.VALIDATION_ERROR,
    ErrorCodes.ATTACHMENT_INVALID,
    ErrorCodes.ATTACHMENT_LIMIT,
    ErrorCodes.ATTACHMENT_STORAGE_LIMIT,
}


def error_code_for(exc: BaseException) -> str:
    for error_type, code in _ERROR_CODES:
        if isinstance(exc, error_type):
            return code
    return ErrorCodes.INTERNAL_ERROR


def user_message_for(exc: BaseException) -> str:
    code = error_code_for(exc)
    if code in _PASSTHROUGH_CODES:
        return str(exc)
    return _USER_MESSAGES[code]


def result_for_error(exc: InvoiceStoreError) -> ActionResult:
    """Error result carrying the code, user message, and any field issues."""
    field_errors = [
        FieldError(field=issue.field, message=issue.message)
        for issue in getattr(exc, "issues", [])
    ]
    return error_result(error_code_for(exc), user_message_for(exc), field_errors)
