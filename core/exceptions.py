"""Typed exceptions for invoice store failures.

Every failure kind is its own class so callers branch on type, never on
message text.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.validation import ValidationIssue


class InvoiceStoreError(Exception):
    """Base class for all invoice store errors."""


# =============================================================================
# STORAGE
# =============================================================================


class LocalStorageError(InvoiceStoreError):
    """Key-value storage operation failed."""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)


class DataCorruptionError(LocalStorageError):
    """
    Stored text exists but is not valid JSON.

    Callers decide whether to reset the key or attempt salvage.
    """


class StorageQuotaError(LocalStorageError):
    """Write exceeded capacity even after evicting stale entries."""


class StorageUnavailableError(LocalStorageError):
    """No usable key-value store. Reads degrade to defaults; writes raise this."""


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(InvoiceStoreError):
    """Structural or business-rule violation. Never causes data loss."""

    def __init__(self, message: str, issues: "list[ValidationIssue] | None" = None):
        self.issues = list(issues or [])
        super().__init__(message)


class InvoiceValidationError(ValidationError):
    """Invoice or line item failed validation. `issues` lists every violated rule."""

    def __init__(self, issues: "list[ValidationIssue]"):
        summary = "; ".join(f"{i.field}: {i.message}" for i in issues[:3])
        if len(issues) > 3:
            summary += f" (+{len(issues) - 3} more)"
        super().__init__(f"Invoice validation failed: {summary}", issues)


class AttachmentValidationError(ValidationError):
    """
    File rejected before encoding.

    `constraint` names the rule: "size", "type", "count", or "data".
    """

    def __init__(self, message: str, constraint: str, filename: str | None = None):
        self.constraint = constraint
        self.filename = filename
        super().__init__(message)


# =============================================================================
# INVOICES
# =============================================================================


class InvoiceError(InvoiceStoreError):
    """Invoice repository operation failed."""


class InvoiceNotFoundError(InvoiceError):
    """No invoice with the requested id."""

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f'Invoice with ID "{invoice_id}" not found')


class DuplicateInvoiceNumberError(InvoiceError):
    """Another invoice already uses this invoice number."""

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f'Invoice number "{invoice_number}" already exists')


# =============================================================================
# ATTACHMENTS
# =============================================================================


class FileAttachmentError(InvoiceStoreError):
    """Attachment policy violation or attachment operation failure."""


class FileNotFoundError(FileAttachmentError):
    """No attachment with the requested id on the invoice."""

    def __init__(self, attachment_id: str):
        self.attachment_id = attachment_id
        super().__init__(f'File attachment with ID "{attachment_id}" not found')


class StorageLimitError(FileAttachmentError):
    """Adding the file(s) would exceed the invoice's attachment storage budget."""


class EncodingCancelledError(FileAttachmentError):
    """Encoding was cancelled before completion; nothing was persisted."""
