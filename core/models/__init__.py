"""Core domain models."""

from core.models.common import new_id, UTCDateTime
from core.models.line_item import LineItem, LineItemCreate
from core.models.attachment import FileAttachment, AttachmentStats, UploadConstraints
from core.models.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceStats,
    PaymentStatus,
    AttachmentsChange,
    AttachmentsPolicy,
)
from core.models.filters import DateRange, FilterCriteria, SortField, SortOrder

__all__ = [
    # Common
    "new_id", "UTCDateTime",
    # LineItem
    "LineItem", "LineItemCreate",
    # Attachment
    "FileAttachment", "AttachmentStats", "UploadConstraints",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceStats", "PaymentStatus",
    "AttachmentsChange", "AttachmentsPolicy",
    # Queries
    "DateRange", "FilterCriteria", "SortField", "SortOrder",
]
