"""Invoice domain models.

Amounts are floats with two meaningful decimals. `subtotal` and `total` are
derived fields: they are supplied by the caller and checked against the line
items, never recomputed silently.
"""

from enum import Enum

from pydantic import BaseModel, Field

from core.models.attachment import FileAttachment
from core.models.common import UTCDateTime
from core.models.line_item import LineItem, LineItemCreate

# Simple local@domain.tld shape; empty string means "no email".
EMAIL_PATTERN = r"^([^\s@]+@[^\s@]+\.[^\s@]+)?$"

MAX_LINE_ITEMS = 100
MAX_ATTACHMENTS = 20
MAX_AMOUNT = 999_999.99


class PaymentStatus(str, Enum):
    """Invoice payment status."""

    PAID = "Paid"
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    OVERDUE = "Overdue"


class AttachmentsPolicy(str, Enum):
    """What an update does to the invoice's attachment list."""

    KEEP = "keep"
    REPLACE = "replace"


class AttachmentsChange(BaseModel):
    """
    Explicit attachment instruction for an invoice update.

    Updates never clear attachments by omission: the default is KEEP, and
    the list is only swapped when the caller asks for REPLACE.
    """

    policy: AttachmentsPolicy = AttachmentsPolicy.KEEP
    attachments: list[FileAttachment] = Field(default_factory=list)

    @classmethod
    def keep(cls) -> "AttachmentsChange":
        return cls()

    @classmethod
    def replace(cls, attachments: list[FileAttachment]) -> "AttachmentsChange":
        return cls(policy=AttachmentsPolicy.REPLACE, attachments=list(attachments))

    @property
    def replaces(self) -> bool:
        return self.policy == AttachmentsPolicy.REPLACE


class InvoiceCreate(BaseModel):
    """Data required to create an invoice."""

    invoice_number: str = Field(..., min_length=1, max_length=50)
    date: UTCDateTime
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: str | None = Field(None, max_length=254, pattern=EMAIL_PATTERN)
    customer_address: str | None = Field(None, max_length=500)
    line_items: list[LineItemCreate] = Field(..., min_length=1, max_length=MAX_LINE_ITEMS)
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0, ge=0, le=MAX_AMOUNT)
    total: float = Field(..., ge=0)
    payment_status: PaymentStatus
    attachments: list[FileAttachment] | None = Field(None, max_length=MAX_ATTACHMENTS)


class InvoiceUpdate(BaseModel):
    """Data that can be updated on an invoice. All fields optional."""

    invoice_number: str | None = Field(None, min_length=1, max_length=50)
    date: UTCDateTime | None = None
    customer_name: str | None = Field(None, min_length=1, max_length=200)
    customer_email: str | None = Field(None, max_length=254, pattern=EMAIL_PATTERN)
    customer_address: str | None = Field(None, max_length=500)
    line_items: list[LineItemCreate] | None = Field(None, min_length=1, max_length=MAX_LINE_ITEMS)
    subtotal: float | None = Field(None, ge=0)
    tax: float | None = Field(None, ge=0, le=MAX_AMOUNT)
    total: float | None = Field(None, ge=0)
    payment_status: PaymentStatus | None = None
    attachments: AttachmentsChange = Field(default_factory=AttachmentsChange.keep)

    def supplied_fields(self) -> dict:
        """Explicitly supplied, non-None fields other than attachments."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "attachments" and getattr(self, name) is not None
        }


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: str
    invoice_number: str
    date: UTCDateTime
    customer_name: str
    customer_email: str | None = None
    customer_address: str | None = None
    line_items: list[LineItem]
    subtotal: float
    tax: float
    total: float
    payment_status: PaymentStatus
    attachments: list[FileAttachment] = Field(default_factory=list)
    created_at: UTCDateTime
    updated_at: UTCDateTime

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.payment_status == PaymentStatus.PAID


class InvoiceStats(BaseModel):
    """Counts and monetary totals grouped by payment status."""

    total: int = 0
    paid: int = 0
    unpaid: int = 0
    partially_paid: int = 0
    overdue: int = 0
    total_amount: float = 0.0
    paid_amount: float = 0.0
    unpaid_amount: float = 0.0
    amount_by_status: dict[PaymentStatus, float] = Field(default_factory=dict)
