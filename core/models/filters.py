"""Query models: filter criteria and sort keys."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field

from core.models.invoice import PaymentStatus


class DateRange(BaseModel):
    """Inclusive calendar-day range; either end may be open."""

    start: date | datetime | None = None
    end: date | datetime | None = None


class FilterCriteria(BaseModel):
    """Invoice filter. Statuses are OR-ed; all criteria are AND-ed."""

    date_range: DateRange | None = None
    payment_statuses: list[PaymentStatus] = Field(default_factory=list)
    search_term: str | None = None


class SortField(str, Enum):
    """Invoice sort keys."""

    DATE = "date"
    INVOICE_NUMBER = "invoice_number"
    CUSTOMER_NAME = "customer_name"
    TOTAL = "total"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
