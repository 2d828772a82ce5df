"""Shared field types for domain models."""

from datetime import date, datetime
from typing import Annotated, Any
from uuid import uuid4

from pydantic import AfterValidator, BeforeValidator

from utils.timezone import ensure_utc, truncate_to_millis


def new_id() -> str:
    """Opaque unique identifier for invoices, line items, and attachments."""
    return uuid4().hex


def _accept_plain_date(value: Any) -> Any:
    if isinstance(value, date) and not isinstance(value, datetime):
        return ensure_utc(value)
    return value


# Aware UTC datetime at millisecond precision; plain dates become midnight UTC,
# naive datetimes are taken as UTC.
UTCDateTime = Annotated[
    datetime,
    BeforeValidator(_accept_plain_date),
    AfterValidator(ensure_utc),
    AfterValidator(truncate_to_millis),
]
