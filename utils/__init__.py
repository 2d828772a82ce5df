"""Utility modules for cross-cutting concerns."""

from utils.timezone import (
    now_utc,
    to_utc,
    ensure_utc,
    parse_iso,
    format_iso_millis,
    start_of_day,
    end_of_day,
)
from utils.money import round_money, amounts_match
