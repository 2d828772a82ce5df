"""
Persisted filter-panel state.

The last filter a user applied is kept under its own key so it survives a
restart. A corrupt or unreadable entry is treated as "no filters".
"""

import logging
from datetime import date, datetime
from typing import Callable

from core.exceptions import DataCorruptionError, InvoiceValidationError
from core.models import DateRange, FilterCriteria
from core.storage import PersistenceAdapter
from core.validation import ValidationIssue, validate_filter_criteria
from utils.timezone import end_of_day, now_utc, start_of_day

logger = logging.getLogger(__name__)


class FilterStateStore:
    """Load and save the current FilterCriteria."""

    def __init__(self, adapter: PersistenceAdapter, clock: Callable[[], datetime] = now_utc):
        self.adapter = adapter
        self._clock = clock

    @property
    def key(self) -> str:
        return self.adapter.config.filters_key

    def load(self) -> FilterCriteria:
        """Stored criteria, or empty criteria if nothing usable is stored."""
        try:
            raw = self.adapter.read(self.key, None)
        except DataCorruptionError:
            logger.warning(f"Discarding corrupt filter state under '{self.key}'")
            return FilterCriteria()
        if raw is None:
            return FilterCriteria()

        result = validate_filter_criteria(raw)
        if not result.ok:
            logger.warning(f"Ignoring invalid stored filter state: {result.errors}")
            return FilterCriteria()
        return result.data

    def save(self, criteria: FilterCriteria | dict) -> FilterCriteria:
        """
        Raises:
            InvoiceValidationError: If the criteria are malformed
        """
        result = validate_filter_criteria(criteria)
        if not result.ok:
            raise InvoiceValidationError(result.errors)
        self.adapter.write(self.key, result.data.model_dump())
        return result.data

    def clear(self) -> FilterCriteria:
        return self.save(FilterCriteria())

    def update(self, **fields) -> FilterCriteria:
        """Change some criteria and keep the rest."""
        merged = self.load().model_dump()
        merged.update(fields)
        return self.save(merged)

    def set_date_range(self, start: date | datetime | None = None, end: date | datetime | None = None) -> FilterCriteria:
        """
        Set the date range; neither bound may lie in the future.

        Raises:
            InvoiceValidationError: If start is after end or a bound is in the future
        """
        today_end = end_of_day(self._clock())
        issues = []
        if start is not None and end is not None and start_of_day(start) > start_of_day(end):
            issues.append(ValidationIssue("date_range.start", "Start date cannot be after end date"))
        if start is not None and start_of_day(start) > today_end:
            issues.append(ValidationIssue("date_range.start", "Start date cannot be in the future"))
        if end is not None and start_of_day(end) > today_end:
            issues.append(ValidationIssue("date_range.end", "End date cannot be in the future"))
        if issues:
            raise InvoiceValidationError(issues)
        return self.update(date_range=DateRange(start=start, end=end))

    def has_active_filters(self) -> bool:
        return self.active_filter_count() > 0

    def active_filter_count(self) -> int:
        """Each date bound, the status set, and the search term count once."""
        criteria = self.load()
        count = 0
        if criteria.date_range is not None:
            count += criteria.date_range.start is not None
            count += criteria.date_range.end is not None
        if criteria.payment_statuses:
            count += 1
        if criteria.search_term and criteria.search_term.strip():
            count += 1
        return count
