"""
Cache invalidation for availability responses.

Triggers:
✓ Booking created/changed/cancelled → that date (daily) + its month (monthly)
✓ Driver availability changed → affected dates, or everything
✓ Mover availability changed → affected dates, or everything
✓ Manual / maintenance → everything

Other subsystems call these methods; they never build cache keys themselves.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable

from .keys import all_pattern, daily_date_pattern, monthly_pattern

logger = logging.getLogger(__name__)


class AvailabilityCacheInvalidator:
    """Translates domain events into cache pattern deletions."""

    def __init__(self, cache):
        self.cache = cache

    def booking_changed(self, booking_date: date) -> int:
        """A booking was created or changed for booking_date."""
        deleted = self._invalidate_dates([booking_date])
        logger.info(f"Availability cache: booking on {booking_date} → {deleted} keys deleted")
        return deleted

    def driver_availability_changed(
        self,
        driver_id: int,
        dates: Iterable[date] | None = None,
    ) -> int:
        """
        A driver's availability changed.

        Args:
            driver_id: Driver ID (for logging; keys are not per-driver)
            dates: Affected dates, or None when the weekly pattern changed
        """
        deleted = self._invalidate_dates_or_all(dates)
        logger.info(f"Availability cache: driver {driver_id} changed → {deleted} keys deleted")
        return deleted

    def mover_availability_changed(
        self,
        mover_id: int,
        dates: Iterable[date] | None = None,
    ) -> int:
        """A mover's availability changed (see driver_availability_changed)."""
        deleted = self._invalidate_dates_or_all(dates)
        logger.info(f"Availability cache: mover {mover_id} changed → {deleted} keys deleted")
        return deleted

    def invalidate_all(self) -> int:
        deleted = self.cache.delete_pattern(all_pattern())
        logger.info(f"Availability cache: full invalidation → {deleted} keys deleted")
        return deleted

    # ── Helpers ──────────────────────────────────────────────────────────

    def _invalidate_dates_or_all(self, dates: Iterable[date] | None) -> int:
        dates = list(dates or [])
        if not dates:
            return self.cache.delete_pattern(all_pattern())
        return self._invalidate_dates(dates)

    def _invalidate_dates(self, dates: Iterable[date]) -> int:
        deleted = 0
        months: set[tuple[int, int]] = set()
        for dt in dates:
            deleted += self.cache.delete_pattern(daily_date_pattern(dt))
            months.add((dt.year, dt.month))
        for year, month in sorted(months):
            deleted += self.cache.delete_pattern(monthly_pattern(year, month))
        return deleted


def get_affected_dates(date_start: date, date_end: date) -> list[date]:
    """Every date of the inclusive range, in order. Reversed ends are swapped."""
    first, last = sorted((date_start, date_end))
    return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]


def get_affected_dates_from_range(range_start, range_end) -> list[date]:
    """get_affected_dates for ISO strings or date/datetime values (event payloads)."""
    return get_affected_dates(_as_date(range_start), _as_date(range_end))


def _as_date(value) -> date:
    if isinstance(value, str):
        return datetime.fromisoformat(value).date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected a date, got {type(value).__name__}")
