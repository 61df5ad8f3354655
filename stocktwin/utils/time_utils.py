"""
Date and time helpers shared by the ledger and the recommendation store.

Day-of-week convention: sales history stores ``1 = Sunday … 7 = Saturday``,
the encoding the forecasting service was trained on. Python's
``date.weekday()`` is ``0 = Monday … 6 = Sunday``, so always go through
``sales_day_of_week()`` rather than using ``weekday()`` directly.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

SUNDAY = 1
SATURDAY = 7


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(tz=timezone.utc)


def today() -> date:
    """Return today's date in UTC (the date stamped on new sales samples)."""
    return utcnow().date()


def sales_day_of_week(d: date) -> int:
    """Map a date to the 1 (Sunday) … 7 (Saturday) sales-history encoding.

    Args:
        d: Calendar date.

    Returns:
        Integer in ``[1, 7]``.
    """
    return (d.weekday() + 1) % 7 + 1


def is_weekend_day(day_of_week: int) -> bool:
    """``True`` for Sunday (1) or Saturday (7) in the sales-history encoding."""
    return day_of_week in (SUNDAY, SATURDAY)


def trailing_dates(end: date, days: int) -> list[date]:
    """Return ``days`` consecutive dates ending at ``end`` (most recent first).

    Args:
        end: Most recent date (included).
        days: Number of dates to produce.

    Returns:
        ``[end, end - 1 day, …]``.

    Raises:
        ValueError: If ``days < 1``.
    """
    if days < 1:
        raise ValueError(f"days must be >= 1, got {days}.")
    return [end - timedelta(days=i) for i in range(days)]


def period_bounds(start: date, period_days: int) -> tuple[date, date]:
    """Return ``(start, start + period_days)`` for a recommendation window."""
    return start, start + timedelta(days=period_days)
