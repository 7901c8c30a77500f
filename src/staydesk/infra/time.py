"""Time utilities for consistent timestamp handling."""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def business_date() -> date:
    """Return the current business date (UTC calendar date)."""
    return utc_now().date()
