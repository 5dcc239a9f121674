"""Date provider abstraction for testable date operations.

Completion events are bucketed into calendar days, and challenges into
calendar weeks and months. Both depend on "today", so every component that
needs the current date asks a DateProvider instead of the system clock.
Days are computed in the configured local time zone; timestamps are UTC.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional


class DateProvider(ABC):
    """Abstract interface for date operations."""

    @abstractmethod
    def today(self) -> date:
        """Get the current calendar date in the local time zone.

        Returns:
            date: Current local date
        """

    @abstractmethod
    def utcnow(self) -> datetime:
        """Get the current datetime in UTC.

        Returns:
            datetime: Current UTC datetime with timezone info
        """


class ZonedDateProvider(DateProvider):
    """Production implementation using the system clock.

    Calendar days are taken in ``zone`` so that a completion at 23:30 local
    time counts for that local day, not the UTC one.
    """

    def __init__(self, zone: Optional[tzinfo] = None):
        self._zone = zone or timezone.utc

    def today(self) -> date:
        return datetime.now(self._zone).date()

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)


class UTCDateProvider(ZonedDateProvider):
    """System clock provider with days taken in UTC."""

    def __init__(self):
        super().__init__(timezone.utc)


class MockDateProvider(DateProvider):
    """Test implementation of DateProvider for controlled testing.

    This implementation allows tests to control the current date/time,
    enabling deterministic testing of streaks and challenge periods.
    """

    def __init__(self, fixed_date: Optional[date] = None, fixed_datetime: Optional[datetime] = None):
        """Initialize with optional fixed dates.

        Args:
            fixed_date: Fixed date to return from today(), defaults to 2024-01-15
            fixed_datetime: Fixed datetime to return from utcnow(), defaults to midnight UTC of fixed_date
        """
        self._fixed_date = fixed_date or date(2024, 1, 15)
        self._fixed_datetime = fixed_datetime or datetime.combine(
            self._fixed_date,
            datetime.min.time()
        ).replace(tzinfo=timezone.utc)

    def today(self) -> date:
        return self._fixed_date

    def utcnow(self) -> datetime:
        return self._fixed_datetime

    def set_date(self, new_date: date) -> None:
        """Update the fixed date for testing.

        Args:
            new_date: New date to return from today()
        """
        self._fixed_date = new_date
        self._fixed_datetime = datetime.combine(
            new_date,
            datetime.min.time()
        ).replace(tzinfo=timezone.utc)

    def set_datetime(self, new_datetime: datetime) -> None:
        """Update the fixed datetime for testing.

        Args:
            new_datetime: New datetime to return from utcnow()
        """
        if new_datetime.tzinfo is None:
            new_datetime = new_datetime.replace(tzinfo=timezone.utc)
        self._fixed_datetime = new_datetime
        self._fixed_date = new_datetime.date()

    def advance_days(self, days: int) -> None:
        """Advance the current date by specified number of days.

        Args:
            days: Number of days to advance (can be negative)
        """
        self.set_date(self._fixed_date + timedelta(days=days))


_date_provider: Optional[DateProvider] = None


def get_date_provider() -> DateProvider:
    """Get the current date provider instance.

    Defaults to a system clock provider in the configured time zone.

    Returns:
        DateProvider: Current date provider (production or test)
    """
    global _date_provider
    if _date_provider is None:
        from labsync.shared.config import get_settings
        _date_provider = ZonedDateProvider(get_settings().zone)
    return _date_provider


def set_date_provider(provider: DateProvider) -> None:
    """Set the date provider instance (mainly for testing).

    Args:
        provider: Date provider implementation to use
    """
    global _date_provider
    _date_provider = provider


def reset_date_provider() -> None:
    """Reset to the default production date provider."""
    global _date_provider
    _date_provider = None
