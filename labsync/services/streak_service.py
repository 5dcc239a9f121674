"""Streak calculation for daily task completions.

A streak counts consecutive local calendar days with at least one completed
task. The calculation is pure: given the last completion day, the current
day and the current streak, it returns the next state.
"""

from __future__ import annotations

from datetime import date
from typing import NamedTuple, Optional

from labsync.shared.date_provider import DateProvider, get_date_provider


class StreakResult(NamedTuple):
    """Streak state after a completion."""
    new_streak: int
    new_last_day: date


def next_streak(
    last_completion_day: Optional[date],
    today: date,
    current_streak: int
) -> StreakResult:
    """Compute the streak after a completion on ``today``.

    Rules:
    - First completion ever: streak = 1
    - Same day (or an out-of-order event dated before the last one):
      unchanged, the streak never regresses
    - Completed yesterday: streak + 1
    - Gap of two or more days: streak = 1 (reset)

    Args:
        last_completion_day: Day of the previous completion, None if never
        today: Local day of this completion
        current_streak: Streak before this completion

    Returns:
        StreakResult: New streak count and last completion day
    """
    if last_completion_day is None:
        return StreakResult(1, today)

    diff = (today - last_completion_day).days
    if diff <= 0:
        return StreakResult(current_streak, last_completion_day)
    if diff == 1:
        return StreakResult(current_streak + 1, today)
    return StreakResult(1, today)


class StreakService:
    """Streak calculations with an injectable notion of today."""

    def __init__(self, date_provider: Optional[DateProvider] = None):
        """Initialize the streak service.

        Args:
            date_provider: Date provider for time operations, defaults to the global provider
        """
        self._date_provider = date_provider or get_date_provider()

    def calculate(
        self,
        last_completion_day: Optional[date],
        current_streak: int,
        current_date: Optional[date] = None
    ) -> StreakResult:
        """Calculate the streak after a completion on ``current_date`` (default today)."""
        if current_date is None:
            current_date = self._date_provider.today()
        return next_streak(last_completion_day, current_date, current_streak)

    def is_streak_active(
        self,
        last_completion_day: Optional[date],
        current_date: Optional[date] = None
    ) -> bool:
        """Check whether a completion today would extend rather than reset the streak.

        Args:
            last_completion_day: Day of the last completion
            current_date: Current date, defaults to today

        Returns:
            bool: True if the last completion was today or yesterday
        """
        if last_completion_day is None:
            return False
        if current_date is None:
            current_date = self._date_provider.today()
        return 0 <= (current_date - last_completion_day).days <= 1
