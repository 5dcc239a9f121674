"""Tests for streak calculation."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from labsync.services.streak_service import StreakResult, StreakService, next_streak
from labsync.shared.date_provider import MockDateProvider


class TestNextStreak:
    """Test cases for the pure streak transition."""

    def test_first_completion_starts_streak(self):
        today = date(2024, 1, 15)

        result = next_streak(None, today, 0)

        assert result == StreakResult(new_streak=1, new_last_day=today)

    def test_same_day_keeps_streak(self):
        today = date(2024, 1, 15)

        result = next_streak(today, today, 4)

        assert result == StreakResult(4, today)

    def test_consecutive_day_extends_streak(self):
        today = date(2024, 1, 15)

        result = next_streak(today - timedelta(days=1), today, 4)

        assert result == StreakResult(5, today)

    @pytest.mark.parametrize("gap", [2, 3, 30])
    def test_gap_resets_streak(self, gap):
        today = date(2024, 1, 15)

        result = next_streak(today - timedelta(days=gap), today, 9)

        assert result == StreakResult(1, today)

    def test_out_of_order_event_does_not_regress(self):
        """An event dated before the last completion counts as the same day."""
        last = date(2024, 1, 15)

        result = next_streak(last, date(2024, 1, 13), 6)

        assert result == StreakResult(6, last)

    def test_month_boundary_is_consecutive(self):
        result = next_streak(date(2024, 1, 31), date(2024, 2, 1), 2)

        assert result.new_streak == 3

    def test_leap_day_is_consecutive(self):
        result = next_streak(date(2024, 2, 28), date(2024, 2, 29), 1)

        assert result.new_streak == 2

    def test_daily_sequence_builds_streak(self):
        start = date(2024, 1, 1)
        last, streak = None, 0

        for offset in range(10):
            streak, last = next_streak(last, start + timedelta(days=offset), streak)

        assert streak == 10
        assert last == date(2024, 1, 10)


class TestStreakService:
    """Test cases for the date-provider aware wrapper."""

    def test_calculate_uses_provider_today(self):
        provider = MockDateProvider(date(2024, 3, 10))
        service = StreakService(provider)

        result = service.calculate(date(2024, 3, 9), 3)

        assert result == StreakResult(4, date(2024, 3, 10))

    def test_calculate_with_explicit_date(self):
        service = StreakService(MockDateProvider(date(2024, 3, 10)))

        result = service.calculate(date(2024, 3, 9), 3, current_date=date(2024, 3, 20))

        assert result.new_streak == 1

    def test_streak_active_for_today_and_yesterday(self):
        provider = MockDateProvider(date(2024, 3, 10))
        service = StreakService(provider)

        assert service.is_streak_active(date(2024, 3, 10))
        assert service.is_streak_active(date(2024, 3, 9))
        assert not service.is_streak_active(date(2024, 3, 8))
        assert not service.is_streak_active(None)

    def test_streak_activity_follows_provider(self):
        provider = MockDateProvider(date(2024, 3, 10))
        service = StreakService(provider)

        provider.advance_days(2)

        assert not service.is_streak_active(date(2024, 3, 10))
