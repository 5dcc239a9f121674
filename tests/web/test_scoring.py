"""Tests for task point calculation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from labsync.web.models import CompletionTiming
from labsync.web.scoring import (
    calculate_task_points,
    collaboration_bonus,
    time_bonus,
    urgency_multiplier,
)

COMPLETED_AT = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def due_in(hours: float) -> datetime:
    return COMPLETED_AT + timedelta(hours=hours)


class TestComponents:
    @pytest.mark.parametrize("hours,expected", [
        (None, 1), (-5, 1), (2, 3), (23.9, 3), (24, 2), (71, 2), (72, 1), (200, 1),
    ])
    def test_urgency_multiplier(self, hours, expected):
        assert urgency_multiplier(hours) == expected

    @pytest.mark.parametrize("hours,expected", [
        (None, 0), (100, 20), (48.5, 20), (48, 10), (25, 10), (24, 0), (1, 0), (0, -10), (-3, -10),
    ])
    def test_time_bonus(self, hours, expected):
        assert time_bonus(hours) == expected

    @pytest.mark.parametrize("count,expected", [(0, 0), (1, 0), (2, 10), (3, 10), (4, 15)])
    def test_collaboration_bonus(self, count, expected):
        assert collaboration_bonus(count) == expected


class TestCalculateTaskPoints:
    """Test cases for the full points formula."""

    def test_urgent_high_priority(self):
        result = calculate_task_points("high", due_at=due_in(12), completed_at=COMPLETED_AT)

        assert result.points == 150
        assert result.timing == CompletionTiming.ON_TIME
        assert result.multiplier == 3

    def test_early_completion(self):
        result = calculate_task_points("high", due_at=due_in(100), completed_at=COMPLETED_AT)

        assert result.points == 70
        assert result.timing == CompletionTiming.EARLY

    def test_late_completion(self):
        result = calculate_task_points("high", due_at=due_in(-2), completed_at=COMPLETED_AT)

        assert result.points == 40
        assert result.timing == CompletionTiming.LATE

    def test_late_low_priority_never_negative(self):
        result = calculate_task_points("low", due_at=due_in(-2), completed_at=COMPLETED_AT)

        assert result.points == 0
        assert result.timing == CompletionTiming.LATE

    def test_no_due_date(self):
        result = calculate_task_points("medium", completed_at=COMPLETED_AT)

        assert result.points == 25
        assert result.timing == CompletionTiming.ON_TIME

    def test_unknown_priority_scores_as_low(self):
        assert calculate_task_points("urgent", completed_at=COMPLETED_AT).base_points == 10
        assert calculate_task_points(None, completed_at=COMPLETED_AT).base_points == 10
        assert calculate_task_points("HIGH", completed_at=COMPLETED_AT).base_points == 50

    def test_bonuses_add_up(self):
        result = calculate_task_points(
            "medium",
            due_at=due_in(30),
            completed_at=COMPLETED_AT,
            assignee_count=4,
            resolved_blocker=True,
        )

        # 25 * 2 + 10 early + 15 team + 25 unblock
        assert result.points == 100
        assert result.collaboration_bonus == 15
        assert result.unblock_bonus == 25

    def test_naive_datetimes_are_utc(self):
        naive = calculate_task_points(
            "low",
            due_at=due_in(12).replace(tzinfo=None),
            completed_at=COMPLETED_AT.replace(tzinfo=None),
        )
        aware = calculate_task_points("low", due_at=due_in(12), completed_at=COMPLETED_AT)

        assert naive == aware
