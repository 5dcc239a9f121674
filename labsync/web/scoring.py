"""Task point calculation.

Points for a completed task reward priority, urgency and finishing ahead of
the due date, plus flat bonuses for collaboration and for resolving a
blocker:

    points = max(0, round(base * urgency + time_bonus + collaboration + unblock))

The timing classification follows the time bonus: a positive bonus is an
early completion, zero is on time and a penalty is late. Task clients call
this before reporting a completion; the engine itself does not re-derive
timing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import NamedTuple, Optional

from labsync.web.models import CompletionTiming

BASE_POINTS = {
    "low": 10,
    "medium": 25,
    "high": 50,
}
DEFAULT_BASE_POINTS = 10

UNBLOCK_BONUS = 25


class TaskPointsResult(NamedTuple):
    """Points for a task together with how they were computed."""
    points: int
    timing: CompletionTiming
    base_points: int
    multiplier: int
    time_bonus: int
    collaboration_bonus: int
    unblock_bonus: int


def _hours_remaining(due_at: datetime, completed_at: datetime) -> float:
    # Naive datetimes are taken as UTC
    if due_at.tzinfo is None:
        due_at = due_at.replace(tzinfo=timezone.utc)
    if completed_at.tzinfo is None:
        completed_at = completed_at.replace(tzinfo=timezone.utc)
    return (due_at - completed_at).total_seconds() / 3600


def urgency_multiplier(hours_remaining: Optional[float]) -> int:
    """Multiplier for completing a task close to its due date."""
    if hours_remaining is None or hours_remaining < 0:
        return 1
    if hours_remaining < 24:
        return 3
    if hours_remaining < 72:
        return 2
    return 1


def time_bonus(hours_remaining: Optional[float]) -> int:
    """Bonus for finishing well ahead of the due date, penalty when overdue."""
    if hours_remaining is None:
        return 0
    if hours_remaining > 48:
        return 20
    if hours_remaining > 24:
        return 10
    if hours_remaining > 0:
        return 0
    return -10


def collaboration_bonus(assignee_count: int) -> int:
    if assignee_count > 3:
        return 15
    if assignee_count > 1:
        return 10
    return 0


def calculate_task_points(
    priority: Optional[str],
    due_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
    assignee_count: int = 1,
    resolved_blocker: bool = False
) -> TaskPointsResult:
    """Calculate the points earned for completing a task.

    Args:
        priority: Task priority: low, medium or high; anything else scores as low
        due_at: Task due date, None when the task has none
        completed_at: Completion time, defaults to now
        assignee_count: Number of people assigned to the task
        resolved_blocker: Whether completing the task unblocks another one

    Returns:
        TaskPointsResult: Points, timing and the individual components
    """
    if completed_at is None:
        completed_at = datetime.now(timezone.utc)

    hours = _hours_remaining(due_at, completed_at) if due_at is not None else None

    base = BASE_POINTS.get((priority or "").lower(), DEFAULT_BASE_POINTS)
    multiplier = urgency_multiplier(hours)
    bonus = time_bonus(hours)
    collaboration = collaboration_bonus(assignee_count)
    unblock = UNBLOCK_BONUS if resolved_blocker else 0

    total = base * multiplier + bonus + collaboration + unblock

    if bonus > 0:
        timing = CompletionTiming.EARLY
    elif bonus == 0:
        timing = CompletionTiming.ON_TIME
    else:
        timing = CompletionTiming.LATE

    return TaskPointsResult(
        points=max(0, round(total)),
        timing=timing,
        base_points=base,
        multiplier=multiplier,
        time_bonus=bonus,
        collaboration_bonus=collaboration,
        unblock_bonus=unblock
    )
