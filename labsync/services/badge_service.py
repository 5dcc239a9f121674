"""Badge rules and evaluation.

Badges are one-way achievements derived from a user's aggregate. Evaluation
is pure and idempotent: it reports which rules hold that the aggregate has
not been credited for yet, and the caller persists the union.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Protocol


class BadgeId(str, Enum):
    """Closed set of badges the engine can award."""

    FIRST_TASK = "first_task"
    TASK_MASTER_10 = "task_master_10"
    TASK_MASTER_50 = "task_master_50"
    TASK_MASTER_100 = "task_master_100"
    STREAK_7 = "streak_7"
    STREAK_30 = "streak_30"
    POINTS_1000 = "points_1000"
    POINTS_5000 = "points_5000"
    PERFECTIONIST = "perfectionist"


class AggregateLike(Protocol):
    """Fields of an aggregate that badge rules read."""

    total_points: int
    tasks_completed: int
    tasks_on_time: int
    current_streak: int
    badges: List[str]


class BadgeRule(NamedTuple):
    """A badge with its display data and award predicate."""
    badge: BadgeId
    name: str
    description: str
    predicate: Callable[[AggregateLike], bool]


BADGE_RULES: List[BadgeRule] = [
    BadgeRule(BadgeId.FIRST_TASK, "First Task", "Complete your first task",
              lambda a: a.tasks_completed >= 1),
    BadgeRule(BadgeId.TASK_MASTER_10, "Task Master", "Complete 10 tasks",
              lambda a: a.tasks_completed >= 10),
    BadgeRule(BadgeId.TASK_MASTER_50, "Task Expert", "Complete 50 tasks",
              lambda a: a.tasks_completed >= 50),
    BadgeRule(BadgeId.TASK_MASTER_100, "Task Legend", "Complete 100 tasks",
              lambda a: a.tasks_completed >= 100),
    BadgeRule(BadgeId.STREAK_7, "Week Warrior", "Reach a 7 day streak",
              lambda a: a.current_streak >= 7),
    BadgeRule(BadgeId.STREAK_30, "Month Master", "Reach a 30 day streak",
              lambda a: a.current_streak >= 30),
    BadgeRule(BadgeId.POINTS_1000, "Point Collector", "Earn 1000 points",
              lambda a: a.total_points >= 1000),
    BadgeRule(BadgeId.POINTS_5000, "Point Hoarder", "Earn 5000 points",
              lambda a: a.total_points >= 5000),
    # Early completions are counted separately, so they break this badge
    BadgeRule(BadgeId.PERFECTIONIST, "Perfectionist", "Complete more than 10 tasks, all on time",
              lambda a: a.tasks_completed > 10 and a.tasks_on_time == a.tasks_completed),
]


def evaluate(aggregate: AggregateLike) -> frozenset[BadgeId]:
    """Return the badges ``aggregate`` qualifies for but does not hold yet.

    Badge strings on the aggregate that are not part of ``BadgeId`` are
    ignored.
    """
    held = set(aggregate.badges or [])
    return frozenset(
        rule.badge
        for rule in BADGE_RULES
        if rule.badge.value not in held and rule.predicate(aggregate)
    )


def badge_catalog() -> List[Dict[str, str]]:
    """Display metadata for every badge, in rule order."""
    return [
        {"id": rule.badge.value, "name": rule.name, "description": rule.description}
        for rule in BADGE_RULES
    ]
