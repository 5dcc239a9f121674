"""Database models for the LabSync scoring engine."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import BigInteger
from sqlalchemy import Boolean
from sqlalchemy import Date, DateTime
from sqlalchemy import Index, UniqueConstraint
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import String
from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column

from labsync.shared.database import Base


class CompletionTiming(str, Enum):
    """When a task was completed relative to its due date."""

    ON_TIME = "on_time"
    EARLY = "early"
    LATE = "late"


class ChallengeKind(str, Enum):
    """Challenge period granularity."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"


class UserAggregate(Base):
    """Per-user scoring summary.

    One row per user, created lazily on the user's first completion event.
    It caches facts that are also recoverable from the points ledger and is
    eventually consistent with it. Writes are guarded by an optimistic
    version counter, so a concurrent writer that loaded a stale row fails
    with StaleDataError instead of silently overwriting.
    """

    __tablename__ = "user_aggregates"

    user_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="User identifier"
    )

    # Points and task counters
    total_points: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        doc="Sum of points of every completion"
    )
    tasks_completed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Number of completions"
    )
    tasks_on_time: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Completions classified as on time"
    )
    tasks_early: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Completions classified as early"
    )
    tasks_late: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Completions classified as late"
    )

    # Streak tracking
    current_streak: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Consecutive days with at least one completion"
    )
    longest_streak: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Highest streak ever reached"
    )
    last_completion_day: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Local calendar day of the last completion"
    )
    last_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Timestamp of the last completion"
    )

    # Badge ids, grow-only
    badges: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Badge identifiers earned so far"
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Optimistic concurrency counter"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_user_aggregates_ranking", "total_points", "tasks_completed"),
    )

    def __init__(self, **kwargs):
        """Initialize UserAggregate with zero-state defaults."""
        kwargs.setdefault('total_points', 0)
        kwargs.setdefault('tasks_completed', 0)
        kwargs.setdefault('tasks_on_time', 0)
        kwargs.setdefault('tasks_early', 0)
        kwargs.setdefault('tasks_late', 0)
        kwargs.setdefault('current_streak', 0)
        kwargs.setdefault('longest_streak', 0)
        kwargs.setdefault('badges', [])
        super().__init__(**kwargs)

    @property
    def badge_set(self) -> frozenset[str]:
        """Badges as a set for membership checks."""
        return frozenset(self.badges or [])


class PointsLedgerEntry(Base):
    """Append-only record of points earned.

    One row per accepted completion event. Rows are never updated or
    deleted; reporting and challenge reconciliation read from here.
    """

    __tablename__ = "points_ledger"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        doc="Unique entry identifier"
    )
    user_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="User who earned the points"
    )
    points: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Points earned by the completion"
    )
    entry_date: Mapped[date] = mapped_column(
        "date",
        Date,
        nullable=False,
        doc="Local calendar day of the completion"
    )

    __table_args__ = (
        Index("ix_points_ledger_user_date", "user_id", "date"),
        Index("ix_points_ledger_date", "date"),
    )

    def __init__(self, **kwargs):
        """Initialize PointsLedgerEntry with auto-generated ID if not provided."""
        kwargs.setdefault('id', uuid4())
        super().__init__(**kwargs)


class Challenge(Base):
    """Time-windowed goal shared by every user.

    Scheduler-created challenges carry a ``period_key`` (``2024-W03`` or
    ``2024-01``); the unique constraint on ``(kind, period_key)`` makes a
    second creation for the same period fail at the store. Manually created
    challenges leave ``period_key`` empty and are not constrained.
    """

    __tablename__ = "challenges"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        doc="Unique challenge identifier"
    )
    kind: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        doc="Challenge kind: weekly or monthly"
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Display name"
    )
    description: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        doc="Optional description"
    )
    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="First day of the challenge (inclusive)"
    )
    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Last day of the challenge (inclusive)"
    )
    goal_points: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Points goal, null when not part of the challenge"
    )
    goal_tasks: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Tasks goal, null when not part of the challenge"
    )
    reward_badge: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Badge label announced for completing the challenge"
    )
    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether the challenge is currently running"
    )
    period_key: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        doc="Canonical period for scheduler-created challenges"
    )

    __table_args__ = (
        UniqueConstraint("kind", "period_key", name="uq_challenges_kind_period"),
        Index("ix_challenges_active_range", "active", "start_date", "end_date"),
    )

    def __init__(self, **kwargs):
        """Initialize Challenge with auto-generated ID if not provided."""
        kwargs.setdefault('id', uuid4())
        kwargs.setdefault('active', True)
        super().__init__(**kwargs)

    def covers(self, day: date) -> bool:
        """Check whether ``day`` falls inside the challenge range."""
        return self.start_date <= day <= self.end_date

    def goals_met(self, points: int, tasks: int) -> bool:
        """Check whether every configured goal is satisfied."""
        points_met = self.goal_points is None or points >= self.goal_points
        tasks_met = self.goal_tasks is None or tasks >= self.goal_tasks
        return points_met and tasks_met


class ChallengeProgress(Base):
    """One user's contribution toward one challenge."""

    __tablename__ = "challenge_progress"

    challenge_id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        doc="Challenge identifier"
    )
    user_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="User identifier"
    )
    points_earned: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Points earned inside the challenge window"
    )
    tasks_completed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Tasks completed inside the challenge window"
    )
    completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether the goals were reached; never reverts"
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the goals were first reached"
    )

    __table_args__ = (
        Index("ix_challenge_progress_user", "user_id"),
    )

    def __init__(self, **kwargs):
        """Initialize ChallengeProgress with zero-state defaults."""
        kwargs.setdefault('points_earned', 0)
        kwargs.setdefault('tasks_completed', 0)
        kwargs.setdefault('completed', False)
        super().__init__(**kwargs)


class GroupScore(Base):
    """Ad hoc per-group score, independent of user aggregates."""

    __tablename__ = "group_scores"

    group_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="Group identifier"
    )
    user_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="User identifier"
    )
    score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Score inside the group, never negative"
    )

    def __init__(self, **kwargs):
        kwargs.setdefault('score', 0)
        super().__init__(**kwargs)


class UserContact(Base):
    """Contact relation between two users.

    Owned by the contacts feature; the scoring engine only reads accepted
    rows, in either direction.
    """

    __tablename__ = "user_contacts"

    user_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="User who sent the contact request"
    )
    contact_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="User who received the contact request"
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        doc="Request status: pending, accepted or rejected"
    )

    __table_args__ = (
        Index("ix_user_contacts_contact_id", "contact_id"),
    )
