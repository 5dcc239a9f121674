"""Recording of task completion events.

The recorder is the only writer of user aggregates. For each completion it
updates points, counters and streak and appends the points ledger in a
single transaction, then awards badges and forwards the event to the
challenge manager. Those two follow-ups are best effort: their failures are
logged and never undo the recorded completion.

Updates for one user are serialized by a keyed lock, and each aggregate
write carries an optimistic version check that is retried on conflict.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, NamedTuple, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from labsync.services.badge_service import BadgeId, evaluate
from labsync.services.challenge_service import ChallengeLifecycleManager
from labsync.services.exceptions import (
    ConcurrencyConflictError,
    PersistenceError,
    ValidationError,
)
from labsync.services.streak_service import next_streak
from labsync.shared.config import Settings, get_settings
from labsync.shared.database import get_session_maker
from labsync.shared.date_provider import DateProvider, get_date_provider
from labsync.shared.locks import KeyedLock, LockAcquisitionError, create_keyed_lock
from labsync.web.crud import AggregateOperations, DatabaseOperationError, LedgerOperations
from labsync.web.models import CompletionTiming, UserAggregate

logger = logging.getLogger(__name__)


class AggregateSnapshot(NamedTuple):
    """Detached copy of a user's aggregate."""
    user_id: str
    total_points: int
    tasks_completed: int
    tasks_on_time: int
    tasks_early: int
    tasks_late: int
    current_streak: int
    longest_streak: int
    last_completion_day: Optional[date]
    last_completed_at: Optional[datetime]
    badges: Tuple[str, ...]

    @classmethod
    def from_model(cls, aggregate: UserAggregate) -> "AggregateSnapshot":
        return cls(
            user_id=aggregate.user_id,
            total_points=aggregate.total_points,
            tasks_completed=aggregate.tasks_completed,
            tasks_on_time=aggregate.tasks_on_time,
            tasks_early=aggregate.tasks_early,
            tasks_late=aggregate.tasks_late,
            current_streak=aggregate.current_streak,
            longest_streak=aggregate.longest_streak,
            last_completion_day=aggregate.last_completion_day,
            last_completed_at=aggregate.last_completed_at,
            badges=tuple(aggregate.badges or ())
        )


class CompletionResult(NamedTuple):
    """Outcome of recording one completion, for the notification layer."""
    aggregate: AggregateSnapshot
    new_badges: frozenset[BadgeId]
    completed_challenges: List[UUID]


def timing_from_flags(on_time: bool = False, early: bool = False, late: bool = False) -> CompletionTiming:
    """Map the boolean completion flags of task clients to a timing.

    ``early`` wins over ``on_time`` since an early completion is also on
    time. ``late`` excludes both other flags.

    Raises:
        ValidationError: If no flag is set, or ``late`` is combined with another flag
    """
    if late:
        if on_time or early:
            raise ValidationError("timing", "A completion cannot be late and on time or early")
        return CompletionTiming.LATE
    if early:
        return CompletionTiming.EARLY
    if on_time:
        return CompletionTiming.ON_TIME
    raise ValidationError("timing", "Exactly one of on time, early or late is required")


def _validate_event(user_id: str, points: int, timing: Union[CompletionTiming, str]) -> CompletionTiming:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id", "User id cannot be empty")
    if isinstance(points, bool) or not isinstance(points, int):
        raise ValidationError("points", "Points must be an integer")
    if points < 0:
        raise ValidationError("points", "Points cannot be negative")
    try:
        return CompletionTiming(timing)
    except ValueError as e:
        raise ValidationError("timing", f"Unknown completion timing: {timing}") from e


class AggregateRecorder:
    """Applies completion events to user aggregates."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        lock: Optional[KeyedLock] = None,
        challenge_manager: Optional[ChallengeLifecycleManager] = None,
        date_provider: Optional[DateProvider] = None,
        settings: Optional[Settings] = None
    ):
        """Initialize the recorder.

        Args:
            session_maker: Session factory, defaults to the application one
            lock: Keyed lock shared by every recorder of the process
            challenge_manager: Receives completions after they are recorded
            date_provider: Source of "today" and "now"
            settings: Retry limit and lock backend, defaults to global settings
        """
        self._settings = settings or get_settings()
        self._session_maker = session_maker or get_session_maker()
        self._date_provider = date_provider or get_date_provider()
        self._lock = lock or create_keyed_lock(self._settings)
        self._challenge_manager = challenge_manager or ChallengeLifecycleManager(
            session_maker=self._session_maker,
            date_provider=self._date_provider,
            settings=self._settings
        )
        self._aggregates = AggregateOperations()
        self._ledger = LedgerOperations()

    async def record_completion(
        self,
        user_id: str,
        points: int,
        timing: Union[CompletionTiming, str],
        today: Optional[date] = None
    ) -> CompletionResult:
        """Record one completed task.

        Args:
            user_id: User who completed the task
            points: Points earned, zero or more
            timing: On time, early or late
            today: Local day of the completion, defaults to the date provider

        Returns:
            CompletionResult: Updated aggregate, newly awarded badges and newly
            completed challenges

        Raises:
            ValidationError: If the event is malformed; nothing is written
            ConcurrencyConflictError: If the update kept conflicting
            PersistenceError: If the store fails
        """
        timing = _validate_event(user_id, points, timing)
        if today is None:
            today = self._date_provider.today()
        now = self._date_provider.utcnow()

        try:
            async with self._lock.lock(user_id):
                snapshot = await self._apply_completion(user_id, points, timing, today, now)

                new_badges = await self._award_badges(user_id)
                if new_badges:
                    snapshot = snapshot._replace(
                        badges=snapshot.badges + tuple(sorted(badge.value for badge in new_badges))
                    )

                completed_challenges = await self._forward_to_challenges(user_id, points, today, now)
        except LockAcquisitionError as e:
            raise ConcurrencyConflictError(user_id, attempts=0) from e

        return CompletionResult(
            aggregate=snapshot,
            new_badges=new_badges,
            completed_challenges=completed_challenges
        )

    async def _apply_completion(
        self,
        user_id: str,
        points: int,
        timing: CompletionTiming,
        today: date,
        now: datetime
    ) -> AggregateSnapshot:
        """Update the aggregate and append the ledger in one transaction, retrying stale writes."""
        attempts = self._settings.max_update_retries

        for attempt in range(1, attempts + 1):
            try:
                async with self._session_maker() as session:
                    aggregate = await self._aggregates.get_or_create_aggregate(session, user_id)
                    self._apply_event(aggregate, points, timing, today, now)
                    await self._ledger.append_entry(session, user_id, points, today)
                    await session.commit()
                    return AggregateSnapshot.from_model(aggregate)

            except (StaleDataError, IntegrityError) as e:
                logger.warning(
                    f"Aggregate update for user {user_id} conflicted "
                    f"(attempt {attempt}/{attempts}): {e}"
                )
            except (DatabaseOperationError, SQLAlchemyError) as e:
                raise PersistenceError(f"record completion for user {user_id}") from e

        raise ConcurrencyConflictError(user_id, attempts=attempts)

    @staticmethod
    def _apply_event(
        aggregate: UserAggregate,
        points: int,
        timing: CompletionTiming,
        today: date,
        now: datetime
    ) -> None:
        aggregate.total_points += points
        aggregate.tasks_completed += 1
        if timing == CompletionTiming.ON_TIME:
            aggregate.tasks_on_time += 1
        elif timing == CompletionTiming.EARLY:
            aggregate.tasks_early += 1
        else:
            aggregate.tasks_late += 1

        streak = next_streak(aggregate.last_completion_day, today, aggregate.current_streak)
        aggregate.current_streak = streak.new_streak
        aggregate.longest_streak = max(aggregate.longest_streak, streak.new_streak)
        aggregate.last_completion_day = streak.new_last_day
        aggregate.last_completed_at = now

    async def _award_badges(self, user_id: str) -> frozenset[BadgeId]:
        """Persist badges the committed aggregate now qualifies for.

        Best effort: a missed badge is awarded by the next completion.
        """
        try:
            async with self._session_maker() as session:
                aggregate = await self._aggregates.get_aggregate(session, user_id)
                new_badges = evaluate(aggregate)
                if new_badges:
                    aggregate.badges = list(aggregate.badges or []) + sorted(
                        badge.value for badge in new_badges
                    )
                    await session.commit()
                    logger.info(
                        f"User {user_id} earned badges: "
                        f"{', '.join(sorted(badge.value for badge in new_badges))}"
                    )
                return new_badges
        except Exception as e:
            logger.warning(f"Failed to award badges to user {user_id}: {e}")
            return frozenset()

    async def _forward_to_challenges(
        self,
        user_id: str,
        points: int,
        today: date,
        now: datetime
    ) -> List[UUID]:
        try:
            return await self._challenge_manager.on_completion(user_id, points, today, now=now)
        except Exception as e:
            logger.warning(f"Failed to update challenge progress for user {user_id}: {e}")
            return []
