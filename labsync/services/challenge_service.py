"""Challenge lifecycle: periodic creation, retirement and progress tracking.

Challenges are time-windowed goals shared by every user. A scheduler calls
``tick`` periodically to retire expired challenges and make sure a weekly
and a monthly challenge cover the current day. Progress is tracked
incrementally as completions arrive, and can be rebuilt at any time from
the points ledger with ``reconcile``.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import List, NamedTuple, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labsync.services.exceptions import PersistenceError, ValidationError
from labsync.shared.config import Settings, get_settings
from labsync.shared.database import get_session_maker
from labsync.shared.date_provider import DateProvider, get_date_provider
from labsync.web.crud import (
    ChallengeOperations,
    ChallengeProgressOperations,
    ConflictError,
    DatabaseOperationError,
    LedgerOperations,
    NotFoundError,
)
from labsync.web.models import Challenge, ChallengeKind, ChallengeProgress

logger = logging.getLogger(__name__)


class Period(NamedTuple):
    """Canonical challenge period."""
    start: date
    end: date
    key: str


def week_period(day: date) -> Period:
    """ISO week (Monday to Sunday) containing ``day``."""
    start = day - timedelta(days=day.weekday())
    iso_year, iso_week, _ = day.isocalendar()
    return Period(start, start + timedelta(days=6), f"{iso_year}-W{iso_week:02d}")


def month_period(day: date) -> Period:
    """Calendar month containing ``day``."""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return Period(
        day.replace(day=1),
        day.replace(day=last_day),
        f"{day.year}-{day.month:02d}"
    )


def period_for(kind: ChallengeKind, day: date) -> Period:
    if kind == ChallengeKind.WEEKLY:
        return week_period(day)
    return month_period(day)


class TickResult(NamedTuple):
    """Outcome of one scheduler tick."""
    deactivated: int
    created: List[UUID]
    reconciled: int


class ChallengeProgressView(NamedTuple):
    """A challenge together with one user's progress in it."""
    challenge: Challenge
    points_earned: int
    tasks_completed: int
    completed: bool
    completed_at: Optional[datetime]
    progress_percent: int


def progress_percent(challenge: Challenge, points: int, tasks: int, completed: bool) -> int:
    """Overall progress toward a challenge, 0 to 100.

    The mean of the points and tasks percentages over the goals the
    challenge configures, each capped at 100.
    """
    parts = []
    if challenge.goal_points:
        parts.append(min(100.0, points / challenge.goal_points * 100))
    if challenge.goal_tasks:
        parts.append(min(100.0, tasks / challenge.goal_tasks * 100))
    if not parts:
        return 100 if completed else 0
    return round(sum(parts) / len(parts))


class ChallengeLifecycleManager:
    """Creates, retires and tracks progress of challenges."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        date_provider: Optional[DateProvider] = None,
        settings: Optional[Settings] = None
    ):
        """Initialize the manager.

        Args:
            session_maker: Session factory, defaults to the application one
            date_provider: Source of "today" and "now"
            settings: Goal defaults and time zone, defaults to global settings
        """
        self._session_maker = session_maker or get_session_maker()
        self._date_provider = date_provider or get_date_provider()
        self._settings = settings or get_settings()
        self._challenges = ChallengeOperations()
        self._progress = ChallengeProgressOperations()
        self._ledger = LedgerOperations()

    def _resolve_now(self, now: Optional[datetime]) -> Tuple[datetime, date]:
        if now is None:
            return self._date_provider.utcnow(), self._date_provider.today()
        return now, now.astimezone(self._settings.zone).date()

    def _default_goals(self, kind: ChallengeKind) -> Tuple[int, int]:
        if kind == ChallengeKind.WEEKLY:
            return self._settings.weekly_goal_points, self._settings.weekly_goal_tasks
        return self._settings.monthly_goal_points, self._settings.monthly_goal_tasks

    @staticmethod
    def _default_name(kind: ChallengeKind, period: Period) -> str:
        if kind == ChallengeKind.WEEKLY:
            return f"Weekly Challenge - Week of {period.start.strftime('%b')} {period.start.day}"
        return f"Monthly Challenge - {period.start.strftime('%B %Y')}"

    async def tick(self, now: Optional[datetime] = None, reconcile: bool = True) -> TickResult:
        """Retire expired challenges and make sure current ones exist.

        Safe to run any number of times: a challenge for a period that
        already has one is never created twice, even by concurrent ticks.

        Args:
            now: Current time, defaults to the date provider
            reconcile: Rebuild progress of active challenges from the ledger afterwards

        Returns:
            TickResult: Counts of deactivated and ids of created challenges

        Raises:
            PersistenceError: If the store fails
        """
        now, today = self._resolve_now(now)

        try:
            async with self._session_maker() as session:
                deactivated = await self._challenges.deactivate_expired(session, today)
                await session.commit()
        except (DatabaseOperationError, SQLAlchemyError) as e:
            raise PersistenceError("deactivate expired challenges") from e

        if deactivated:
            logger.info(f"Deactivated {deactivated} expired challenges")

        created = []
        for kind in ChallengeKind:
            challenge_id = await self._ensure_current_challenge(kind, today)
            if challenge_id is not None:
                created.append(challenge_id)

        reconciled = await self.reconcile(now=now) if reconcile else 0

        return TickResult(deactivated=deactivated, created=created, reconciled=reconciled)

    async def _ensure_current_challenge(self, kind: ChallengeKind, today: date) -> Optional[UUID]:
        """Create the challenge of ``kind`` for the period containing ``today`` if missing."""
        period = period_for(kind, today)
        goal_points, goal_tasks = self._default_goals(kind)

        try:
            async with self._session_maker() as session:
                existing = await self._challenges.get_active_challenges(
                    session, day=today, kind=kind.value
                )
                if existing:
                    return None

                try:
                    challenge = await self._challenges.create_challenge(
                        session,
                        kind=kind.value,
                        name=self._default_name(kind, period),
                        start_date=period.start,
                        end_date=period.end,
                        goal_points=goal_points,
                        goal_tasks=goal_tasks,
                        period_key=period.key
                    )
                    await session.commit()
                except ConflictError:
                    await session.rollback()
                    logger.info(f"{kind.value.title()} challenge for {period.key} already exists")
                    return None

                logger.info(f"Created {kind.value} challenge {challenge.id} for {period.key}")
                return challenge.id

        except (DatabaseOperationError, SQLAlchemyError) as e:
            raise PersistenceError(f"create {kind.value} challenge") from e

    async def on_completion(
        self,
        user_id: str,
        points: int,
        today: date,
        now: Optional[datetime] = None
    ) -> List[UUID]:
        """Add a completion to every active challenge covering ``today``.

        Args:
            user_id: User who completed the task
            points: Points earned by the completion
            today: Local day of the completion
            now: Completion time, stamped on newly completed progress

        Returns:
            List[UUID]: Challenges this completion pushed over their goals

        Raises:
            PersistenceError: If the store fails
        """
        if now is None:
            now = self._date_provider.utcnow()

        newly_completed = []
        try:
            async with self._session_maker() as session:
                challenges = await self._challenges.get_active_challenges(session, day=today)

                for challenge in challenges:
                    progress = await self._progress.get_or_create_progress(
                        session, challenge.id, user_id
                    )
                    progress.points_earned += points
                    progress.tasks_completed += 1

                    if self._mark_completed(challenge, progress, now):
                        newly_completed.append(challenge.id)

                await session.commit()

        except (DatabaseOperationError, SQLAlchemyError) as e:
            raise PersistenceError(f"update challenge progress for user {user_id}") from e

        for challenge_id in newly_completed:
            logger.info(f"User {user_id} completed challenge {challenge_id}")

        return newly_completed

    @staticmethod
    def _mark_completed(challenge: Challenge, progress: ChallengeProgress, now: datetime) -> bool:
        """Flip ``completed`` once goals are met; never clears it."""
        if progress.completed:
            return False
        if not challenge.goals_met(progress.points_earned, progress.tasks_completed):
            return False
        progress.completed = True
        progress.completed_at = now
        return True

    async def reconcile(
        self,
        challenge_id: Optional[UUID] = None,
        now: Optional[datetime] = None
    ) -> int:
        """Rebuild challenge progress from the points ledger.

        Progress counters are overwritten with ledger sums over the challenge
        range. Completion is set when goals are met and is never cleared.

        Args:
            challenge_id: Only reconcile this challenge, defaults to every active one
            now: Time stamped on progress completed by reconciliation

        Returns:
            int: Number of progress rows written

        Raises:
            NotFoundError: If ``challenge_id`` doesn't exist
            PersistenceError: If the store fails
        """
        if now is None:
            now = self._date_provider.utcnow()

        written = 0
        try:
            async with self._session_maker() as session:
                if challenge_id is not None:
                    challenges = [await self._challenges.get_challenge(session, challenge_id)]
                else:
                    challenges = await self._challenges.get_active_challenges(session)

                for challenge in challenges:
                    written += await self._reconcile_challenge(session, challenge, now)

                await session.commit()

        except NotFoundError:
            raise
        except (DatabaseOperationError, SQLAlchemyError) as e:
            raise PersistenceError("reconcile challenge progress") from e

        if written:
            logger.info(f"Reconciled {written} challenge progress rows")

        return written

    async def _reconcile_challenge(
        self,
        session: AsyncSession,
        challenge: Challenge,
        now: datetime
    ) -> int:
        totals = await self._ledger.get_user_totals(session, challenge.start_date, challenge.end_date)
        existing = await self._progress.get_progress_for_challenge(session, challenge.id)

        sums = {user_id: (points, tasks) for user_id, points, tasks in totals}
        written = 0

        for user_id in set(sums) | set(existing):
            points, tasks = sums.get(user_id, (0, 0))
            progress = existing.get(user_id)
            if progress is None:
                progress = ChallengeProgress(challenge_id=challenge.id, user_id=user_id)
                session.add(progress)

            progress.points_earned = points
            progress.tasks_completed = tasks
            self._mark_completed(challenge, progress, now)
            written += 1

        return written

    async def create_challenge(
        self,
        kind: str,
        name: str,
        start_date: date,
        end_date: date,
        goal_points: Optional[int] = None,
        goal_tasks: Optional[int] = None,
        reward_badge: Optional[str] = None,
        description: Optional[str] = None
    ) -> Challenge:
        """Create a challenge outside the scheduler's periods.

        Raises:
            ValidationError: On unknown kind, empty name, negative goals or an inverted range
            PersistenceError: If the store fails
        """
        try:
            kind = ChallengeKind(kind).value
        except ValueError as e:
            raise ValidationError("kind", f"Unknown challenge kind: {kind}") from e
        if not name or not name.strip():
            raise ValidationError("name", "Challenge name cannot be empty")
        if end_date < start_date:
            raise ValidationError("end_date", "End date must not be before start date")
        for field, goal in (("goal_points", goal_points), ("goal_tasks", goal_tasks)):
            if goal is not None and goal < 0:
                raise ValidationError(field, "Goals cannot be negative")

        try:
            async with self._session_maker() as session:
                challenge = await self._challenges.create_challenge(
                    session,
                    kind=kind,
                    name=name.strip(),
                    start_date=start_date,
                    end_date=end_date,
                    goal_points=goal_points,
                    goal_tasks=goal_tasks,
                    reward_badge=reward_badge,
                    description=description
                )
                await session.commit()
        except (DatabaseOperationError, SQLAlchemyError) as e:
            raise PersistenceError("create challenge") from e

        logger.info(f"Created {kind} challenge {challenge.id} '{challenge.name}'")
        return challenge

    async def get_active_challenges(self, today: Optional[date] = None) -> List[Challenge]:
        """Active challenges whose range contains ``today``."""
        if today is None:
            today = self._date_provider.today()

        try:
            async with self._session_maker() as session:
                return await self._challenges.get_active_challenges(session, day=today)
        except DatabaseOperationError as e:
            raise PersistenceError("get active challenges") from e

    async def get_user_progress(
        self,
        user_id: str,
        today: Optional[date] = None
    ) -> List[ChallengeProgressView]:
        """Active challenges with ``user_id``'s progress, zero when none recorded."""
        if today is None:
            today = self._date_provider.today()

        try:
            async with self._session_maker() as session:
                challenges = await self._challenges.get_active_challenges(session, day=today)
                progress_by_id = await self._progress.get_progress_for_user(
                    session, user_id, [challenge.id for challenge in challenges]
                )
        except DatabaseOperationError as e:
            raise PersistenceError(f"get challenge progress for user {user_id}") from e

        views = []
        for challenge in challenges:
            progress = progress_by_id.get(challenge.id)
            points = progress.points_earned if progress else 0
            tasks = progress.tasks_completed if progress else 0
            completed = progress.completed if progress else False
            views.append(ChallengeProgressView(
                challenge=challenge,
                points_earned=points,
                tasks_completed=tasks,
                completed=completed,
                completed_at=progress.completed_at if progress else None,
                progress_percent=progress_percent(challenge, points, tasks, completed)
            ))
        return views
