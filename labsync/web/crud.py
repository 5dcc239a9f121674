"""Database operations for the LabSync scoring engine.

This module provides data access for every scoring entity. Operations are
grouped in one class per entity, take the session as their first argument
and never commit: transaction boundaries belong to the caller (a service or
a request handler). All operations are async and use SQLAlchemy 2.0 syntax.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from labsync.web.models import (
    Challenge,
    ChallengeProgress,
    GroupScore,
    PointsLedgerEntry,
    UserAggregate,
    UserContact,
)


class DatabaseOperationError(Exception):
    """Base exception for database operations."""
    pass


class NotFoundError(DatabaseOperationError):
    """Raised when a requested resource is not found."""
    pass


class ConflictError(DatabaseOperationError):
    """Raised when a database constraint is violated."""
    pass


def _ranking_order():
    """Leaderboard ordering: points, then tasks, then user id for stability."""
    return (
        desc(UserAggregate.total_points),
        desc(UserAggregate.tasks_completed),
        UserAggregate.user_id,
    )


class AggregateOperations:
    """Database operations for per-user scoring aggregates.

    Aggregates are mutated only by the aggregate recorder; everything else
    here is a read used by the leaderboards.
    """

    async def get_aggregate(
        self,
        session: AsyncSession,
        user_id: str
    ) -> UserAggregate:
        """Get the aggregate of a user.

        Args:
            session: Database session
            user_id: User identifier

        Returns:
            UserAggregate: The user's aggregate

        Raises:
            NotFoundError: If the user has no aggregate yet
            DatabaseOperationError: If database operation fails
        """
        try:
            stmt = select(UserAggregate).where(UserAggregate.user_id == user_id)
            result = await session.execute(stmt)
            aggregate = result.scalar_one_or_none()

            if aggregate is None:
                raise NotFoundError(f"Aggregate not found for user {user_id}")

            return aggregate

        except NotFoundError:
            raise
        except Exception as e:
            raise DatabaseOperationError(f"Failed to get aggregate: {e}") from e

    async def get_or_create_aggregate(
        self,
        session: AsyncSession,
        user_id: str
    ) -> UserAggregate:
        """Get or lazily create the aggregate of a user.

        A new aggregate is added to the session but not flushed, so a
        concurrent creation of the same user surfaces at commit time where
        the caller can retry it.

        Args:
            session: Database session
            user_id: User identifier

        Returns:
            UserAggregate: Existing or new zero-state aggregate

        Raises:
            DatabaseOperationError: If database operation fails
        """
        try:
            stmt = select(UserAggregate).where(UserAggregate.user_id == user_id)
            result = await session.execute(stmt)
            aggregate = result.scalar_one_or_none()

            if aggregate is None:
                aggregate = UserAggregate(user_id=user_id)
                session.add(aggregate)

            return aggregate

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get or create aggregate: {e}") from e

    async def get_ranking(
        self,
        session: AsyncSession,
        limit: int = 50,
        offset: int = 0
    ) -> List[UserAggregate]:
        """Get aggregates in leaderboard order.

        Args:
            session: Database session
            limit: Maximum number of results
            offset: Number of leading rows to skip

        Returns:
            List[UserAggregate]: Aggregates ordered by points then tasks, descending

        Raises:
            DatabaseOperationError: If query fails
        """
        try:
            stmt = (
                select(UserAggregate)
                .order_by(*_ranking_order())
                .limit(limit)
                .offset(offset)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get ranking: {e}") from e

    async def get_aggregates_for_users(
        self,
        session: AsyncSession,
        user_ids: Iterable[str]
    ) -> List[UserAggregate]:
        """Get the aggregates of several users in leaderboard order.

        Users without an aggregate are simply absent from the result.
        """
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []

        try:
            stmt = (
                select(UserAggregate)
                .where(UserAggregate.user_id.in_(ids))
                .order_by(*_ranking_order())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get aggregates: {e}") from e

    async def count_ahead_of(
        self,
        session: AsyncSession,
        aggregate: UserAggregate
    ) -> int:
        """Count aggregates that rank strictly ahead of ``aggregate``."""
        try:
            stmt = select(func.count()).select_from(UserAggregate).where(
                or_(
                    UserAggregate.total_points > aggregate.total_points,
                    and_(
                        UserAggregate.total_points == aggregate.total_points,
                        UserAggregate.tasks_completed > aggregate.tasks_completed,
                    ),
                )
            )
            result = await session.execute(stmt)
            return int(result.scalar_one())

        except Exception as e:
            raise DatabaseOperationError(f"Failed to count ranking position: {e}") from e

    async def count_aggregates(self, session: AsyncSession) -> int:
        """Count users that have an aggregate."""
        try:
            result = await session.execute(select(func.count()).select_from(UserAggregate))
            return int(result.scalar_one())

        except Exception as e:
            raise DatabaseOperationError(f"Failed to count aggregates: {e}") from e


class LedgerOperations:
    """Database operations for the append-only points ledger."""

    async def append_entry(
        self,
        session: AsyncSession,
        user_id: str,
        points: int,
        entry_date: date
    ) -> PointsLedgerEntry:
        """Append a ledger entry.

        Args:
            session: Database session
            user_id: User who earned the points
            points: Points earned
            entry_date: Local calendar day of the completion

        Returns:
            PointsLedgerEntry: The new entry (added, not flushed)

        Raises:
            DatabaseOperationError: If the entry cannot be added
        """
        try:
            entry = PointsLedgerEntry(
                user_id=user_id,
                points=points,
                entry_date=entry_date
            )
            session.add(entry)
            return entry

        except Exception as e:
            raise DatabaseOperationError(f"Failed to append ledger entry: {e}") from e

    async def get_daily_totals(
        self,
        session: AsyncSession,
        user_id: str,
        start_date: date,
        end_date: date
    ) -> List[Tuple[date, int, int]]:
        """Get one user's points and completion count per day.

        Args:
            session: Database session
            user_id: User identifier
            start_date: First day (inclusive)
            end_date: Last day (inclusive)

        Returns:
            List of ``(day, points, completions)`` tuples in ascending day order

        Raises:
            DatabaseOperationError: If query fails
        """
        try:
            stmt = (
                select(
                    PointsLedgerEntry.entry_date,
                    func.coalesce(func.sum(PointsLedgerEntry.points), 0),
                    func.count(),
                )
                .where(
                    PointsLedgerEntry.user_id == user_id,
                    PointsLedgerEntry.entry_date >= start_date,
                    PointsLedgerEntry.entry_date <= end_date,
                )
                .group_by(PointsLedgerEntry.entry_date)
                .order_by(PointsLedgerEntry.entry_date)
            )
            result = await session.execute(stmt)
            return [(day, int(points), int(count)) for day, points, count in result.all()]

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get daily totals: {e}") from e

    async def get_user_totals(
        self,
        session: AsyncSession,
        start_date: date,
        end_date: date
    ) -> List[Tuple[str, int, int]]:
        """Get every user's points and completion count over a date range.

        Returns:
            List of ``(user_id, points, completions)`` tuples

        Raises:
            DatabaseOperationError: If query fails
        """
        try:
            stmt = (
                select(
                    PointsLedgerEntry.user_id,
                    func.coalesce(func.sum(PointsLedgerEntry.points), 0),
                    func.count(),
                )
                .where(
                    PointsLedgerEntry.entry_date >= start_date,
                    PointsLedgerEntry.entry_date <= end_date,
                )
                .group_by(PointsLedgerEntry.user_id)
            )
            result = await session.execute(stmt)
            return [(user_id, int(points), int(count)) for user_id, points, count in result.all()]

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get user totals: {e}") from e


class ChallengeOperations:
    """Database operations for challenge definitions."""

    async def get_challenge(
        self,
        session: AsyncSession,
        challenge_id: UUID
    ) -> Challenge:
        """Get a challenge by id.

        Raises:
            NotFoundError: If the challenge doesn't exist
            DatabaseOperationError: If database operation fails
        """
        try:
            result = await session.execute(select(Challenge).where(Challenge.id == challenge_id))
            challenge = result.scalar_one_or_none()

            if challenge is None:
                raise NotFoundError(f"Challenge {challenge_id} not found")

            return challenge

        except NotFoundError:
            raise
        except Exception as e:
            raise DatabaseOperationError(f"Failed to get challenge: {e}") from e

    async def get_active_challenges(
        self,
        session: AsyncSession,
        day: Optional[date] = None,
        kind: Optional[str] = None
    ) -> List[Challenge]:
        """Get active challenges, optionally only those covering ``day``.

        Args:
            session: Database session
            day: Only return challenges whose range contains this day
            kind: Only return challenges of this kind

        Returns:
            List[Challenge]: Active challenges ordered by kind, newest first

        Raises:
            DatabaseOperationError: If query fails
        """
        try:
            stmt = select(Challenge).where(Challenge.active.is_(True))
            if day is not None:
                stmt = stmt.where(Challenge.start_date <= day, Challenge.end_date >= day)
            if kind is not None:
                stmt = stmt.where(Challenge.kind == kind)
            stmt = stmt.order_by(Challenge.kind, desc(Challenge.start_date))

            result = await session.execute(stmt)
            return list(result.scalars().all())

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get active challenges: {e}") from e

    async def create_challenge(
        self,
        session: AsyncSession,
        kind: str,
        name: str,
        start_date: date,
        end_date: date,
        goal_points: Optional[int] = None,
        goal_tasks: Optional[int] = None,
        reward_badge: Optional[str] = None,
        description: Optional[str] = None,
        period_key: Optional[str] = None
    ) -> Challenge:
        """Create a challenge.

        Returns:
            Challenge: Created challenge (flushed)

        Raises:
            ConflictError: If a challenge already exists for the same kind and period
            DatabaseOperationError: If creation fails
        """
        try:
            challenge = Challenge(
                kind=kind,
                name=name,
                description=description,
                start_date=start_date,
                end_date=end_date,
                goal_points=goal_points,
                goal_tasks=goal_tasks,
                reward_badge=reward_badge,
                period_key=period_key,
                active=True
            )
            session.add(challenge)
            await session.flush()
            return challenge

        except IntegrityError as e:
            raise ConflictError(f"Challenge for {kind} period {period_key} already exists") from e
        except Exception as e:
            raise DatabaseOperationError(f"Failed to create challenge: {e}") from e

    async def deactivate_expired(
        self,
        session: AsyncSession,
        today: date
    ) -> int:
        """Deactivate active challenges whose last day is before ``today``.

        Returns:
            int: Number of challenges deactivated
        """
        try:
            stmt = (
                update(Challenge)
                .where(Challenge.active.is_(True), Challenge.end_date < today)
                .values(active=False)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount or 0

        except Exception as e:
            raise DatabaseOperationError(f"Failed to deactivate challenges: {e}") from e


class ChallengeProgressOperations:
    """Database operations for per-user challenge progress."""

    async def get_or_create_progress(
        self,
        session: AsyncSession,
        challenge_id: UUID,
        user_id: str
    ) -> ChallengeProgress:
        """Get or create the progress row of a user in a challenge."""
        try:
            stmt = select(ChallengeProgress).where(
                ChallengeProgress.challenge_id == challenge_id,
                ChallengeProgress.user_id == user_id
            )
            result = await session.execute(stmt)
            progress = result.scalar_one_or_none()

            if progress is None:
                progress = ChallengeProgress(challenge_id=challenge_id, user_id=user_id)
                session.add(progress)

            return progress

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get or create progress: {e}") from e

    async def get_progress_for_challenge(
        self,
        session: AsyncSession,
        challenge_id: UUID
    ) -> Dict[str, ChallengeProgress]:
        """Get every progress row of a challenge keyed by user id."""
        try:
            stmt = select(ChallengeProgress).where(ChallengeProgress.challenge_id == challenge_id)
            result = await session.execute(stmt)
            return {progress.user_id: progress for progress in result.scalars().all()}

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get challenge progress: {e}") from e

    async def get_progress_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        challenge_ids: Iterable[UUID]
    ) -> Dict[UUID, ChallengeProgress]:
        """Get a user's progress rows for several challenges keyed by challenge id."""
        ids = list(challenge_ids)
        if not ids:
            return {}

        try:
            stmt = select(ChallengeProgress).where(
                ChallengeProgress.user_id == user_id,
                ChallengeProgress.challenge_id.in_(ids)
            )
            result = await session.execute(stmt)
            return {progress.challenge_id: progress for progress in result.scalars().all()}

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get user progress: {e}") from e


class GroupScoreOperations:
    """Database operations for the per-group score map."""

    async def get_group_scores(
        self,
        session: AsyncSession,
        group_id: str
    ) -> List[GroupScore]:
        """Get a group's scores ordered by score descending."""
        try:
            stmt = (
                select(GroupScore)
                .where(GroupScore.group_id == group_id)
                .order_by(desc(GroupScore.score), GroupScore.user_id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get group scores: {e}") from e

    async def adjust_score(
        self,
        session: AsyncSession,
        group_id: str,
        user_id: str,
        delta: int
    ) -> GroupScore:
        """Add ``delta`` to a user's group score, never going below zero.

        Returns:
            GroupScore: Updated score row

        Raises:
            DatabaseOperationError: If update fails
        """
        try:
            stmt = select(GroupScore).where(
                GroupScore.group_id == group_id,
                GroupScore.user_id == user_id
            )
            result = await session.execute(stmt)
            score = result.scalar_one_or_none()

            if score is None:
                score = GroupScore(group_id=group_id, user_id=user_id, score=0)
                session.add(score)

            score.score = max(0, score.score + delta)
            await session.flush()
            return score

        except Exception as e:
            raise DatabaseOperationError(f"Failed to adjust group score: {e}") from e


class ContactOperations:
    """Read-only access to accepted contacts."""

    async def get_accepted_contact_ids(
        self,
        session: AsyncSession,
        user_id: str
    ) -> List[str]:
        """Get ids of users with an accepted contact relation to ``user_id``.

        The relation is symmetric once accepted, so both directions count.
        """
        try:
            stmt = select(UserContact).where(
                or_(UserContact.user_id == user_id, UserContact.contact_id == user_id),
                UserContact.status == "accepted"
            )
            result = await session.execute(stmt)
            contact_ids = []
            for contact in result.scalars().all():
                other = contact.contact_id if contact.user_id == user_id else contact.user_id
                if other != user_id and other not in contact_ids:
                    contact_ids.append(other)
            return contact_ids

        except Exception as e:
            raise DatabaseOperationError(f"Failed to get contacts: {e}") from e

    async def are_contacts(
        self,
        session: AsyncSession,
        user_id: str,
        other_user_id: str
    ) -> bool:
        """Check whether two users are accepted contacts."""
        try:
            stmt = select(func.count()).select_from(UserContact).where(
                or_(
                    and_(UserContact.user_id == user_id, UserContact.contact_id == other_user_id),
                    and_(UserContact.user_id == other_user_id, UserContact.contact_id == user_id),
                ),
                UserContact.status == "accepted"
            )
            result = await session.execute(stmt)
            return int(result.scalar_one()) > 0

        except Exception as e:
            raise DatabaseOperationError(f"Failed to check contacts: {e}") from e
