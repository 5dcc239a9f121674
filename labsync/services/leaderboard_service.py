"""Leaderboards and statistics over user aggregates and the points ledger."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labsync.services.exceptions import AccessDeniedError, PersistenceError, ValidationError
from labsync.shared.database import get_session_maker
from labsync.shared.date_provider import DateProvider, get_date_provider
from labsync.web.crud import (
    AggregateOperations,
    ContactOperations,
    DatabaseOperationError,
    GroupScoreOperations,
    LedgerOperations,
    NotFoundError,
)
from labsync.web.models import UserAggregate

logger = logging.getLogger(__name__)


class RankingEntry(NamedTuple):
    """One row of a points leaderboard."""
    rank: int
    user_id: str
    total_points: int
    tasks_completed: int
    current_streak: int
    longest_streak: int
    badges: List[str]
    is_current_user: bool = False


class GroupRankingEntry(NamedTuple):
    rank: int
    user_id: str
    score: int


class PositionResult(NamedTuple):
    """A user's place in the global leaderboard; ``rank`` is None when unranked."""
    rank: Optional[int]
    total_points: int
    tasks_completed: int
    total_users: int


class DailyPoints(NamedTuple):
    day: date
    points: int
    tasks: int


class UserStats(NamedTuple):
    user_id: str
    total_points: int
    tasks_completed: int
    current_streak: int
    longest_streak: int
    badge_count: int


class Comparison(NamedTuple):
    """Side-by-side stats of two users; differences are ``user - other``."""
    user: UserStats
    other: UserStats
    points_difference: int
    tasks_difference: int
    streak_difference: int


def _user_stats(user_id: str, aggregate: Optional[UserAggregate]) -> UserStats:
    if aggregate is None:
        return UserStats(user_id, 0, 0, 0, 0, 0)
    return UserStats(
        user_id=user_id,
        total_points=aggregate.total_points,
        tasks_completed=aggregate.tasks_completed,
        current_streak=aggregate.current_streak,
        longest_streak=aggregate.longest_streak,
        badge_count=len(aggregate.badges or [])
    )


def _ranking_entries(
    aggregates: List[UserAggregate],
    offset: int = 0,
    current_user_id: Optional[str] = None
) -> List[RankingEntry]:
    return [
        RankingEntry(
            rank=offset + index + 1,
            user_id=aggregate.user_id,
            total_points=aggregate.total_points,
            tasks_completed=aggregate.tasks_completed,
            current_streak=aggregate.current_streak,
            longest_streak=aggregate.longest_streak,
            badges=list(aggregate.badges or []),
            is_current_user=aggregate.user_id == current_user_id
        )
        for index, aggregate in enumerate(aggregates)
    ]


class LeaderboardService:
    """Read-side queries for rankings and statistics.

    Every query reads committed state only. Users who never completed a
    task have no aggregate and are absent from rankings.
    """

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        date_provider: Optional[DateProvider] = None
    ):
        self._session_maker = session_maker or get_session_maker()
        self._date_provider = date_provider or get_date_provider()
        self._aggregates = AggregateOperations()
        self._ledger = LedgerOperations()
        self._groups = GroupScoreOperations()
        self._contacts = ContactOperations()

    async def global_ranking(self, limit: int = 50, offset: int = 0) -> List[RankingEntry]:
        """Every user ordered by points, then tasks completed.

        Args:
            limit: Page size, 1 to 500
            offset: Rows to skip; ranks continue from the offset

        Raises:
            ValidationError: If paging values are out of range
            PersistenceError: If the store fails
        """
        if limit < 1 or limit > 500:
            raise ValidationError("limit", "Limit must be between 1 and 500")
        if offset < 0:
            raise ValidationError("offset", "Offset cannot be negative")

        try:
            async with self._session_maker() as session:
                aggregates = await self._aggregates.get_ranking(session, limit=limit, offset=offset)
        except DatabaseOperationError as e:
            raise PersistenceError("get global ranking") from e

        return _ranking_entries(aggregates, offset=offset)

    async def group_ranking(self, group_id: str) -> List[GroupRankingEntry]:
        """A group's ad hoc scores, highest first."""
        try:
            async with self._session_maker() as session:
                scores = await self._groups.get_group_scores(session, group_id)
        except DatabaseOperationError as e:
            raise PersistenceError(f"get ranking of group {group_id}") from e

        return [
            GroupRankingEntry(rank=index + 1, user_id=score.user_id, score=score.score)
            for index, score in enumerate(scores)
        ]

    async def contacts_ranking(self, user_id: str) -> List[RankingEntry]:
        """The user and their accepted contacts, ordered like the global ranking."""
        try:
            async with self._session_maker() as session:
                contact_ids = await self._contacts.get_accepted_contact_ids(session, user_id)
                aggregates = await self._aggregates.get_aggregates_for_users(
                    session, [user_id, *contact_ids]
                )
        except DatabaseOperationError as e:
            raise PersistenceError(f"get contacts ranking for user {user_id}") from e

        return _ranking_entries(aggregates, current_user_id=user_id)

    async def my_position(self, user_id: str) -> PositionResult:
        """Global rank of ``user_id``: one plus the number of users strictly ahead."""
        try:
            async with self._session_maker() as session:
                total_users = await self._aggregates.count_aggregates(session)
                try:
                    aggregate = await self._aggregates.get_aggregate(session, user_id)
                except NotFoundError:
                    return PositionResult(rank=None, total_points=0, tasks_completed=0,
                                          total_users=total_users)
                ahead = await self._aggregates.count_ahead_of(session, aggregate)
        except DatabaseOperationError as e:
            raise PersistenceError(f"get position of user {user_id}") from e

        return PositionResult(
            rank=ahead + 1,
            total_points=aggregate.total_points,
            tasks_completed=aggregate.tasks_completed,
            total_users=total_users
        )

    async def points_history(
        self,
        user_id: str,
        days: int = 30,
        today: Optional[date] = None
    ) -> List[DailyPoints]:
        """Points and tasks per day over the last ``days`` days, oldest first.

        Days without completions are omitted.
        """
        if days < 1 or days > 365:
            raise ValidationError("days", "Days must be between 1 and 365")
        if today is None:
            today = self._date_provider.today()
        start = today - timedelta(days=days - 1)

        try:
            async with self._session_maker() as session:
                rows = await self._ledger.get_daily_totals(session, user_id, start, today)
        except DatabaseOperationError as e:
            raise PersistenceError(f"get points history of user {user_id}") from e

        return [DailyPoints(day=day, points=points, tasks=tasks) for day, points, tasks in rows]

    async def compare_users(self, user_id: str, other_user_id: str) -> Comparison:
        """Compare two users who are accepted contacts.

        Raises:
            AccessDeniedError: If the users are not accepted contacts
            PersistenceError: If the store fails
        """
        try:
            async with self._session_maker() as session:
                if user_id != other_user_id and not await self._contacts.are_contacts(
                    session, user_id, other_user_id
                ):
                    raise AccessDeniedError(user_id, other_user_id)

                found = await self._aggregates.get_aggregates_for_users(
                    session, [user_id, other_user_id]
                )
        except DatabaseOperationError as e:
            raise PersistenceError(f"compare user {user_id} with {other_user_id}") from e

        by_user: Dict[str, UserAggregate] = {aggregate.user_id: aggregate for aggregate in found}
        user = _user_stats(user_id, by_user.get(user_id))
        other = _user_stats(other_user_id, by_user.get(other_user_id))

        return Comparison(
            user=user,
            other=other,
            points_difference=user.total_points - other.total_points,
            tasks_difference=user.tasks_completed - other.tasks_completed,
            streak_difference=user.current_streak - other.current_streak
        )

    async def adjust_group_score(
        self,
        group_id: str,
        user_id: str,
        delta: int
    ) -> List[GroupRankingEntry]:
        """Add ``delta`` to a user's group score (never below zero).

        Returns:
            List[GroupRankingEntry]: The group's updated ranking
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("points", "Points must be an integer")

        try:
            async with self._session_maker() as session:
                score = await self._groups.adjust_score(session, group_id, user_id, delta)
                await session.commit()
        except (DatabaseOperationError, SQLAlchemyError) as e:
            raise PersistenceError(f"adjust score of user {user_id} in group {group_id}") from e

        logger.info(f"Group {group_id} score of user {user_id} adjusted by {delta} to {score.score}")
        return await self.group_ranking(group_id)
