"""Tests for database operations."""

from __future__ import annotations

import uuid
from datetime import date

import pytest

from labsync.web.crud import (
    AggregateOperations,
    ChallengeOperations,
    ChallengeProgressOperations,
    ConflictError,
    ContactOperations,
    LedgerOperations,
    NotFoundError,
)
from labsync.web.models import UserAggregate, UserContact


@pytest.fixture
def aggregate_ops():
    return AggregateOperations()


@pytest.fixture
def ledger_ops():
    return LedgerOperations()


@pytest.fixture
def challenge_ops():
    return ChallengeOperations()


class TestAggregateOperations:
    async def test_get_missing_aggregate_raises(self, db_session, aggregate_ops):
        with pytest.raises(NotFoundError):
            await aggregate_ops.get_aggregate(db_session, "ghost")

    async def test_get_or_create_returns_zero_state(self, db_session, aggregate_ops, unique_user_id):
        aggregate = await aggregate_ops.get_or_create_aggregate(db_session, unique_user_id)
        await db_session.commit()

        assert aggregate.total_points == 0
        assert aggregate.badges == []
        assert aggregate.version == 1

        again = await aggregate_ops.get_or_create_aggregate(db_session, unique_user_id)
        assert again is aggregate

    async def test_count_ahead_of_breaks_ties_by_tasks(self, db_session, aggregate_ops):
        db_session.add_all([
            UserAggregate(user_id="a", total_points=10, tasks_completed=2),
            UserAggregate(user_id="b", total_points=10, tasks_completed=1),
            UserAggregate(user_id="c", total_points=5, tasks_completed=9),
        ])
        await db_session.commit()

        b = await aggregate_ops.get_aggregate(db_session, "b")

        assert await aggregate_ops.count_ahead_of(db_session, b) == 1
        assert await aggregate_ops.count_aggregates(db_session) == 3

    async def test_get_aggregates_for_no_users(self, db_session, aggregate_ops):
        assert await aggregate_ops.get_aggregates_for_users(db_session, []) == []


class TestLedgerOperations:
    async def test_user_totals_within_range(self, db_session, ledger_ops):
        await ledger_ops.append_entry(db_session, "a", 10, date(2024, 1, 1))
        await ledger_ops.append_entry(db_session, "a", 5, date(2024, 1, 2))
        await ledger_ops.append_entry(db_session, "b", 7, date(2024, 1, 2))
        await ledger_ops.append_entry(db_session, "b", 100, date(2024, 2, 1))
        await db_session.commit()

        totals = await ledger_ops.get_user_totals(db_session, date(2024, 1, 1), date(2024, 1, 31))

        assert sorted(totals) == [("a", 15, 2), ("b", 7, 1)]


class TestChallengeOperations:
    async def test_duplicate_period_conflicts(self, db_session, challenge_ops):
        await challenge_ops.create_challenge(
            db_session, "weekly", "Week", date(2024, 1, 15), date(2024, 1, 21), period_key="2024-W03"
        )
        await db_session.commit()

        with pytest.raises(ConflictError):
            await challenge_ops.create_challenge(
                db_session, "weekly", "Again", date(2024, 1, 15), date(2024, 1, 21), period_key="2024-W03"
            )
        await db_session.rollback()

    async def test_manual_challenges_do_not_conflict(self, db_session, challenge_ops):
        for name in ("Sprint A", "Sprint B"):
            await challenge_ops.create_challenge(
                db_session, "weekly", name, date(2024, 1, 15), date(2024, 1, 21)
            )
        await db_session.commit()

        challenges = await challenge_ops.get_active_challenges(db_session, day=date(2024, 1, 16))

        assert {challenge.name for challenge in challenges} == {"Sprint A", "Sprint B"}

    async def test_deactivate_expired(self, db_session, challenge_ops):
        old = await challenge_ops.create_challenge(
            db_session, "weekly", "Old", date(2024, 1, 8), date(2024, 1, 14)
        )
        current = await challenge_ops.create_challenge(
            db_session, "weekly", "Current", date(2024, 1, 15), date(2024, 1, 21)
        )
        await db_session.commit()

        assert await challenge_ops.deactivate_expired(db_session, date(2024, 1, 15)) == 1
        await db_session.commit()

        active = await challenge_ops.get_active_challenges(db_session)
        assert [challenge.id for challenge in active] == [current.id]
        assert old.id not in [challenge.id for challenge in active]

    async def test_get_missing_challenge(self, db_session, challenge_ops):
        with pytest.raises(NotFoundError):
            await challenge_ops.get_challenge(db_session, uuid.uuid4())


class TestChallengeProgressOperations:
    async def test_progress_lookups(self, db_session, challenge_ops):
        progress_ops = ChallengeProgressOperations()
        challenge = await challenge_ops.create_challenge(
            db_session, "monthly", "January", date(2024, 1, 1), date(2024, 1, 31), goal_points=100
        )
        progress = await progress_ops.get_or_create_progress(db_session, challenge.id, "a")
        progress.points_earned = 40
        await db_session.commit()

        by_user = await progress_ops.get_progress_for_challenge(db_session, challenge.id)
        by_challenge = await progress_ops.get_progress_for_user(db_session, "a", [challenge.id])

        assert by_user["a"].points_earned == 40
        assert by_challenge[challenge.id] is by_user["a"]
        assert await progress_ops.get_progress_for_user(db_session, "a", []) == {}


class TestContactOperations:
    async def test_accepted_contacts_either_direction(self, db_session):
        contact_ops = ContactOperations()
        db_session.add_all([
            UserContact(user_id="a", contact_id="b", status="accepted"),
            UserContact(user_id="c", contact_id="a", status="accepted"),
            UserContact(user_id="a", contact_id="d", status="rejected"),
        ])
        await db_session.commit()

        assert sorted(await contact_ops.get_accepted_contact_ids(db_session, "a")) == ["b", "c"]
        assert await contact_ops.are_contacts(db_session, "b", "a")
        assert not await contact_ops.are_contacts(db_session, "a", "d")
        assert not await contact_ops.are_contacts(db_session, "b", "c")
