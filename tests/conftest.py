"""Test configuration and fixtures for the LabSync scoring engine."""

from __future__ import annotations

import os
import tempfile
import uuid
from datetime import date
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from labsync.services.aggregate_recorder import AggregateRecorder
from labsync.services.challenge_service import ChallengeLifecycleManager
from labsync.services.leaderboard_service import LeaderboardService
from labsync.shared.config import Settings, override_settings
from labsync.shared.database import Base, create_test_engine, create_test_session_maker
from labsync.shared.date_provider import MockDateProvider
from labsync.shared.locks import InProcessKeyedLock


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings."""
    return override_settings(
        environment="testing",
        database_url="sqlite+aiosqlite:///:memory:",
        debug=True,
        log_level="DEBUG",
        lock_backend="memory",
        timezone="UTC",
    )


@pytest.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a database engine on a fresh temporary SQLite file."""
    temp_dir = tempfile.mkdtemp()
    db_path = os.path.join(temp_dir, f"test_db_{uuid.uuid4().hex}.db")

    engine = await create_test_engine(f"sqlite+aiosqlite:///{db_path}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()
        if os.path.exists(db_path):
            os.remove(db_path)
        os.rmdir(temp_dir)


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return create_test_session_maker(test_engine)


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """A database session for arranging and inspecting state."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def date_provider() -> MockDateProvider:
    """Date provider fixed to Monday 2024-01-15."""
    return MockDateProvider(fixed_date=date(2024, 1, 15))


@pytest.fixture
def challenge_manager(session_maker, date_provider, test_settings) -> ChallengeLifecycleManager:
    return ChallengeLifecycleManager(
        session_maker=session_maker,
        date_provider=date_provider,
        settings=test_settings
    )


@pytest.fixture
def recorder(session_maker, date_provider, test_settings, challenge_manager) -> AggregateRecorder:
    return AggregateRecorder(
        session_maker=session_maker,
        lock=InProcessKeyedLock(),
        challenge_manager=challenge_manager,
        date_provider=date_provider,
        settings=test_settings
    )


@pytest.fixture
def leaderboard(session_maker, date_provider) -> LeaderboardService:
    return LeaderboardService(session_maker=session_maker, date_provider=date_provider)


@pytest.fixture(scope="function")
def unique_user_id() -> str:
    """Generate unique user ID per test function."""
    return f"test_user_{uuid.uuid4().hex[:8]}"
