"""FastAPI dependencies for user identification and service access.

Services are built per request around the application session factory.
The keyed lock is process-wide, so every recorder in the process
serializes updates for the same user.
"""

from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labsync.services.aggregate_recorder import AggregateRecorder
from labsync.services.challenge_service import ChallengeLifecycleManager
from labsync.services.leaderboard_service import LeaderboardService
from labsync.shared.config import get_settings
from labsync.shared.database import get_session_maker
from labsync.shared.date_provider import DateProvider, get_date_provider
from labsync.shared.locks import KeyedLock, create_keyed_lock
from labsync.web.api.exceptions import create_unauthorized_error, validate_identifier

logger = logging.getLogger(__name__)

_keyed_lock: Optional[KeyedLock] = None


def get_keyed_lock() -> KeyedLock:
    """Get the process-wide keyed lock."""
    global _keyed_lock
    if _keyed_lock is None:
        _keyed_lock = create_keyed_lock(get_settings())
    return _keyed_lock


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for the session factory services open their sessions from."""
    return get_session_maker()


def get_request_date_provider() -> DateProvider:
    return get_date_provider()


async def get_current_user_id(request: Request) -> str:
    """Get the acting user ID from the ``X-User-Id`` header.

    Authentication happens upstream; this only identifies the caller.

    Raises:
        HTTPException: If the header is missing or malformed
    """
    user_id = request.headers.get("X-User-Id")

    if not user_id:
        raise create_unauthorized_error(request=request)

    user_id = validate_identifier(user_id, "user ID", request=request)
    request.state.user_id = user_id
    return user_id


def get_challenge_manager(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    date_provider: Annotated[DateProvider, Depends(get_request_date_provider)]
) -> ChallengeLifecycleManager:
    return ChallengeLifecycleManager(session_maker=session_factory, date_provider=date_provider)


def get_aggregate_recorder(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    date_provider: Annotated[DateProvider, Depends(get_request_date_provider)],
    manager: Annotated[ChallengeLifecycleManager, Depends(get_challenge_manager)]
) -> AggregateRecorder:
    return AggregateRecorder(
        session_maker=session_factory,
        lock=get_keyed_lock(),
        challenge_manager=manager,
        date_provider=date_provider
    )


def get_leaderboard_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    date_provider: Annotated[DateProvider, Depends(get_request_date_provider)]
) -> LeaderboardService:
    return LeaderboardService(session_maker=session_factory, date_provider=date_provider)


# Type aliases for common dependencies
CurrentUser = Annotated[str, Depends(get_current_user_id)]
Recorder = Annotated[AggregateRecorder, Depends(get_aggregate_recorder)]
ChallengeManager = Annotated[ChallengeLifecycleManager, Depends(get_challenge_manager)]
Leaderboards = Annotated[LeaderboardService, Depends(get_leaderboard_service)]
