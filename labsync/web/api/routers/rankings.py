"""Rankings API router.

Records task completions and serves the global, group and contacts
leaderboards. Engine errors are translated to HTTP responses by the
application's exception handlers.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Path, Query, Request

from labsync.services.aggregate_recorder import timing_from_flags
from labsync.services.badge_service import badge_catalog
from labsync.web.api.dependencies import CurrentUser, Leaderboards, Recorder
from labsync.web.api.exceptions import validate_identifier
from labsync.web.api.schemas import (
    AggregateResponse,
    BadgeCatalogResponse,
    BadgeResponse,
    CompletionRequest,
    CompletionResponse,
    GroupRankingEntryResponse,
    GroupRankingResponse,
    GroupScoreAdjustRequest,
    PositionResponse,
    RankingEntryResponse,
    RankingResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rankings", tags=["Rankings"])


@router.post("/update", response_model=CompletionResponse)
async def record_completion(
    payload: CompletionRequest,
    user_id: CurrentUser,
    recorder: Recorder
) -> CompletionResponse:
    """Record a completed task for the requesting user.

    Returns the updated aggregate along with badges and challenges newly
    earned by this completion.
    """
    timing = timing_from_flags(
        on_time=payload.completed_on_time,
        early=payload.completed_early,
        late=payload.completed_late
    )
    result = await recorder.record_completion(user_id, payload.points, timing)

    logger.info(f"Recorded {payload.points} points ({timing.value}) for user {user_id}")

    return CompletionResponse(
        aggregate=AggregateResponse.model_validate(result.aggregate._asdict()),
        new_badges=sorted(badge.value for badge in result.new_badges),
        completed_challenges=result.completed_challenges
    )


@router.get("/global", response_model=RankingResponse)
async def get_global_ranking(
    leaderboards: Leaderboards,
    limit: int = Query(50, ge=1, le=500, description="Page size"),
    offset: int = Query(0, ge=0, description="Rows to skip")
) -> RankingResponse:
    """Get the global leaderboard."""
    entries = await leaderboards.global_ranking(limit=limit, offset=offset)
    rankings = [RankingEntryResponse.model_validate(entry._asdict()) for entry in entries]
    return RankingResponse(rankings=rankings, total_count=len(rankings))


@router.get("/contacts", response_model=RankingResponse)
async def get_contacts_ranking(
    user_id: CurrentUser,
    leaderboards: Leaderboards
) -> RankingResponse:
    """Get the leaderboard of the requesting user and their contacts."""
    entries = await leaderboards.contacts_ranking(user_id)
    rankings = [RankingEntryResponse.model_validate(entry._asdict()) for entry in entries]
    return RankingResponse(rankings=rankings, total_count=len(rankings))


@router.get("/my-position", response_model=PositionResponse)
async def get_my_position(
    user_id: CurrentUser,
    leaderboards: Leaderboards
) -> PositionResponse:
    """Get the requesting user's global rank."""
    position = await leaderboards.my_position(user_id)
    return PositionResponse(user_id=user_id, **position._asdict())


@router.get("/group/{group_id}", response_model=GroupRankingResponse)
async def get_group_ranking(
    request: Request,
    leaderboards: Leaderboards,
    user_id: CurrentUser,
    group_id: str = Path(description="Group ID")
) -> GroupRankingResponse:
    """Get a group's score ranking."""
    group_id = validate_identifier(group_id, "group ID", request=request)
    entries = await leaderboards.group_ranking(group_id)
    return GroupRankingResponse(
        group_id=group_id,
        rankings=[GroupRankingEntryResponse.model_validate(entry._asdict()) for entry in entries]
    )


@router.patch("/group/{group_id}/scores", response_model=GroupRankingResponse)
async def adjust_group_score(
    request: Request,
    payload: GroupScoreAdjustRequest,
    leaderboards: Leaderboards,
    user_id: CurrentUser,
    group_id: str = Path(description="Group ID")
) -> GroupRankingResponse:
    """Add points to (or subtract them from) a user's score in a group."""
    group_id = validate_identifier(group_id, "group ID", request=request)
    target_user_id = validate_identifier(payload.user_id, "user ID", request=request)

    entries = await leaderboards.adjust_group_score(group_id, target_user_id, payload.points)

    logger.info(f"User {user_id} adjusted score of {target_user_id} in group {group_id} by {payload.points}")

    return GroupRankingResponse(
        group_id=group_id,
        rankings=[GroupRankingEntryResponse.model_validate(entry._asdict()) for entry in entries]
    )


@router.get("/badges", response_model=BadgeCatalogResponse)
async def get_badges() -> BadgeCatalogResponse:
    """List every badge with how to earn it."""
    return BadgeCatalogResponse(
        badges=[BadgeResponse(**badge) for badge in badge_catalog()]
    )
