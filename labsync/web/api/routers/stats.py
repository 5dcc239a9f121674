"""Statistics API router."""

from __future__ import annotations

from fastapi import APIRouter, Path, Query, Request

from labsync.web.api.dependencies import CurrentUser, Leaderboards
from labsync.web.api.exceptions import validate_identifier
from labsync.web.api.schemas import (
    ComparisonResponse,
    DailyPointsResponse,
    PointsHistoryResponse,
    UserStatsResponse,
)

router = APIRouter(prefix="/stats", tags=["Statistics"])


@router.get("/points-history", response_model=PointsHistoryResponse)
async def get_points_history(
    user_id: CurrentUser,
    leaderboards: Leaderboards,
    days: int = Query(30, ge=1, le=365, description="Days to cover, ending today")
) -> PointsHistoryResponse:
    """Get the requesting user's points per day."""
    history = await leaderboards.points_history(user_id, days=days)
    return PointsHistoryResponse(
        user_id=user_id,
        days=days,
        history=[
            DailyPointsResponse(day=entry.day, points=entry.points, tasks=entry.tasks)
            for entry in history
        ]
    )


@router.get("/compare/{other_user_id}", response_model=ComparisonResponse)
async def compare_with_user(
    request: Request,
    user_id: CurrentUser,
    leaderboards: Leaderboards,
    other_user_id: str = Path(description="Contact to compare with")
) -> ComparisonResponse:
    """Compare the requesting user's stats with a contact's."""
    other_user_id = validate_identifier(other_user_id, "user ID", request=request)
    comparison = await leaderboards.compare_users(user_id, other_user_id)
    return ComparisonResponse(
        user=UserStatsResponse.model_validate(comparison.user._asdict()),
        other=UserStatsResponse.model_validate(comparison.other._asdict()),
        points_difference=comparison.points_difference,
        tasks_difference=comparison.tasks_difference,
        streak_difference=comparison.streak_difference
    )
