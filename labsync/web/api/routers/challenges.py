"""Challenges API router.

Lists active challenges with the requesting user's progress, creates
manual challenges and runs the scheduler tick on demand.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from labsync.web.api.dependencies import ChallengeManager, CurrentUser
from labsync.web.api.schemas import (
    ChallengeCreateRequest,
    ChallengeListResponse,
    ChallengeProgressListResponse,
    ChallengeProgressResponse,
    ChallengeResponse,
    TickResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/challenges", tags=["Challenges"])


@router.get("/active", response_model=ChallengeListResponse)
async def get_active_challenges(manager: ChallengeManager) -> ChallengeListResponse:
    """Get challenges running today."""
    challenges = await manager.get_active_challenges()
    return ChallengeListResponse(
        challenges=[ChallengeResponse.model_validate(challenge) for challenge in challenges]
    )


@router.get("/my-progress", response_model=ChallengeProgressListResponse)
async def get_my_progress(
    user_id: CurrentUser,
    manager: ChallengeManager
) -> ChallengeProgressListResponse:
    """Get the requesting user's progress in every challenge running today."""
    views = await manager.get_user_progress(user_id)
    return ChallengeProgressListResponse(
        challenges=[
            ChallengeProgressResponse(
                challenge=ChallengeResponse.model_validate(view.challenge),
                points_earned=view.points_earned,
                tasks_completed=view.tasks_completed,
                completed=view.completed,
                completed_at=view.completed_at,
                progress_percent=view.progress_percent
            )
            for view in views
        ]
    )


@router.post("", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    payload: ChallengeCreateRequest,
    user_id: CurrentUser,
    manager: ChallengeManager
) -> ChallengeResponse:
    """Create a challenge with custom dates and goals."""
    challenge = await manager.create_challenge(
        kind=payload.kind,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        goal_points=payload.goal_points,
        goal_tasks=payload.goal_tasks,
        reward_badge=payload.reward_badge,
        description=payload.description
    )
    logger.info(f"User {user_id} created challenge {challenge.id}")
    return ChallengeResponse.model_validate(challenge)


@router.post("/tick", response_model=TickResponse)
async def run_tick(user_id: CurrentUser, manager: ChallengeManager) -> TickResponse:
    """Run the challenge scheduler tick now."""
    result = await manager.tick()
    logger.info(f"User {user_id} triggered a challenge tick")
    return TickResponse(**result._asdict())
