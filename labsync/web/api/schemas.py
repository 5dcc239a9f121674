"""Pydantic schemas for API request and response models.

This module defines the request and response schemas used by the FastAPI
endpoints, providing validation, serialization, and documentation.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class BaseAPIModel(BaseModel):
    """Base model for all API schemas with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        arbitrary_types_allowed=False,
        populate_by_name=True,
    )


# ============================================================================
# Completion Schemas
# ============================================================================

class CompletionRequest(BaseAPIModel):
    """Request model for recording a completed task.

    Field names follow the task client's payload.
    """

    points: int = Field(ge=0, description="Points earned by the task")
    completed_on_time: bool = Field(False, alias="completedOnTime", description="Completed by the due date")
    completed_early: bool = Field(False, alias="completedEarly", description="Completed well ahead of the due date")
    completed_late: bool = Field(False, alias="completedLate", description="Completed after the due date")


class AggregateResponse(BaseAPIModel):
    """A user's scoring aggregate."""

    user_id: str = Field(description="User ID")
    total_points: int = Field(ge=0, description="Total points")
    tasks_completed: int = Field(ge=0, description="Tasks completed")
    tasks_on_time: int = Field(ge=0, description="Tasks completed on time")
    tasks_early: int = Field(ge=0, description="Tasks completed early")
    tasks_late: int = Field(ge=0, description="Tasks completed late")
    current_streak: int = Field(ge=0, description="Current daily streak")
    longest_streak: int = Field(ge=0, description="Longest daily streak")
    last_completion_day: Optional[date] = Field(None, description="Day of the last completion")
    badges: List[str] = Field(default_factory=list, description="Badges earned")

    @field_serializer('last_completion_day')
    def serialize_last_completion_day(self, value: Optional[date]) -> Optional[str]:
        return value.isoformat() if value else None


class CompletionResponse(BaseAPIModel):
    """Response model for a recorded completion."""

    aggregate: AggregateResponse = Field(description="Updated aggregate")
    new_badges: List[str] = Field(description="Badges awarded by this completion")
    completed_challenges: List[UUID] = Field(description="Challenges completed by this completion")


# ============================================================================
# Ranking Schemas
# ============================================================================

class RankingEntryResponse(BaseAPIModel):
    """One leaderboard row."""

    rank: int = Field(ge=1, description="Position in the leaderboard")
    user_id: str = Field(description="User ID")
    total_points: int = Field(ge=0, description="Total points")
    tasks_completed: int = Field(ge=0, description="Tasks completed")
    current_streak: int = Field(ge=0, description="Current daily streak")
    longest_streak: int = Field(ge=0, description="Longest daily streak")
    badges: List[str] = Field(default_factory=list, description="Badges earned")
    is_current_user: bool = Field(False, description="Whether this row is the requesting user")


class RankingResponse(BaseAPIModel):
    """Response model for a leaderboard page."""

    rankings: List[RankingEntryResponse] = Field(description="Leaderboard rows")
    total_count: int = Field(ge=0, description="Rows in this response")


class GroupRankingEntryResponse(BaseAPIModel):
    rank: int = Field(ge=1, description="Position in the group")
    user_id: str = Field(description="User ID")
    score: int = Field(ge=0, description="Group score")


class GroupRankingResponse(BaseAPIModel):
    """Response model for a group's score ranking."""

    group_id: str = Field(description="Group ID")
    rankings: List[GroupRankingEntryResponse] = Field(description="Group ranking rows")


class GroupScoreAdjustRequest(BaseAPIModel):
    """Request model for adjusting a user's group score."""

    user_id: str = Field(min_length=1, alias="userId", description="User whose score changes")
    points: int = Field(ge=-100000, le=100000, description="Points to add; negative to subtract")


class PositionResponse(BaseAPIModel):
    """Response model for a user's global position."""

    user_id: str = Field(description="User ID")
    rank: Optional[int] = Field(None, description="Global rank, null when the user has no points yet")
    total_points: int = Field(ge=0, description="Total points")
    tasks_completed: int = Field(ge=0, description="Tasks completed")
    total_users: int = Field(ge=0, description="Users in the leaderboard")


# ============================================================================
# Challenge Schemas
# ============================================================================

class ChallengeResponse(BaseAPIModel):
    """Response model for a challenge."""

    id: UUID = Field(description="Challenge ID")
    kind: str = Field(description="Challenge kind")
    name: str = Field(description="Display name")
    description: Optional[str] = Field(None, description="Description")
    start_date: date = Field(description="First day")
    end_date: date = Field(description="Last day")
    goal_points: Optional[int] = Field(None, description="Points goal")
    goal_tasks: Optional[int] = Field(None, description="Tasks goal")
    reward_badge: Optional[str] = Field(None, description="Announced reward badge")
    active: bool = Field(description="Whether the challenge is running")

    @field_serializer('start_date', 'end_date')
    def serialize_date(self, value: date) -> str:
        return value.isoformat()


class ChallengeListResponse(BaseAPIModel):
    challenges: List[ChallengeResponse] = Field(description="Challenges")


class ChallengeCreateRequest(BaseAPIModel):
    """Request model for creating a challenge."""

    kind: str = Field(description="Challenge kind: weekly or monthly")
    name: str = Field(min_length=1, max_length=200, description="Display name")
    description: Optional[str] = Field(None, max_length=500, description="Description")
    start_date: date = Field(description="First day")
    end_date: date = Field(description="Last day")
    goal_points: Optional[int] = Field(None, ge=0, description="Points goal")
    goal_tasks: Optional[int] = Field(None, ge=0, description="Tasks goal")
    reward_badge: Optional[str] = Field(None, max_length=100, description="Announced reward badge")


class ChallengeProgressResponse(BaseAPIModel):
    """A challenge with the requesting user's progress."""

    challenge: ChallengeResponse = Field(description="Challenge")
    points_earned: int = Field(ge=0, description="Points earned in the challenge")
    tasks_completed: int = Field(ge=0, description="Tasks completed in the challenge")
    completed: bool = Field(description="Whether the goals were reached")
    completed_at: Optional[datetime] = Field(None, description="When the goals were reached")
    progress_percent: int = Field(ge=0, le=100, description="Overall progress")

    @field_serializer('completed_at')
    def serialize_completed_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None


class ChallengeProgressListResponse(BaseAPIModel):
    challenges: List[ChallengeProgressResponse] = Field(description="Active challenges with progress")


class TickResponse(BaseAPIModel):
    """Response model for a manual scheduler tick."""

    deactivated: int = Field(ge=0, description="Challenges deactivated")
    created: List[UUID] = Field(description="Challenges created")
    reconciled: int = Field(ge=0, description="Progress rows reconciled")


# ============================================================================
# Statistics Schemas
# ============================================================================

class DailyPointsResponse(BaseAPIModel):
    day: date = Field(alias="date", description="Day")
    points: int = Field(ge=0, description="Points earned that day")
    tasks: int = Field(ge=0, description="Tasks completed that day")

    @field_serializer('day')
    def serialize_day(self, value: date) -> str:
        return value.isoformat()


class PointsHistoryResponse(BaseAPIModel):
    """Response model for a user's daily points."""

    user_id: str = Field(description="User ID")
    days: int = Field(description="Days covered")
    history: List[DailyPointsResponse] = Field(description="Days with completions, oldest first")


class UserStatsResponse(BaseAPIModel):
    user_id: str = Field(description="User ID")
    total_points: int = Field(ge=0, description="Total points")
    tasks_completed: int = Field(ge=0, description="Tasks completed")
    current_streak: int = Field(ge=0, description="Current daily streak")
    longest_streak: int = Field(ge=0, description="Longest daily streak")
    badge_count: int = Field(ge=0, description="Badges earned")


class ComparisonResponse(BaseAPIModel):
    """Response model for comparing two users."""

    user: UserStatsResponse = Field(description="Requesting user")
    other: UserStatsResponse = Field(description="Compared user")
    points_difference: int = Field(description="Points of user minus points of other")
    tasks_difference: int = Field(description="Tasks of user minus tasks of other")
    streak_difference: int = Field(description="Streak of user minus streak of other")


class BadgeResponse(BaseAPIModel):
    id: str = Field(description="Badge ID")
    name: str = Field(description="Display name")
    description: str = Field(description="How to earn it")


class BadgeCatalogResponse(BaseAPIModel):
    badges: List[BadgeResponse] = Field(description="Every badge")


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorDetail(BaseAPIModel):
    """Individual error detail."""

    code: str = Field(description="Error code")
    message: str = Field(description="Human readable error message")
    field: Optional[str] = Field(None, description="Field that caused error")


class ErrorResponse(BaseAPIModel):
    """Standard error response format."""

    detail: str = Field(description="Main error message")
    type: str = Field(description="Error type")
    errors: Optional[List[ErrorDetail]] = Field(None, description="Detailed error list")
    timestamp: datetime = Field(description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request ID for tracking")

    @field_serializer('timestamp')
    def serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat()


class ValidationErrorResponse(ErrorResponse):
    """Validation error response format."""

    type: str = Field(default="validation_error", description="Error type")
    errors: List[ErrorDetail] = Field(description="Validation error details")


# ============================================================================
# Utility Response Schemas
# ============================================================================

class HealthResponse(BaseAPIModel):
    """Health check response."""

    status: str = Field(description="Service health status")
    version: str = Field(description="API version")
    timestamp: datetime = Field(description="Health check timestamp")

    @field_serializer('timestamp')
    def serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat()
