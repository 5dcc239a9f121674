"""LabSync scoring services.

Streaks, badges, completion recording, challenges and leaderboards, shared
by the HTTP API and the challenge scheduler.
"""

from .aggregate_recorder import AggregateRecorder, CompletionResult, timing_from_flags
from .challenge_scheduler import ChallengeScheduler
from .challenge_service import ChallengeLifecycleManager
from .leaderboard_service import LeaderboardService

__all__ = [
    "AggregateRecorder",
    "ChallengeLifecycleManager",
    "ChallengeScheduler",
    "CompletionResult",
    "LeaderboardService",
    "timing_from_flags"
]
