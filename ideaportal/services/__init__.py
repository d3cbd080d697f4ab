from .analytics import AnalyticsService
from .leaderboard import LeaderboardQuery, LeaderboardService, resolve_time_window
from .voting_manager import VoteOutcome, VotingManager

__all__ = [
    "AnalyticsService",
    "LeaderboardQuery",
    "LeaderboardService",
    "resolve_time_window",
    "VoteOutcome",
    "VotingManager",
]
