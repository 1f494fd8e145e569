"""Database models package."""

from cavecrawl.models.user import User
from cavecrawl.models.game_session import GameSession
from cavecrawl.models.leaderboard import DailyLeaderboardEntry, OverallLeaderboardEntry

__all__ = ["User", "GameSession", "DailyLeaderboardEntry", "OverallLeaderboardEntry"]
