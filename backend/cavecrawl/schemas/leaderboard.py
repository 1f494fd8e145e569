"""Leaderboard Pydantic schemas."""

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    user_id: str
    username: str
    rounds: int
    net_credits: float
    rank: int


class LeaderboardResponse(BaseModel):
    scope: str  # "daily" or "overall"
    entries: list[LeaderboardEntry]
    caller: LeaderboardEntry | None = None  # set only when outside the top entries
