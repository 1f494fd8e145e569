"""Leaderboard endpoints - today's and all-time rankings by net credits."""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.api.deps import get_optional_user
from cavecrawl.db.database import get_db
from cavecrawl.models.user import User
from cavecrawl.schemas.leaderboard import LeaderboardEntry, LeaderboardResponse
from cavecrawl.services.leaderboard_service import leaderboard_service

router = APIRouter()


@router.get("/{scope}", response_model=LeaderboardResponse)
async def get_leaderboard(
    scope: str = Path(pattern="^(daily|overall)$"),
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Top players for the scope, plus the caller's own rank when outside the top."""
    entries, caller = await leaderboard_service.top(
        db, scope, caller_id=user.id if user else None
    )
    return LeaderboardResponse(
        scope=scope,
        entries=[LeaderboardEntry(**e) for e in entries],
        caller=LeaderboardEntry(**caller) if caller else None,
    )
