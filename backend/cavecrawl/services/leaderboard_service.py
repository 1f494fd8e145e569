"""Leaderboard service - additive upserts and ranked reads of daily/overall totals."""

import datetime
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.config import settings
from cavecrawl.db.upsert import dialect_insert
from cavecrawl.models.leaderboard import DailyLeaderboardEntry, OverallLeaderboardEntry

logger = logging.getLogger(__name__)

SCOPE_DAILY = "daily"
SCOPE_OVERALL = "overall"
SCOPES = (SCOPE_DAILY, SCOPE_OVERALL)


def utc_today() -> datetime.date:
    return datetime.datetime.now(datetime.timezone.utc).date()


class LeaderboardService:
    @staticmethod
    async def record(
        db: AsyncSession,
        user_id: str,
        username: str,
        rounds: int,
        net_credits: float,
        day: datetime.date | None = None,
    ) -> None:
        """Add one settled session to the user's daily and overall rows.

        Both writes are ``INSERT ... ON CONFLICT DO UPDATE SET x = x + excluded.x``
        so concurrent settlements of the same user's sessions never overwrite
        each other.
        """
        day = day or utc_today()

        daily = dialect_insert(db, DailyLeaderboardEntry).values(
            user_id=user_id,
            date=day,
            username=username,
            daily_rounds=rounds,
            daily_net_credits=net_credits,
        )
        await db.execute(
            daily.on_conflict_do_update(
                index_elements=["user_id", "date"],
                set_={
                    "username": daily.excluded.username,
                    "daily_rounds": DailyLeaderboardEntry.daily_rounds + daily.excluded.daily_rounds,
                    "daily_net_credits": (
                        DailyLeaderboardEntry.daily_net_credits + daily.excluded.daily_net_credits
                    ),
                    "updated_at": func.now(),
                },
            )
        )

        overall = dialect_insert(db, OverallLeaderboardEntry).values(
            user_id=user_id,
            username=username,
            total_rounds=rounds,
            total_net_credits=net_credits,
        )
        await db.execute(
            overall.on_conflict_do_update(
                index_elements=["user_id"],
                set_={
                    "username": overall.excluded.username,
                    "total_rounds": OverallLeaderboardEntry.total_rounds + overall.excluded.total_rounds,
                    "total_net_credits": (
                        OverallLeaderboardEntry.total_net_credits
                        + overall.excluded.total_net_credits
                    ),
                    "updated_at": func.now(),
                },
            )
        )
        logger.debug("Leaderboard +%d rounds, %+f credits for user %s", rounds, net_credits, user_id)

    @staticmethod
    def _columns(scope: str):
        """(model, rounds column, credits column, extra filters) for a scope."""
        if scope == SCOPE_DAILY:
            model = DailyLeaderboardEntry
            return model, model.daily_rounds, model.daily_net_credits, [model.date == utc_today()]
        if scope == SCOPE_OVERALL:
            model = OverallLeaderboardEntry
            return model, model.total_rounds, model.total_net_credits, []
        raise ValueError(f"Unknown leaderboard scope: {scope}")

    async def top(
        self,
        db: AsyncSession,
        scope: str,
        caller_id: str | None = None,
        limit: int | None = None,
    ) -> tuple[list[dict], dict | None]:
        """Top entries by net credits, plus the caller's own row if it falls outside them."""
        model, rounds_col, credits_col, filters = self._columns(scope)
        limit = limit or settings.LEADERBOARD_SIZE

        result = await db.execute(
            select(model.user_id, model.username, rounds_col, credits_col)
            .where(*filters)
            .order_by(credits_col.desc(), rounds_col.desc(), model.user_id)
            .limit(limit)
        )
        entries = []
        prev_credits = None
        rank = 0
        for index, (user_id, username, rounds, credits) in enumerate(result.all(), start=1):
            if credits != prev_credits:
                rank = index
                prev_credits = credits
            entries.append(_entry(user_id, username, rounds, credits, rank))

        if caller_id is None or any(e["user_id"] == caller_id for e in entries):
            return entries, None

        own = await db.execute(
            select(model.user_id, model.username, rounds_col, credits_col).where(
                model.user_id == caller_id, *filters
            )
        )
        row = own.first()
        if row is None:
            return entries, None

        ahead = await db.execute(
            select(func.count()).select_from(model).where(credits_col > row[3], *filters)
        )
        caller = _entry(*row, rank=ahead.scalar_one() + 1)
        return entries, caller


def _entry(user_id: str, username: str, rounds: int, credits: float, rank: int) -> dict:
    return {
        "user_id": user_id,
        "username": username,
        "rounds": rounds,
        "net_credits": credits,
        "rank": rank,
    }


leaderboard_service = LeaderboardService()
