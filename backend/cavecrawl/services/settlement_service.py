"""Settlement service - finalizes a session's result and folds it into the leaderboards.

Settlement is guarded by the session's own status: the conditional
``in_progress -> completed`` update is what makes a second call a no-op, so
leaderboards never need their own de-duplication.
"""

import datetime
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.core.errors import InvalidState
from cavecrawl.core.fairness import PAYOUT_DECIMALS
from cavecrawl.models.game_session import (
    GameSession,
    RESULT_LOSS,
    RESULT_WIN,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
)
from cavecrawl.models.user import DEFAULT_DISPLAY_NAME, User
from cavecrawl.services.leaderboard_service import leaderboard_service

logger = logging.getLogger(__name__)


def is_terminal(entry: dict, max_rounds: int) -> bool:
    """A round ends the game when the trap was hit or the last round was cleared."""
    return not entry["was_successful"] or entry["round"] >= max_rounds


class SettlementService:
    @staticmethod
    async def resolve_username(db: AsyncSession, user_id: str) -> str:
        """Display name for the leaderboard; never blocks settlement."""
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            return DEFAULT_DISPLAY_NAME
        return user.display_name()

    async def settle(self, db: AsyncSession, session: GameSession) -> bool:
        """Write the final result once. Returns False if the session was already settled."""
        log = session.choice_log or []
        if not log or not is_terminal(log[-1], session.max_rounds):
            raise InvalidState("Session has not reached a terminal round")

        last = log[-1]
        won = last["was_successful"]
        final_result = RESULT_WIN if won else RESULT_LOSS
        rounds_navigated = session.max_rounds if won else last["round"] - 1
        # The losing pick still counts as a round played
        rounds_played = session.max_rounds if won else last["round"]
        net_result = round(session.total_score() - session.wager, PAYOUT_DECIMALS)
        completed_at = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)

        result = await db.execute(
            update(GameSession)
            .where(GameSession.id == session.id, GameSession.status == STATUS_IN_PROGRESS)
            .values(
                status=STATUS_COMPLETED,
                final_result=final_result,
                net_result=net_result,
                rounds_navigated=rounds_navigated,
                completed_at=completed_at,
            )
        )
        if result.rowcount == 0:
            logger.warning("Session %s already settled, skipping", session.id)
            return False

        username = await self.resolve_username(db, session.user_id)
        await leaderboard_service.record(
            db,
            user_id=session.user_id,
            username=username,
            rounds=rounds_played,
            net_credits=net_result,
            day=completed_at.date(),
        )
        await db.refresh(session)

        logger.info(
            "Settled session %s: %s, net %+f over %d rounds",
            session.id, final_result, net_result, rounds_played,
        )
        return True


settlement_service = SettlementService()
