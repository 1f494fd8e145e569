"""Game service - the session state machine.

A session is created ``in_progress`` with its whole outcome table already
committed, then consumes exactly one round per ``resolve_round`` call until
a trap is hit or the last round is cleared. The choice-log append is a
compare-and-swap on ``rounds_resolved``, so two concurrent requests for the
same session can never both land.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.config import settings
from cavecrawl.core.errors import Forbidden, InvalidInput, InvalidRound, InvalidState, NotFound
from cavecrawl.core.fairness import (
    PAYOUT_DECIMALS,
    Mulberry32Expander,
    OutcomeExpander,
    RoundOutcome,
    create_commitment,
    verify_commitment,
)
from cavecrawl.models.game_session import GameSession, STATUS_IN_PROGRESS
from cavecrawl.services.settlement_service import is_terminal, settlement_service

logger = logging.getLogger(__name__)


@dataclass
class RoundResult:
    was_successful: bool
    payout: float
    total_score: float
    next_round: int
    game_completed: bool
    final_result: str | None = None
    net_result: float | None = None
    rounds_navigated: int | None = None


class GameService:
    def __init__(self, expander: OutcomeExpander | None = None):
        # None: a Mulberry32Expander built from each session's own payout scale
        self.expander = expander

    def _expander(self, reference_unit: float, band_low: float, band_high: float) -> OutcomeExpander:
        if self.expander is not None:
            return self.expander
        return Mulberry32Expander(reference_unit, band_low, band_high)

    @staticmethod
    def validate_policy(wager: float, max_rounds: int) -> None:
        """Reject (never clamp) stakes and lengths outside the configured bounds."""
        if not settings.MIN_WAGER <= wager <= settings.MAX_WAGER:
            raise InvalidInput(
                f"Wager must be between {settings.MIN_WAGER} and {settings.MAX_WAGER}"
            )
        if not 1 <= max_rounds <= settings.MAX_ROUNDS_LIMIT:
            raise InvalidInput(f"max_rounds must be between 1 and {settings.MAX_ROUNDS_LIMIT}")

    async def create_session(
        self,
        db: AsyncSession,
        user_id: str,
        wager: float,
        max_rounds: int | None = None,
        client_seed: str = "",
    ) -> GameSession:
        """Commit to a seed, pre-compute every round, and persist the new session."""
        max_rounds = settings.DEFAULT_MAX_ROUNDS if max_rounds is None else max_rounds
        self.validate_policy(wager, max_rounds)

        options = settings.OPTIONS_PER_ROUND
        unit = settings.PAYOUT_REFERENCE_UNIT
        low, high = settings.PAYOUT_BAND_LOW, settings.PAYOUT_BAND_HIGH
        server_seed, commitment = create_commitment(client_seed)
        table = self._expander(unit, low, high).expand(commitment, max_rounds, options)

        session = GameSession(
            user_id=user_id,
            commitment=commitment,
            server_seed=server_seed,
            client_seed=client_seed,
            outcome_table=[outcome.to_dict() for outcome in table],
            max_rounds=max_rounds,
            options_per_round=options,
            payout_unit=unit,
            payout_band_low=low,
            payout_band_high=high,
            wager=wager,
            status=STATUS_IN_PROGRESS,
            choice_log=[],
            rounds_resolved=0,
        )
        db.add(session)
        await db.flush()
        await db.refresh(session)

        logger.info(
            "Session %s started by %s: wager=%s rounds=%d commitment=%s",
            session.id, user_id, wager, max_rounds, commitment,
        )
        return session

    @staticmethod
    async def get_owned_session(
        db: AsyncSession, session_id: str, caller_id: str
    ) -> GameSession:
        """Load a session, checking existence then ownership."""
        result = await db.execute(select(GameSession).where(GameSession.id == session_id))
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFound()
        if session.user_id != caller_id:
            raise Forbidden("Session belongs to another player")
        return session

    async def resolve_round(
        self,
        db: AsyncSession,
        session_id: str,
        caller_id: str,
        round_number: int,
        chosen_index: int,
    ) -> RoundResult:
        session = await self.get_owned_session(db, session_id, caller_id)
        if session.status != STATUS_IN_PROGRESS:
            raise InvalidState()

        resolved = session.rounds_resolved
        if round_number != resolved + 1 or round_number > session.max_rounds:
            raise InvalidRound(f"Expected round {resolved + 1}, got {round_number}")
        if not 0 <= chosen_index < session.options_per_round:
            raise InvalidInput(
                f"chosen_index must be between 0 and {session.options_per_round - 1}"
            )

        outcome = RoundOutcome.from_dict(session.outcome_table[round_number - 1])
        was_successful = chosen_index != outcome.trap_index
        payout = outcome.payouts[chosen_index] if was_successful else 0.0
        entry = {
            "round": round_number,
            "chosen_index": chosen_index,
            "was_successful": was_successful,
            "payout": payout,
        }

        await self._append_choice(db, session, entry, expected_resolved=resolved)
        total_score = round(session.total_score(), PAYOUT_DECIMALS)

        if not is_terminal(entry, session.max_rounds):
            return RoundResult(
                was_successful=True,
                payout=payout,
                total_score=total_score,
                next_round=round_number + 1,
                game_completed=False,
            )

        await settlement_service.settle(db, session)
        return RoundResult(
            was_successful=was_successful,
            payout=payout,
            total_score=total_score,
            next_round=round_number + 1,
            game_completed=True,
            final_result=session.final_result,
            net_result=session.net_result,
            rounds_navigated=session.rounds_navigated,
        )

    @staticmethod
    async def _append_choice(
        db: AsyncSession, session: GameSession, entry: dict, expected_resolved: int
    ) -> None:
        """Append one log entry iff nobody else has advanced the session meanwhile."""
        new_log = list(session.choice_log or []) + [entry]
        result = await db.execute(
            update(GameSession)
            .where(
                GameSession.id == session.id,
                GameSession.status == STATUS_IN_PROGRESS,
                GameSession.rounds_resolved == expected_resolved,
            )
            .values(choice_log=new_log, rounds_resolved=expected_resolved + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Lost race on session %s round %d", session.id, entry["round"]
            )
            raise InvalidRound(f"Round {entry['round']} was already resolved")
        await db.refresh(session)

    async def reveal(self, db: AsyncSession, session_id: str, caller_id: str) -> dict:
        """Disclose the server seed of a finished session so the player can audit it."""
        session = await self.get_owned_session(db, session_id, caller_id)
        if not session.is_completed:
            raise InvalidState("Server seed is revealed only after the game ends")

        expander = self._expander(
            session.payout_unit, session.payout_band_low, session.payout_band_high
        )
        recomputed = expander.expand(
            session.commitment, session.max_rounds, session.options_per_round
        )
        table_matches = [o.to_dict() for o in recomputed] == session.outcome_table
        return {
            "session_id": session.id,
            "server_seed": session.server_seed,
            "client_seed": session.client_seed,
            "commitment": session.commitment,
            "outcome_table": session.outcome_table,
            "payout_unit": session.payout_unit,
            "payout_band_low": session.payout_band_low,
            "payout_band_high": session.payout_band_high,
            "verified": table_matches
            and verify_commitment(session.server_seed, session.client_seed, session.commitment),
        }


game_service = GameService()
