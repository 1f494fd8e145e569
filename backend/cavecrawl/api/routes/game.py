"""Game endpoints - start a session, play rounds, inspect and audit sessions."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.api.deps import get_current_user, get_game_service
from cavecrawl.db.database import get_db
from cavecrawl.models.game_session import GameSession, STATUS_IN_PROGRESS
from cavecrawl.models.user import User
from cavecrawl.schemas.game import (
    PlayRoundRequest,
    PlayRoundResponse,
    RevealResponse,
    SessionState,
    StartGameRequest,
    StartGameResponse,
)
from cavecrawl.services.game_service import GameService

router = APIRouter()


def _session_to_response(session: GameSession) -> SessionState:
    return SessionState(
        id=session.id,
        commitment=session.commitment,
        client_seed=session.client_seed,
        wager=session.wager,
        max_rounds=session.max_rounds,
        options_per_round=session.options_per_round,
        status=session.status,
        choice_log=session.choice_log or [],
        total_score=round(session.total_score(), 6),
        next_round=session.rounds_resolved + 1 if session.status == STATUS_IN_PROGRESS else None,
        final_result=session.final_result,
        net_result=session.net_result,
        rounds_navigated=session.rounds_navigated,
        created_at=session.created_at,
        completed_at=session.completed_at,
    )


@router.post("/start", response_model=StartGameResponse, status_code=201)
async def start_game(
    req: StartGameRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    """Commit to a seed and open a new session for the caller."""
    session = await games.create_session(
        db, user.id, req.wager, req.max_rounds, req.client_seed
    )
    return StartGameResponse(
        session_id=session.id,
        commitment=session.commitment,
        max_rounds=session.max_rounds,
        options_per_round=session.options_per_round,
        username=user.display_name(),
    )


@router.post("/play", response_model=PlayRoundResponse)
async def play_round(
    req: PlayRoundRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    """Resolve the next round of a session against its pre-committed outcome."""
    result = await games.resolve_round(
        db, req.session_id, user.id, req.round_number, req.chosen_index
    )
    return PlayRoundResponse(**vars(result))


@router.get("/{session_id}", response_model=SessionState)
async def get_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    session = await games.get_owned_session(db, session_id, user.id)
    return _session_to_response(session)


@router.get("/{session_id}/reveal", response_model=RevealResponse)
async def reveal_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    """Reveal the server seed of a finished session for verification."""
    return RevealResponse(**await games.reveal(db, session_id, user.id))
