"""Game-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class StartGameRequest(BaseModel):
    wager: float = Field(gt=0)
    max_rounds: int | None = None
    client_seed: str = Field(default="", max_length=256)


class StartGameResponse(BaseModel):
    session_id: str
    commitment: str
    max_rounds: int
    options_per_round: int
    username: str


class PlayRoundRequest(BaseModel):
    session_id: str
    round_number: int
    chosen_index: int


class PlayRoundResponse(BaseModel):
    was_successful: bool
    payout: float
    total_score: float
    next_round: int
    game_completed: bool
    final_result: str | None = None  # "win" | "loss" once completed
    net_result: float | None = None
    rounds_navigated: int | None = None


class ChoiceEntry(BaseModel):
    round: int
    chosen_index: int
    was_successful: bool
    payout: float


class SessionState(BaseModel):
    """Public view of a session - no server seed, no outcome table."""
    id: str
    commitment: str
    client_seed: str
    wager: float
    max_rounds: int
    options_per_round: int
    status: str
    choice_log: list[ChoiceEntry]
    total_score: float
    next_round: int | None
    final_result: str | None
    net_result: float | None
    rounds_navigated: int | None
    created_at: datetime
    completed_at: datetime | None


class RoundOutcomeOut(BaseModel):
    trap_index: int
    payouts: list[float]


class RevealResponse(BaseModel):
    session_id: str
    server_seed: str
    client_seed: str
    commitment: str
    outcome_table: list[RoundOutcomeOut]
    payout_unit: float
    payout_band_low: float
    payout_band_high: float
    verified: bool
