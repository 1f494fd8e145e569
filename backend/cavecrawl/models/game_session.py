"""Game session model - one wagering attempt and its pre-committed outcomes."""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, Float, DateTime, ForeignKey, JSON, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from cavecrawl.db.database import Base

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

RESULT_WIN = "win"
RESULT_LOSS = "loss"


def new_session_id() -> str:
    return uuid.uuid4().hex


class GameSession(Base):
    __tablename__ = "game_sessions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_session_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)

    # Provably-fair commitment; written once at creation
    commitment: Mapped[str] = mapped_column(String(64))
    server_seed: Mapped[str] = mapped_column(String(64))
    client_seed: Mapped[str] = mapped_column(Text, default="")
    # [{"trap_index": 1, "payouts": [0.0051, 0.0032, 0.0068]}, ...]
    outcome_table: Mapped[list] = mapped_column(JSON)
    max_rounds: Mapped[int] = mapped_column(Integer)
    options_per_round: Mapped[int] = mapped_column(Integer)
    # Payout scale in force at creation; reveal re-derives the table with these
    payout_unit: Mapped[float] = mapped_column(Float)
    payout_band_low: Mapped[float] = mapped_column(Float)
    payout_band_high: Mapped[float] = mapped_column(Float)

    wager: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_IN_PROGRESS, index=True)

    # Append-only: [{"round": 1, "chosen_index": 0, "was_successful": true, "payout": 0.005}, ...]
    choice_log: Mapped[list] = mapped_column(JSON, default=list)
    # Version counter for compare-and-swap; always len(choice_log)
    rounds_resolved: Mapped[int] = mapped_column(Integer, default=0)

    # Set exactly once, at completion
    final_result: Mapped[str | None] = mapped_column(String(10), nullable=True)
    net_result: Mapped[float | None] = mapped_column(Float, nullable=True)
    rounds_navigated: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    def total_score(self) -> float:
        """Sum of payouts collected so far."""
        return sum(entry["payout"] for entry in self.choice_log or [])
