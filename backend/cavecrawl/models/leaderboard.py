"""Leaderboard models - additive daily and all-time aggregates per user."""

import datetime

from sqlalchemy import String, Integer, Float, Date, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from cavecrawl.db.database import Base


class DailyLeaderboardEntry(Base):
    __tablename__ = "daily_leaderboard"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    date: Mapped[datetime.date] = mapped_column(Date, primary_key=True)
    username: Mapped[str] = mapped_column(String(100))
    daily_rounds: Mapped[int] = mapped_column(Integer, default=0)
    daily_net_credits: Mapped[float] = mapped_column(Float, default=0.0)

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class OverallLeaderboardEntry(Base):
    __tablename__ = "overall_leaderboard"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    username: Mapped[str] = mapped_column(String(100))
    total_rounds: Mapped[int] = mapped_column(Integer, default=0)
    total_net_credits: Mapped[float] = mapped_column(Float, default=0.0)

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
