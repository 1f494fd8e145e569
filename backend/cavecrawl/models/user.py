"""User model - the durable identity behind a verified wallet address."""

import secrets
import string
import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from cavecrawl.config import settings
from cavecrawl.db.database import Base

DEFAULT_DISPLAY_NAME = "Explorer"
REFERRAL_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_SUFFIX_LENGTH = 6


def new_user_id() -> str:
    return uuid.uuid4().hex


def new_referral_code() -> str:
    """e.g. CAVE7KQ2ZD"""
    suffix = "".join(secrets.choice(REFERRAL_ALPHABET) for _ in range(REFERRAL_SUFFIX_LENGTH))
    return settings.REFERRAL_PREFIX + suffix


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_user_id)
    # Checksum address; the address -> id binding never changes once created
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, index=True)
    username: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)

    # Profile / referrals
    referral_code: Mapped[str] = mapped_column(
        String(16), unique=True, index=True, default=new_referral_code
    )
    referred_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def display_name(self) -> str:
        """Username if set, else a placeholder derived from the address."""
        if self.username:
            return self.username
        if self.wallet_address:
            return f"{DEFAULT_DISPLAY_NAME}-{self.wallet_address[2:8].lower()}"
        return DEFAULT_DISPLAY_NAME
