"""Profile service - chosen usernames and referral links."""

import logging
import re

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.config import settings
from cavecrawl.core.errors import InvalidInput
from cavecrawl.models.leaderboard import DailyLeaderboardEntry, OverallLeaderboardEntry
from cavecrawl.models.user import User

logger = logging.getLogger(__name__)

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class ProfileService:
    @staticmethod
    def validate_username(username: str) -> str:
        username = username.strip()
        if not settings.USERNAME_MIN_LENGTH <= len(username) <= settings.USERNAME_MAX_LENGTH:
            raise InvalidInput(
                f"Username must be {settings.USERNAME_MIN_LENGTH}-"
                f"{settings.USERNAME_MAX_LENGTH} characters"
            )
        if not _USERNAME_RE.match(username):
            raise InvalidInput("Username may only contain letters, digits, '_' and '-'")
        return username

    @staticmethod
    async def find_referrer(db: AsyncSession, code: str) -> User:
        result = await db.execute(select(User).where(User.referral_code == code.strip().upper()))
        referrer = result.scalar_one_or_none()
        if referrer is None:
            raise InvalidInput("Invalid referral code")
        return referrer

    async def update_profile(
        self,
        db: AsyncSession,
        user: User,
        username: str,
        referral_code: str | None = None,
    ) -> User:
        """Set the caller's username and, once, who referred them."""
        username = self.validate_username(username)
        taken = await db.execute(
            select(User.id).where(
                func.lower(User.username) == username.lower(), User.id != user.id
            )
        )
        if taken.first() is not None:
            raise InvalidInput("Username is already taken")

        if referral_code and referral_code.strip():
            referrer = await self.find_referrer(db, referral_code)
            if referrer.id == user.id:
                raise InvalidInput("You cannot use your own referral code")
            if user.referred_by is not None and user.referred_by != referrer.id:
                raise InvalidInput("A referral code has already been applied")
            user.referred_by = referrer.id

        user.username = username
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race for the same name
            raise InvalidInput("Username is already taken")

        # Existing leaderboard rows pick up the new name right away
        for model in (DailyLeaderboardEntry, OverallLeaderboardEntry):
            await db.execute(
                update(model).where(model.user_id == user.id).values(username=username)
            )
        logger.info("User %s set username %r", user.id, username)
        return user


profile_service = ProfileService()
