"""Auth service - SIWE nonces, signature login, identity tokens and logout.

Nonces live in Redis with a short TTL and are consumed with ``GETDEL`` the
moment a login is attempted, so each one is good for exactly one try. Each
nonce is stored against a random binding token handed to the requester
(as a cookie), so only the client that asked for a nonce can redeem it.
Identity tokens are Fernet-encrypted claims; logout puts the token id on a
Redis revocation list until the token would have expired anyway.
"""

import base64
import hmac
import json
import logging
import secrets
import time
import uuid
from datetime import datetime, timezone
from functools import lru_cache

import redis.asyncio as aioredis
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from siwe import generate_nonce
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.config import settings
from cavecrawl.core.errors import InvalidNonce, Unauthenticated
from cavecrawl.core.siwe import check_chain, expires_at, parse_message
from cavecrawl.db.upsert import dialect_insert
from cavecrawl.models.user import User, new_referral_code, new_user_id
from cavecrawl.services.wallet_service import SignatureVerifier

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _fernet(secret: str) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"siwe-session",
        iterations=100_000,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8"))))


class AuthService:
    def __init__(self, verifier: SignatureVerifier | None = None):
        self.verifier = verifier or SignatureVerifier()

    @staticmethod
    def _nonce_key(nonce: str) -> str:
        return f"siwe:nonce:{nonce}"

    @staticmethod
    def _revoked_key(jti: str) -> str:
        return f"siwe:revoked:{jti}"

    async def issue_nonce(self, redis: aioredis.Redis) -> tuple[str, str]:
        """Create a single-use nonce. Returns ``(nonce, binding)``; the binding goes to the requester only."""
        nonce = generate_nonce()
        binding = secrets.token_urlsafe(24)
        await redis.set(self._nonce_key(nonce), binding, ex=settings.NONCE_TTL_SECONDS)
        return nonce, binding

    async def consume_nonce(self, redis: aioredis.Redis, nonce: str, binding: str | None) -> bool:
        """Atomically invalidate a nonce; True only for the first caller holding its binding."""
        stored = await redis.getdel(self._nonce_key(nonce))
        if stored is None or not binding:
            return False
        return hmac.compare_digest(stored.encode(), binding.encode())

    async def authenticate(
        self,
        db: AsyncSession,
        redis: aioredis.Redis,
        message: str,
        signature: str,
        expected_nonce: str,
        binding: str | None,
    ) -> tuple[User, str]:
        """Verify a signed SIWE message and return ``(user, identity_token)``."""
        # Burn the nonce before anything else so a failed attempt cannot be replayed
        if not expected_nonce or not await self.consume_nonce(redis, expected_nonce, binding):
            logger.warning("Login with unknown, foreign or already used nonce")
            raise InvalidNonce()

        try:
            siwe = parse_message(message)
            check_chain(siwe, settings.ALLOWED_CHAIN_IDS)
            await self.verifier.verify(siwe, signature, expected_nonce, settings.SIWE_DOMAIN)
        except Unauthenticated as e:
            logger.warning("Login rejected (%s): %s", e.code, e.detail)
            raise

        user = await self.get_or_create_user(db, siwe.address)
        token = self.issue_token(user, siwe.chain_id, expires_at(siwe))
        logger.info("User %s logged in with %s on chain %d", user.id, user.wallet_address, siwe.chain_id)
        return user, token

    @staticmethod
    async def get_or_create_user(db: AsyncSession, address: str) -> User:
        """Same address, same user - provisioned on first login."""
        stmt = dialect_insert(db, User).values(
            id=new_user_id(), wallet_address=address, referral_code=new_referral_code()
        )
        result = await db.execute(stmt.on_conflict_do_nothing(index_elements=["wallet_address"]))
        if result.rowcount:
            logger.info("Provisioned new user for wallet %s", address)

        user = (
            await db.execute(select(User).where(User.wallet_address == address))
        ).scalar_one()
        user.last_login_at = datetime.now(timezone.utc).replace(tzinfo=None)
        await db.flush()
        return user

    @staticmethod
    def issue_token(user: User, chain_id: int, message_expires: datetime | None = None) -> str:
        now = int(time.time())
        exp = now + settings.SESSION_TTL_SECONDS
        if message_expires is not None:
            exp = min(exp, int(message_expires.timestamp()))
        claims = {
            "sub": user.id,
            "address": user.wallet_address,
            "chain_id": chain_id,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": exp,
        }
        return _fernet(settings.SECRET_KEY).encrypt(json.dumps(claims).encode()).decode()

    @staticmethod
    def decode_token(token: str) -> dict:
        try:
            claims = json.loads(_fernet(settings.SECRET_KEY).decrypt(token.encode()))
        except (InvalidToken, ValueError):
            raise Unauthenticated("Invalid session token")
        if claims.get("exp", 0) <= time.time():
            raise Unauthenticated("Session expired")
        return claims

    async def resolve_token(self, db: AsyncSession, redis: aioredis.Redis, token: str) -> User:
        """Identity behind a bearer token; rejects bad, expired and revoked tokens."""
        claims = self.decode_token(token)
        if await redis.exists(self._revoked_key(claims["jti"])):
            raise Unauthenticated("Session revoked")
        result = await db.execute(select(User).where(User.id == claims["sub"]))
        user = result.scalar_one_or_none()
        if user is None:
            raise Unauthenticated("Unknown user")
        return user

    async def logout(self, redis: aioredis.Redis, token: str) -> None:
        claims = self.decode_token(token)
        remaining = max(1, int(claims["exp"] - time.time()))
        await redis.set(self._revoked_key(claims["jti"]), "1", ex=remaining)
        logger.info("User %s logged out", claims["sub"])


auth_service = AuthService()
