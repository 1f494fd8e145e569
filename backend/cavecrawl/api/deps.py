"""Shared FastAPI dependencies - bearer-token identity and service handles."""

import redis.asyncio as aioredis
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.core.errors import Unauthenticated
from cavecrawl.db.database import get_db
from cavecrawl.db.redis import get_redis
from cavecrawl.models.user import User
from cavecrawl.services.auth_service import AuthService, auth_service
from cavecrawl.services.game_service import GameService, game_service

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service() -> AuthService:
    return auth_service


def get_game_service() -> GameService:
    return game_service


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    return await auth.resolve_token(db, redis, token)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    auth: AuthService = Depends(get_auth_service),
) -> User | None:
    """Like get_current_user, but anonymous callers get None instead of a 401."""
    if credentials is None or not credentials.credentials:
        return None
    return await auth.resolve_token(db, redis, credentials.credentials)
