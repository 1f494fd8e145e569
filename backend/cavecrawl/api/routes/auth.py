"""Auth endpoints - SIWE nonce, signature login, profile, current user, logout."""

import redis.asyncio as aioredis
from fastapi import APIRouter, Cookie, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from cavecrawl.api.deps import get_auth_service, get_bearer_token, get_current_user
from cavecrawl.config import settings
from cavecrawl.db.database import get_db
from cavecrawl.db.redis import get_redis
from cavecrawl.models.user import User
from cavecrawl.schemas.auth import (
    LogoutResponse,
    MeResponse,
    NonceResponse,
    ProfileRequest,
    UserOut,
    VerifyRequest,
    VerifyResponse,
)
from cavecrawl.services.auth_service import AuthService
from cavecrawl.services.profile_service import profile_service

router = APIRouter()


def _user_to_response(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        wallet_address=user.wallet_address,
        username=user.username,
        display_name=user.display_name(),
        referral_code=user.referral_code,
        referred_by=user.referred_by,
        created_at=user.created_at,
    )


@router.get("/nonce", response_model=NonceResponse)
async def issue_nonce(
    response: Response,
    redis: aioredis.Redis = Depends(get_redis),
    auth: AuthService = Depends(get_auth_service),
):
    """Issue a single-use nonce to embed in the SIWE message, bound to this client by cookie."""
    nonce, binding = await auth.issue_nonce(redis)
    response.set_cookie(
        settings.NONCE_COOKIE,
        binding,
        max_age=settings.NONCE_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
    )
    return NonceResponse(nonce=nonce)


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    req: VerifyRequest,
    response: Response,
    binding: str | None = Cookie(default=None, alias=settings.NONCE_COOKIE),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    auth: AuthService = Depends(get_auth_service),
):
    """Verify a signed SIWE message and return an identity token."""
    user, token = await auth.authenticate(
        db, redis, req.message, req.signature, req.nonce, binding
    )
    response.delete_cookie(settings.NONCE_COOKIE)
    return VerifyResponse(token=token, user=_user_to_response(user))


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)):
    return MeResponse(user=_user_to_response(user))


@router.put("/profile", response_model=MeResponse)
async def update_profile(
    req: ProfileRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Choose a username and optionally record who referred the caller."""
    user = await profile_service.update_profile(db, user, req.username, req.referral_code)
    return MeResponse(user=_user_to_response(user))


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    token: str = Depends(get_bearer_token),
    redis: aioredis.Redis = Depends(get_redis),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.logout(redis, token)
    return LogoutResponse()
