"""Auth-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class NonceResponse(BaseModel):
    nonce: str


class VerifyRequest(BaseModel):
    message: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    nonce: str = Field(min_length=1)


class UserOut(BaseModel):
    id: str
    wallet_address: str
    username: str | None
    display_name: str
    referral_code: str | None = None
    referred_by: str | None = None
    created_at: datetime | None = None


class VerifyResponse(BaseModel):
    ok: bool = True
    token: str
    user: UserOut


class MeResponse(BaseModel):
    ok: bool = True
    user: UserOut


class LogoutResponse(BaseModel):
    ok: bool = True
    message: str = "Logged out successfully"


class ProfileRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    referral_code: str | None = Field(default=None, max_length=16)
