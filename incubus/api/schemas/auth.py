from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=2, max_length=100)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class AuthLoginResponse(BaseModel):
    authorize_url: str
    state: str
    state_expires_at: datetime
    next_url: str = ""


class AuthUserResponse(BaseModel):
    user_id: int
    email: str
    name: str
    role: str
    roles: list[str] = Field(default_factory=list)
    platform_role: str | None = None
    publisher_role: str | None = None
    publisher_id: int | None = None
    is_player: bool = False
    image: str | None = None
    impersonated_by: int | None = None


class AuthSessionResponse(BaseModel):
    expires_at: datetime
    access_token: str
    user: AuthUserResponse


class UserSessionResponse(BaseModel):
    id: int
    user_id: int
    expires_at: datetime
    created_at: datetime
    is_revoked: bool
    user_agent: str | None = None
    ip_address: str | None = None
    impersonated_by: int | None = None
    is_current: bool = False
