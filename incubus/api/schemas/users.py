from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    image: str | None = None
    email_verified: bool = False
    role: str
    banned: bool = False
    ban_reason: str | None = None
    ban_expires: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=100)
    image: str | None = Field(default=None, max_length=1024)


class AccountKindResponse(BaseModel):
    kind: Literal["platform", "publisher", "player"] | None = None
    roles: list[str] = Field(default_factory=list)


class UserCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str | None = Field(default=None, min_length=8, max_length=128)
    name: str = Field(min_length=2, max_length=100)
    role: Literal["admin", "user"] = "user"
    image: str | None = Field(default=None, max_length=1024)


class UserUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=8, max_length=128)
    name: str | None = Field(default=None, min_length=2, max_length=100)
    image: str | None = Field(default=None, max_length=1024)
    role: Literal["admin", "user"] | None = None
    banned: bool | None = None
    ban_reason: str | None = Field(default=None, max_length=1000)
    ban_expires: datetime | None = None
