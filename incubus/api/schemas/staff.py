from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

PlatformRole = Literal["Owner", "Admin", "Moderator", "Support"]
PublisherRole = Literal["Publisher", "Developer", "Artist", "Tester", "QA", "Marketing"]


class StaffResponse(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    image: str | None = None
    role: str
    publisher_id: int | None = None
    created_at: datetime


class PlatformStaffCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    name: str = Field(min_length=2, max_length=100)
    role: PlatformRole


class PublisherStaffRegisterRequest(BaseModel):
    publisher_id: int
    role: PublisherRole


class PublisherStaffCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    name: str | None = Field(default=None, min_length=2, max_length=100)
    role: PublisherRole


class PlayerRegistrationResponse(BaseModel):
    id: int
    user_id: int
    type: str
    created_at: datetime


class PlayerResponse(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    image: str | None = None
    type: str
    created_at: datetime


class PlayerUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["Standard", "Premium"] | None = None
    name: str | None = Field(default=None, min_length=2, max_length=100)
    image: str | None = Field(default=None, max_length=1024)


class LibraryEntryResponse(BaseModel):
    game_id: int
    title: str
    slug: str
    cover_image: str | None = None
    owned: bool
    added_at: datetime


class LibraryAddRequest(BaseModel):
    game_id: int
    owned: bool = True
