from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from incubus.api.schemas.staff import StaffResponse


class TaxonomyResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    website: str | None = None
    created_at: datetime
    updated_at: datetime


class GenreCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2, max_length=50)
    description: str | None = Field(default=None, max_length=2000)


class GenreUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=50)
    description: str | None = Field(default=None, max_length=2000)


class TagCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2, max_length=50)


class TagUpdateRequest(TagCreateRequest):
    pass


class DeveloperCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    website: HttpUrl | None = None


class PublisherResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    website: str | None = None
    logo: str | None = None
    is_verified: bool
    royalty_percentage: Decimal
    organization_id: int | None = None
    created_at: datetime
    updated_at: datetime


class PublisherDetailResponse(PublisherResponse):
    game_count: int = 0
    staff: list[StaffResponse] = Field(default_factory=list)


class PublisherCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    website: HttpUrl | None = None
    logo: HttpUrl | None = None
    is_verified: bool = False
    royalty_percentage: Decimal = Field(default=Decimal("10"), ge=0, le=100)


class PublisherUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    website: HttpUrl | None = None
    logo: HttpUrl | None = None
    is_verified: bool | None = None
    royalty_percentage: Decimal | None = Field(default=None, ge=0, le=100)
