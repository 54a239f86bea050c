from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from incubus.api.schemas.games import GameResponse


class BundleResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    price: Decimal | None = None
    discount_percentage: int | None = None
    games: list[GameResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class BundleCreateRequest(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    price: Decimal | None = Field(default=None, ge=0)
    discount_percentage: int | None = Field(default=None, ge=0, le=100)
    game_ids: list[int] = Field(min_length=1)


class BundleUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    price: Decimal | None = Field(default=None, ge=0)
    discount_percentage: int | None = Field(default=None, ge=0, le=100)
    game_ids: list[int] | None = Field(default=None, min_length=1)
