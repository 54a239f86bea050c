from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, HttpUrl, model_validator

from incubus.api.schemas.catalog import PublisherResponse, TaxonomyResponse

ItemType = Literal["COSMETIC", "FUNCTIONAL", "CONSUMABLE", "COLLECTIBLE"]
ItemRarity = Literal["COMMON", "UNCOMMON", "RARE", "EPIC", "LEGENDARY"]


class GameResponse(BaseModel):
    id: int
    title: str
    slug: str
    description: str
    short_description: str | None = None
    publisher_id: int
    release_date: datetime | None = None
    base_price: Decimal
    discount_price: Decimal | None = None
    is_active: bool
    is_featured: bool
    content_rating: str | None = None
    system_requirements: dict[str, Any] | None = None
    cover_image: str | None = None
    created_at: datetime
    updated_at: datetime


class GameDetailResponse(GameResponse):
    publisher: PublisherResponse | None = None
    genres: list[TaxonomyResponse] = Field(default_factory=list)
    tags: list[TaxonomyResponse] = Field(default_factory=list)
    developers: list[TaxonomyResponse] = Field(default_factory=list)
    average_rating: float | None = None
    review_count: int = 0


class GameCreateRequest(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(default="", max_length=20000)
    short_description: str | None = Field(default=None, max_length=300)
    publisher_id: int = Field(ge=1)
    release_date: datetime | None = None
    base_price: Decimal = Field(ge=0)
    discount_price: Decimal | None = Field(default=None, ge=0)
    is_active: bool = True
    is_featured: bool = False
    content_rating: str | None = Field(default=None, max_length=32)
    system_requirements: dict[str, Any] | None = None
    cover_image: HttpUrl | None = None
    genre_ids: list[int] = Field(default_factory=list)
    tag_ids: list[int] = Field(default_factory=list)
    developer_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_discount(self) -> "GameCreateRequest":
        if self.discount_price is not None and self.discount_price > self.base_price:
            raise ValueError("discount_price must not exceed base_price")
        return self


class GameUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=20000)
    short_description: str | None = Field(default=None, max_length=300)
    publisher_id: int | None = Field(default=None, ge=1)
    release_date: datetime | None = None
    base_price: Decimal | None = Field(default=None, ge=0)
    discount_price: Decimal | None = Field(default=None, ge=0)
    is_active: bool | None = None
    is_featured: bool | None = None
    content_rating: str | None = Field(default=None, max_length=32)
    system_requirements: dict[str, Any] | None = None
    cover_image: HttpUrl | None = None
    genre_ids: list[int] | None = None
    tag_ids: list[int] | None = None
    developer_ids: list[int] | None = None


class GameVersionResponse(BaseModel):
    id: int
    game_id: int
    version: str
    release_notes: str | None = None
    is_active: bool
    size_bytes: int | None = None
    content_hash: str | None = None
    content_cid: str | None = None
    created_at: datetime
    updated_at: datetime


class GameVersionCreateRequest(BaseModel):
    version: str = Field(min_length=1, max_length=50)
    release_notes: str | None = Field(default=None, max_length=10000)
    is_active: bool = True
    size_bytes: int | None = Field(default=None, ge=0)
    content_hash: str | None = Field(default=None, max_length=255)
    content_cid: str | None = Field(default=None, max_length=255)


class GameVersionUpdateRequest(BaseModel):
    version: str | None = Field(default=None, min_length=1, max_length=50)
    release_notes: str | None = Field(default=None, max_length=10000)
    is_active: bool | None = None
    size_bytes: int | None = Field(default=None, ge=0)
    content_hash: str | None = Field(default=None, max_length=255)
    content_cid: str | None = Field(default=None, max_length=255)


class GameItemResponse(BaseModel):
    id: int
    game_id: int
    name: str
    description: str | None = None
    item_type: str
    rarity: str
    image: str | None = None
    is_tradable: bool
    max_supply: int | None = None
    created_at: datetime
    updated_at: datetime


class GameItemCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    item_type: ItemType = "COSMETIC"
    rarity: ItemRarity = "COMMON"
    image: HttpUrl | None = None
    is_tradable: bool = True
    max_supply: int | None = Field(default=None, ge=1)


class GameItemUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    item_type: ItemType | None = None
    rarity: ItemRarity | None = None
    image: HttpUrl | None = None
    is_tradable: bool | None = None
    max_supply: int | None = Field(default=None, ge=1)
