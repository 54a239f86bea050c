from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from incubus.api.schemas.blockchain import TransactionResponse

ListingTypeName = Literal["GAME_LICENSE", "GAME_ITEM", "BUNDLE"]
SellerStatusName = Literal["DRAFT", "ACTIVE", "CANCELLED"]


class ListingResponse(BaseModel):
    id: int
    type: str
    status: str
    seller_id: int
    seller_name: str | None = None
    seller_wallet_id: int | None = None
    game_id: int | None = None
    game_title: str | None = None
    item_id: int | None = None
    item_name: str | None = None
    item_rarity: str | None = None
    price: Decimal
    quantity: int
    description: str | None = None
    expires_at: datetime | None = None
    buyer_id: int | None = None
    sold_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ListingCreateRequest(BaseModel):
    type: ListingTypeName
    price: Decimal = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    game_id: int | None = Field(default=None, ge=1)
    item_id: int | None = Field(default=None, ge=1)
    description: str | None = Field(default=None, max_length=5000)
    status: SellerStatusName = "ACTIVE"
    expires_at: datetime | None = None


class ListingUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    price: Decimal | None = Field(default=None, gt=0)
    quantity: int | None = Field(default=None, ge=1)
    description: str | None = Field(default=None, max_length=5000)
    status: SellerStatusName | None = None
    expires_at: datetime | None = None


class PurchaseRequest(BaseModel):
    wallet_id: int = Field(ge=1)


class LicenseResponse(BaseModel):
    id: int
    game_id: int
    wallet_id: int
    is_active: bool


class ItemOwnershipResponse(BaseModel):
    id: int
    item_id: int
    wallet_id: int
    quantity: int


class PurchaseResponse(BaseModel):
    listing: ListingResponse
    transaction: TransactionResponse
    license: LicenseResponse | None = None
    item_ownership: ItemOwnershipResponse | None = None
