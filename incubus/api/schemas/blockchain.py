from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, HttpUrl


class BlockchainResponse(BaseModel):
    id: int
    name: str
    chain_id: int
    rpc_url: str
    explorer_url: str | None = None
    currency_symbol: str
    is_active: bool
    is_default: bool
    created_at: datetime
    updated_at: datetime


class BlockchainCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    chain_id: int = Field(ge=1)
    rpc_url: HttpUrl
    explorer_url: HttpUrl | None = None
    currency_symbol: str = Field(default="ETH", min_length=1, max_length=16)
    is_active: bool = True
    is_default: bool = False


class BlockchainUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    chain_id: int | None = Field(default=None, ge=1)
    rpc_url: HttpUrl | None = None
    explorer_url: HttpUrl | None = None
    currency_symbol: str | None = Field(default=None, min_length=1, max_length=16)
    is_active: bool | None = None
    is_default: bool | None = None


class WalletResponse(BaseModel):
    id: int
    user_id: int
    blockchain_id: int
    blockchain_name: str | None = None
    currency_symbol: str | None = None
    address: str
    label: str | None = None
    is_default: bool
    balance: Decimal
    last_synced: datetime | None = None
    created_at: datetime
    updated_at: datetime


class WalletCreateRequest(BaseModel):
    blockchain_id: int = Field(ge=1)
    address: str = Field(min_length=1, max_length=128)
    label: str | None = Field(default=None, max_length=100)
    is_default: bool = False


class WalletUpdateRequest(BaseModel):
    label: str | None = Field(default=None, max_length=100)
    is_default: bool | None = None


class WalletSyncRequest(BaseModel):
    force_sync: bool = False


class WalletSyncResponse(BaseModel):
    wallet: WalletResponse
    synced: bool
    message: str
    last_synced: datetime | None = None
    next_sync_available: datetime | None = None
    previous_balance: Decimal | None = None
    new_balance: Decimal | None = None
    change: Decimal | None = None


class TransactionResponse(BaseModel):
    id: int
    hash: str
    blockchain_id: int
    from_wallet_id: int | None = None
    to_wallet_id: int | None = None
    type: str
    status: str
    amount: Decimal
    fee: Decimal
    data: dict[str, Any] | None = None
    created_at: datetime
    confirmed_at: datetime | None = None
