from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

AMOUNT_QUANTUM = Decimal("0.00000001")
BPS_DENOMINATOR = Decimal(10000)


class ListingType(StrEnum):
    GAME_LICENSE = "GAME_LICENSE"
    GAME_ITEM = "GAME_ITEM"
    BUNDLE = "BUNDLE"


class ListingStatus(StrEnum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class TransactionType(StrEnum):
    GAME_PURCHASE = "GAME_PURCHASE"
    ITEM_PURCHASE = "ITEM_PURCHASE"
    TRANSFER = "TRANSFER"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


class TransactionStatus(StrEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class FeeSplit:
    price: Decimal
    fee: Decimal
    seller_amount: Decimal


class MarketplacePolicy:
    SELLER_EDITABLE_STATUSES = frozenset(
        {ListingStatus.DRAFT, ListingStatus.ACTIVE, ListingStatus.CANCELLED}
    )

    @staticmethod
    def split_price(price: Decimal, fee_bps: int) -> FeeSplit:
        if price < 0:
            raise ValueError("price must be non-negative")
        if not 0 <= fee_bps <= 10000:
            raise ValueError("fee_bps must be within [0, 10000]")
        fee = (price * Decimal(fee_bps) / BPS_DENOMINATOR).quantize(
            AMOUNT_QUANTUM, rounding=ROUND_HALF_UP
        )
        return FeeSplit(price=price, fee=fee, seller_amount=price - fee)

    @staticmethod
    def is_expired(expires_at: datetime | None, now: datetime) -> bool:
        return expires_at is not None and expires_at <= now

    @staticmethod
    def transaction_type_for(listing_type: str) -> TransactionType:
        if listing_type == ListingType.GAME_LICENSE:
            return TransactionType.GAME_PURCHASE
        if listing_type == ListingType.GAME_ITEM:
            return TransactionType.ITEM_PURCHASE
        raise ValueError(f"Listing type {listing_type} cannot be purchased")

    @classmethod
    def purchase_blockers(
        cls,
        *,
        status: str,
        expires_at: datetime | None,
        seller_id: int,
        buyer_id: int,
        price: Decimal,
        buyer_balance: Decimal,
        now: datetime,
    ) -> list[str]:
        """Error codes that prevent a purchase, in the order they are checked."""
        issues: list[str] = []
        if status != ListingStatus.ACTIVE:
            issues.append("LISTING_NOT_ACTIVE")
        elif cls.is_expired(expires_at, now):
            issues.append("LISTING_EXPIRED")
        if seller_id == buyer_id:
            issues.append("CANNOT_BUY_OWN_LISTING")
        if buyer_balance < price:
            issues.append("INSUFFICIENT_BALANCE")
        return issues
