from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from incubus.infrastructure.db.base import Base, JSONType, TimestampMixin

AMOUNT = Numeric(36, 18)


class Blockchain(TimestampMixin, Base):
    __tablename__ = "blockchains"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    chain_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True, nullable=False)
    rpc_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    explorer_url: Mapped[str | None] = mapped_column(String(1024))
    currency_symbol: Mapped[str] = mapped_column(String(16), default="ETH", nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default="true",
        nullable=False,
    )
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="false",
        nullable=False,
    )


class Wallet(TimestampMixin, Base):
    __tablename__ = "wallets"
    __table_args__ = (
        UniqueConstraint("user_id", "blockchain_id", "address", name="uq_wallet_user_chain_address"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    blockchain_id: Mapped[int] = mapped_column(
        ForeignKey("blockchains.id", ondelete="RESTRICT"),
        index=True,
        nullable=False,
    )
    address: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    label: Mapped[str | None] = mapped_column(String(100))
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="false",
        nullable=False,
    )
    balance: Mapped[Decimal] = mapped_column(
        AMOUNT,
        default=Decimal("0"),
        server_default="0",
        nullable=False,
    )
    last_synced: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    hash: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    blockchain_id: Mapped[int] = mapped_column(
        ForeignKey("blockchains.id", ondelete="RESTRICT"),
        index=True,
        nullable=False,
    )
    from_wallet_id: Mapped[int | None] = mapped_column(
        ForeignKey("wallets.id", ondelete="SET NULL"),
        index=True,
    )
    to_wallet_id: Mapped[int | None] = mapped_column(
        ForeignKey("wallets.id", ondelete="SET NULL"),
        index=True,
    )
    type: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    fee: Mapped[Decimal] = mapped_column(AMOUNT, default=Decimal("0"), nullable=False)
    data_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class GameLicense(TimestampMixin, Base):
    __tablename__ = "game_licenses"
    __table_args__ = (UniqueConstraint("game_id", "wallet_id", name="uq_game_license_wallet"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    game_id: Mapped[int] = mapped_column(
        ForeignKey("games.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    wallet_id: Mapped[int] = mapped_column(
        ForeignKey("wallets.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    license_type: Mapped[str] = mapped_column(String(32), default="STANDARD", nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default="true",
        nullable=False,
    )
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class LicenseTransaction(Base):
    __tablename__ = "license_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    license_id: Mapped[int] = mapped_column(
        ForeignKey("game_licenses.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(32), default="PURCHASE", nullable=False)
    price: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class ItemOwnership(Base):
    __tablename__ = "item_ownerships"
    __table_args__ = (UniqueConstraint("item_id", "wallet_id", name="uq_item_ownership_wallet"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("game_items.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    wallet_id: Mapped[int] = mapped_column(
        ForeignKey("wallets.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class ItemTransaction(Base):
    __tablename__ = "item_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("game_items.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    ownership_id: Mapped[int] = mapped_column(
        ForeignKey("item_ownerships.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(32), default="PURCHASE", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
