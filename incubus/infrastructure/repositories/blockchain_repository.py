from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.infrastructure.db.models.blockchain import (
    Blockchain,
    GameLicense,
    ItemOwnership,
    ItemTransaction,
    LicenseTransaction,
    Transaction,
    Wallet,
)
from incubus.infrastructure.repositories.base import BaseRepository


class BlockchainRepository(BaseRepository[Blockchain]):
    model = Blockchain

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_blockchains(self, *, is_active: bool | None) -> Sequence[Blockchain]:
        stmt = select(Blockchain).order_by(Blockchain.name.asc())
        if is_active is not None:
            stmt = stmt.where(Blockchain.is_active == is_active)
        return (await self.session.execute(stmt)).scalars().all()

    async def get_by_name(self, name: str) -> Blockchain | None:
        stmt = select(Blockchain).where(func.lower(Blockchain.name) == name.strip().lower())
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_by_chain_id(self, chain_id: int) -> Blockchain | None:
        stmt = select(Blockchain).where(Blockchain.chain_id == chain_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def clear_default(self, *, except_id: int | None = None) -> None:
        stmt = update(Blockchain).where(Blockchain.is_default == True)  # noqa: E712
        if except_id is not None:
            stmt = stmt.where(Blockchain.id != except_id)
        await self.session.execute(stmt.values(is_default=False))

    async def wallet_count(self, blockchain_id: int) -> int:
        return await self.count_rows(Wallet, Wallet.blockchain_id == blockchain_id)


class WalletRepository(BaseRepository[Wallet]):
    model = Wallet

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_for_user(
        self,
        *,
        user_id: int,
        blockchain_id: int | None,
    ) -> Sequence[tuple[Wallet, Blockchain]]:
        stmt = (
            select(Wallet, Blockchain)
            .join(Blockchain, Blockchain.id == Wallet.blockchain_id)
            .where(Wallet.user_id == user_id)
            .order_by(Wallet.is_default.desc(), Wallet.created_at.asc())
        )
        if blockchain_id is not None:
            stmt = stmt.where(Wallet.blockchain_id == blockchain_id)
        return (await self.session.execute(stmt)).all()

    async def get_for_update(self, wallet_id: int) -> Wallet | None:
        stmt = select(Wallet).where(Wallet.id == wallet_id).with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def lock_in_order(self, wallet_ids: Iterable[int | None]) -> dict[int, Wallet]:
        """Lock wallets ``FOR UPDATE`` in ascending id order and reload their balances."""
        ids = sorted({wallet_id for wallet_id in wallet_ids if wallet_id is not None})
        stmt = (
            select(Wallet)
            .where(Wallet.id.in_(ids))
            .order_by(Wallet.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return {wallet.id: wallet for wallet in rows}

    async def find(self, *, user_id: int, blockchain_id: int, address: str) -> Wallet | None:
        stmt = select(Wallet).where(
            Wallet.user_id == user_id,
            Wallet.blockchain_id == blockchain_id,
            func.lower(Wallet.address) == address.lower(),
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def count_on_chain(self, *, user_id: int, blockchain_id: int) -> int:
        return await self.count_rows(
            Wallet,
            Wallet.user_id == user_id,
            Wallet.blockchain_id == blockchain_id,
        )

    async def get_default(self, *, user_id: int, blockchain_id: int) -> Wallet | None:
        stmt = (
            select(Wallet)
            .where(
                Wallet.user_id == user_id,
                Wallet.blockchain_id == blockchain_id,
                Wallet.is_default == True,  # noqa: E712
            )
            .order_by(Wallet.id.asc())
        )
        return (await self.session.execute(stmt)).scalars().first()

    async def clear_default(self, *, user_id: int, blockchain_id: int, except_id: int) -> None:
        stmt = (
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                Wallet.blockchain_id == blockchain_id,
                Wallet.id != except_id,
                Wallet.is_default == True,  # noqa: E712
            )
            .values(is_default=False)
        )
        await self.session.execute(stmt)

    async def wallet_ids_for_user(self, user_id: int) -> list[int]:
        stmt = select(Wallet.id).where(Wallet.user_id == user_id)
        return [int(value) for value in (await self.session.execute(stmt)).scalars().all()]

    async def dependency_counts(self, wallet_id: int) -> dict[str, int]:
        return {
            "transactions": await self.count_rows(
                Transaction,
                or_(Transaction.from_wallet_id == wallet_id, Transaction.to_wallet_id == wallet_id),
            ),
            "licenses": await self.count_rows(GameLicense, GameLicense.wallet_id == wallet_id),
            "items": await self.count_rows(ItemOwnership, ItemOwnership.wallet_id == wallet_id),
        }

    # Transactions

    async def list_transactions(
        self,
        *,
        wallet_id: int,
        tx_type: str | None,
        status: str | None,
        start_date: datetime | None,
        end_date: datetime | None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[Transaction], int]:
        stmt = select(Transaction).where(
            or_(Transaction.from_wallet_id == wallet_id, Transaction.to_wallet_id == wallet_id)
        )
        if tx_type:
            stmt = stmt.where(Transaction.type == tx_type)
        if status:
            stmt = stmt.where(Transaction.status == status)
        if start_date is not None:
            stmt = stmt.where(Transaction.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(Transaction.created_at <= end_date)
        stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def get_transaction(self, transaction_id: int) -> Transaction | None:
        return await self.session.get(Transaction, transaction_id)

    async def create_transaction(self, **values) -> Transaction:
        row = Transaction(**values)
        self.session.add(row)
        await self.session.flush()
        return row

    # Licenses and item ownership

    async def find_active_license(self, *, game_id: int, wallet_ids: Sequence[int]) -> GameLicense | None:
        if not wallet_ids:
            return None
        stmt = select(GameLicense).where(
            GameLicense.game_id == game_id,
            GameLicense.wallet_id.in_(list(wallet_ids)),
            GameLicense.is_active == True,  # noqa: E712
        )
        return (await self.session.execute(stmt)).scalars().first()

    async def get_license(self, *, game_id: int, wallet_id: int) -> GameLicense | None:
        stmt = select(GameLicense).where(
            GameLicense.game_id == game_id,
            GameLicense.wallet_id == wallet_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def create_license(self, *, game_id: int, wallet_id: int) -> GameLicense:
        row = GameLicense(game_id=game_id, wallet_id=wallet_id, is_active=True)
        self.session.add(row)
        await self.session.flush()
        return row

    async def record_license_transaction(self, **values) -> LicenseTransaction:
        row = LicenseTransaction(**values)
        self.session.add(row)
        await self.session.flush()
        return row

    async def find_ownership(self, *, item_id: int, wallet_ids: Sequence[int], min_quantity: int) -> ItemOwnership | None:
        if not wallet_ids:
            return None
        stmt = (
            select(ItemOwnership)
            .where(
                ItemOwnership.item_id == item_id,
                ItemOwnership.wallet_id.in_(list(wallet_ids)),
                ItemOwnership.quantity >= min_quantity,
            )
            .order_by(ItemOwnership.quantity.desc())
        )
        return (await self.session.execute(stmt)).scalars().first()

    async def get_ownership(self, *, item_id: int, wallet_id: int) -> ItemOwnership | None:
        stmt = select(ItemOwnership).where(
            ItemOwnership.item_id == item_id,
            ItemOwnership.wallet_id == wallet_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def create_ownership(self, *, item_id: int, wallet_id: int, quantity: int) -> ItemOwnership:
        row = ItemOwnership(item_id=item_id, wallet_id=wallet_id, quantity=quantity)
        self.session.add(row)
        await self.session.flush()
        return row

    async def record_item_transaction(self, **values) -> ItemTransaction:
        row = ItemTransaction(**values)
        self.session.add(row)
        await self.session.flush()
        return row
