from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.core.config import get_settings
from incubus.core.database import get_session
from incubus.core.errors import ApiException, bad_request, conflict, forbidden, not_found
from incubus.core.metrics import metrics_registry
from incubus.core.security import as_utc, utc_now
from incubus.domain.pagination import PageParams
from incubus.infrastructure.chain.rpc_client import ChainRpcError, JsonRpcClient
from incubus.infrastructure.db.models.blockchain import Blockchain, Transaction, Wallet
from incubus.infrastructure.repositories.blockchain_repository import (
    BlockchainRepository,
    WalletRepository,
)

logger = logging.getLogger(__name__)


def blockchain_to_dict(chain: Blockchain) -> dict:
    return {
        "id": chain.id,
        "name": chain.name,
        "chain_id": chain.chain_id,
        "rpc_url": chain.rpc_url,
        "explorer_url": chain.explorer_url,
        "currency_symbol": chain.currency_symbol,
        "is_active": chain.is_active,
        "is_default": chain.is_default,
        "created_at": chain.created_at,
        "updated_at": chain.updated_at,
    }


def wallet_to_dict(wallet: Wallet, chain: Blockchain | None = None) -> dict:
    return {
        "id": wallet.id,
        "user_id": wallet.user_id,
        "blockchain_id": wallet.blockchain_id,
        "blockchain_name": chain.name if chain is not None else None,
        "currency_symbol": chain.currency_symbol if chain is not None else None,
        "address": wallet.address,
        "label": wallet.label,
        "is_default": wallet.is_default,
        "balance": wallet.balance,
        "last_synced": wallet.last_synced,
        "created_at": wallet.created_at,
        "updated_at": wallet.updated_at,
    }


def transaction_to_dict(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "hash": tx.hash,
        "blockchain_id": tx.blockchain_id,
        "from_wallet_id": tx.from_wallet_id,
        "to_wallet_id": tx.to_wallet_id,
        "type": tx.type,
        "status": tx.status,
        "amount": tx.amount,
        "fee": tx.fee,
        "data": tx.data_json,
        "created_at": tx.created_at,
        "confirmed_at": tx.confirmed_at,
    }


class BlockchainService:
    async def list_blockchains(self, *, is_active: bool | None) -> list[dict]:
        async with get_session() as session:
            rows = await BlockchainRepository(session).list_blockchains(is_active=is_active)
            return [blockchain_to_dict(row) for row in rows]

    async def get_blockchain(self, blockchain_id: int) -> dict:
        async with get_session() as session:
            row = await BlockchainRepository(session).get_by_id(blockchain_id)
            if row is None:
                raise not_found("Blockchain")
            return blockchain_to_dict(row)

    async def create_blockchain(self, values: dict[str, Any]) -> dict:
        async with get_session() as session:
            repo = BlockchainRepository(session)
            await self._ensure_unique(repo, name=values["name"], chain_id=values["chain_id"])
            row = await repo.create(**values)
            if row.is_default:
                await repo.clear_default(except_id=row.id)
            logger.info("Blockchain created id=%s chain_id=%s", row.id, row.chain_id)
            return blockchain_to_dict(row)

    async def update_blockchain(self, blockchain_id: int, values: dict[str, Any]) -> dict:
        async with get_session() as session:
            repo = BlockchainRepository(session)
            row = await repo.get_by_id(blockchain_id)
            if row is None:
                raise not_found("Blockchain")
            await self._ensure_unique(
                repo,
                name=values.get("name"),
                chain_id=values.get("chain_id"),
                exclude_id=row.id,
            )
            await repo.update(row, **values)
            if values.get("is_default"):
                await repo.clear_default(except_id=row.id)
            return blockchain_to_dict(row)

    async def delete_blockchain(self, blockchain_id: int) -> None:
        async with get_session() as session:
            repo = BlockchainRepository(session)
            if await repo.get_by_id(blockchain_id) is None:
                raise not_found("Blockchain")
            wallets = await repo.wallet_count(blockchain_id)
            if wallets:
                raise bad_request(
                    "BLOCKCHAIN_IN_USE",
                    "Blockchain has wallets and cannot be deleted",
                    wallets=wallets,
                )
            await repo.delete(blockchain_id)

    @staticmethod
    async def _ensure_unique(
        repo: BlockchainRepository,
        *,
        name: str | None,
        chain_id: int | None,
        exclude_id: int | None = None,
    ) -> None:
        if name:
            existing = await repo.get_by_name(name)
            if existing is not None and existing.id != exclude_id:
                raise conflict("BLOCKCHAIN_ALREADY_EXISTS", "A blockchain with this name already exists")
        if chain_id is not None:
            existing = await repo.get_by_chain_id(chain_id)
            if existing is not None and existing.id != exclude_id:
                raise conflict("BLOCKCHAIN_ALREADY_EXISTS", "A blockchain with this chain id already exists")


class WalletService:
    async def list_wallets(
        self,
        principal: AuthenticatedPrincipal,
        *,
        blockchain_id: int | None,
    ) -> list[dict]:
        async with get_session() as session:
            rows = await WalletRepository(session).list_for_user(
                user_id=principal.user_id,
                blockchain_id=blockchain_id,
            )
            return [wallet_to_dict(wallet, chain) for wallet, chain in rows]

    async def create_wallet(
        self,
        principal: AuthenticatedPrincipal,
        *,
        blockchain_id: int,
        address: str,
        label: str | None,
        is_default: bool,
    ) -> dict:
        address = address.strip()
        async with get_session() as session:
            chain = await BlockchainRepository(session).get_by_id(blockchain_id)
            if chain is None or not chain.is_active:
                raise bad_request("INVALID_BLOCKCHAIN", "Blockchain does not exist or is not active")
            repo = WalletRepository(session)
            if await repo.find(user_id=principal.user_id, blockchain_id=chain.id, address=address):
                raise conflict("WALLET_ALREADY_EXISTS", "You already registered this wallet on this blockchain")
            first_on_chain = await repo.count_on_chain(
                user_id=principal.user_id,
                blockchain_id=chain.id,
            ) == 0
            wallet = await repo.create(
                user_id=principal.user_id,
                blockchain_id=chain.id,
                address=address,
                label=label,
                is_default=is_default or first_on_chain,
            )
            if wallet.is_default:
                await repo.clear_default(
                    user_id=principal.user_id,
                    blockchain_id=chain.id,
                    except_id=wallet.id,
                )
            logger.info("Wallet created id=%s user_id=%s chain=%s", wallet.id, principal.user_id, chain.name)
            return wallet_to_dict(wallet, chain)

    async def get_wallet(self, principal: AuthenticatedPrincipal, wallet_id: int) -> dict:
        async with get_session() as session:
            wallet = await self._owned_wallet(session, principal, wallet_id)
            chain = await BlockchainRepository(session).get_by_id(wallet.blockchain_id)
            return wallet_to_dict(wallet, chain)

    async def update_wallet(
        self,
        principal: AuthenticatedPrincipal,
        *,
        wallet_id: int,
        values: dict[str, Any],
    ) -> dict:
        async with get_session() as session:
            repo = WalletRepository(session)
            wallet = await self._owned_wallet(session, principal, wallet_id)
            await repo.update(wallet, **values)
            if values.get("is_default"):
                await repo.clear_default(
                    user_id=wallet.user_id,
                    blockchain_id=wallet.blockchain_id,
                    except_id=wallet.id,
                )
            chain = await BlockchainRepository(session).get_by_id(wallet.blockchain_id)
            return wallet_to_dict(wallet, chain)

    async def delete_wallet(self, principal: AuthenticatedPrincipal, wallet_id: int) -> None:
        async with get_session() as session:
            repo = WalletRepository(session)
            wallet = await self._owned_wallet(session, principal, wallet_id)
            counts = await repo.dependency_counts(wallet.id)
            if any(counts.values()):
                raise bad_request(
                    "WALLET_IN_USE",
                    "Wallet has transactions, licenses or items and cannot be deleted",
                    **counts,
                )
            await repo.delete(wallet.id)

    async def sync_wallet(
        self,
        principal: AuthenticatedPrincipal,
        *,
        wallet_id: int,
        force_sync: bool = False,
    ) -> dict:
        """Refresh the wallet balance from the chain's JSON-RPC endpoint.

        Within the cooldown window the stored wallet is returned with
        ``synced=False`` unless ``force_sync`` is set.
        """
        settings = get_settings()
        cooldown = timedelta(seconds=settings.INCUBUS_WALLET_SYNC_COOLDOWN_SECONDS)
        async with get_session() as session:
            wallet = await self._owned_wallet(session, principal, wallet_id)
            chain = await BlockchainRepository(session).get_by_id(wallet.blockchain_id)
            if not chain.is_active:
                raise bad_request("BLOCKCHAIN_INACTIVE", "The blockchain for this wallet is not active")
            last_synced = as_utc(wallet.last_synced)
            if last_synced is not None and not force_sync and utc_now() < last_synced + cooldown:
                metrics_registry.record_wallet_sync(result="skipped")
                return {
                    "wallet": wallet_to_dict(wallet, chain),
                    "synced": False,
                    "message": "Wallet was synced recently. Use force_sync to sync again.",
                    "last_synced": last_synced,
                    "next_sync_available": last_synced + cooldown,
                }
            address = wallet.address
            rpc_url = chain.rpc_url
            chain_label = chain.name

        client = JsonRpcClient(
            rpc_url=rpc_url,
            chain_label=chain_label,
            timeout_seconds=settings.INCUBUS_RPC_TIMEOUT_SECONDS,
        )
        try:
            balance = await client.get_balance(address)
        except ChainRpcError as exc:
            metrics_registry.record_wallet_sync(result="error")
            logger.warning("Wallet sync failed wallet_id=%s chain=%s: %s", wallet_id, chain_label, exc)
            raise ApiException(
                status_code=502,
                error_code="RPC_ERROR",
                message="Failed to fetch the wallet balance from the blockchain",
                details={"chain": chain_label},
            ) from exc

        async with get_session() as session:
            repo = WalletRepository(session)
            wallet = await repo.get_for_update(wallet_id)
            if wallet is None:
                raise not_found("Wallet")
            previous = wallet.balance
            synced_at: datetime = utc_now()
            await repo.update(wallet, balance=balance, last_synced=synced_at)
            chain = await BlockchainRepository(session).get_by_id(wallet.blockchain_id)
            metrics_registry.record_wallet_sync(result="ok")
            return {
                "wallet": wallet_to_dict(wallet, chain),
                "synced": True,
                "message": "Wallet balance synced successfully",
                "previous_balance": previous,
                "new_balance": balance,
                "change": balance - previous,
            }

    async def list_transactions(
        self,
        principal: AuthenticatedPrincipal,
        *,
        wallet_id: int,
        params: PageParams,
        tx_type: str | None = None,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            await self._owned_wallet(session, principal, wallet_id)
            rows, total = await WalletRepository(session).list_transactions(
                wallet_id=wallet_id,
                tx_type=tx_type,
                status=status,
                start_date=start_date,
                end_date=end_date,
                limit=params.limit,
                offset=params.offset,
            )
            return [transaction_to_dict(row) for row in rows], total

    async def get_transaction(
        self,
        principal: AuthenticatedPrincipal,
        *,
        wallet_id: int,
        transaction_id: int,
    ) -> dict:
        async with get_session() as session:
            await self._owned_wallet(session, principal, wallet_id)
            tx = await WalletRepository(session).get_transaction(transaction_id)
            if tx is None or wallet_id not in (tx.from_wallet_id, tx.to_wallet_id):
                raise not_found("Transaction")
            return transaction_to_dict(tx)

    @staticmethod
    async def _owned_wallet(session, principal: AuthenticatedPrincipal, wallet_id: int) -> Wallet:
        wallet = await WalletRepository(session).get_by_id(wallet_id)
        if wallet is None:
            raise not_found("Wallet")
        if wallet.user_id != principal.user_id:
            raise forbidden("You do not have access to this wallet")
        return wallet
