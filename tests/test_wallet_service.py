from decimal import Decimal

import pytest
from conftest import make_principal

from incubus.application.services import blockchain_service
from incubus.application.services.blockchain_service import BlockchainService, WalletService
from incubus.core.database import get_session
from incubus.core.errors import ApiException
from incubus.infrastructure.chain.rpc_client import ChainRpcError
from incubus.infrastructure.db.models import Transaction, User

pytestmark = pytest.mark.usefixtures("database")


async def _owner():
    async with get_session() as session:
        owner = User(email="nyx@example.com", name="Nyx")
        stranger = User(email="vex@example.com", name="Vex")
        session.add_all([owner, stranger])
        await session.flush()
        return make_principal(owner.id), make_principal(stranger.id)


async def _chain(name: str, chain_id: int, *, is_default: bool = False) -> dict:
    return await BlockchainService().create_blockchain(
        {
            "name": name,
            "chain_id": chain_id,
            "rpc_url": f"https://rpc.{name.lower()}.example",
            "currency_symbol": "ETH",
            "is_default": is_default,
        }
    )


async def _wallet(principal, chain: dict, address: str, *, is_default: bool = False) -> dict:
    return await WalletService().create_wallet(
        principal,
        blockchain_id=chain["id"],
        address=address,
        label=None,
        is_default=is_default,
    )


async def _defaults(principal) -> set[str]:
    wallets = await WalletService().list_wallets(principal, blockchain_id=None)
    return {wallet["address"] for wallet in wallets if wallet["is_default"]}


def _fake_balance(monkeypatch, *, balance: Decimal | None = None, error: str | None = None) -> list[str]:
    calls: list[str] = []

    async def get_balance(self, address):
        calls.append(address)
        if error:
            raise ChainRpcError(error)
        return balance

    monkeypatch.setattr(blockchain_service.JsonRpcClient, "get_balance", get_balance)
    return calls


async def test_default_blockchain_is_unique():
    service = BlockchainService()
    mainnet = await _chain("Mainnet", 1, is_default=True)
    sepolia = await _chain("Sepolia", 11155111, is_default=True)

    chains = {row["name"]: row["is_default"] for row in await service.list_blockchains(is_active=None)}
    assert chains == {"Mainnet": False, "Sepolia": True}

    await service.update_blockchain(mainnet["id"], {"is_default": True})
    assert (await service.get_blockchain(sepolia["id"]))["is_default"] is False
    assert (await service.get_blockchain(mainnet["id"]))["is_default"] is True


async def test_default_wallet_is_unique_per_chain():
    owner, _ = await _owner()
    mainnet = await _chain("Mainnet", 1)
    sepolia = await _chain("Sepolia", 11155111)

    first = await _wallet(owner, mainnet, "0xaaa")
    assert first["is_default"] is True
    second = await _wallet(owner, mainnet, "0xbbb")
    assert second["is_default"] is False
    await _wallet(owner, sepolia, "0xccc")
    await _wallet(owner, mainnet, "0xddd", is_default=True)
    assert await _defaults(owner) == {"0xccc", "0xddd"}

    await WalletService().update_wallet(owner, wallet_id=second["id"], values={"is_default": True})
    assert await _defaults(owner) == {"0xbbb", "0xccc"}


async def test_sync_honours_cooldown_unless_forced(monkeypatch):
    owner, stranger = await _owner()
    wallet = await _wallet(owner, await _chain("Mainnet", 1), "0xaaa")
    calls = _fake_balance(monkeypatch, balance=Decimal("1.25"))
    service = WalletService()

    synced = await service.sync_wallet(owner, wallet_id=wallet["id"])
    assert synced["synced"] is True
    assert synced["new_balance"] == Decimal("1.25")
    assert synced["change"] == Decimal("1.25")

    skipped = await service.sync_wallet(owner, wallet_id=wallet["id"])
    assert skipped["synced"] is False
    assert skipped["next_sync_available"] > skipped["last_synced"]
    assert calls == ["0xaaa"]

    forced = await service.sync_wallet(owner, wallet_id=wallet["id"], force_sync=True)
    assert forced["synced"] is True
    assert forced["change"] == Decimal("0")
    assert len(calls) == 2

    with pytest.raises(ApiException) as exc:
        await service.sync_wallet(stranger, wallet_id=wallet["id"])
    assert exc.value.status_code == 403


async def test_sync_reports_rpc_failure_as_bad_gateway(monkeypatch):
    owner, _ = await _owner()
    wallet = await _wallet(owner, await _chain("Mainnet", 1), "0xaaa")
    _fake_balance(monkeypatch, error="connection refused")

    with pytest.raises(ApiException) as exc:
        await WalletService().sync_wallet(owner, wallet_id=wallet["id"])
    assert exc.value.status_code == 502
    assert exc.value.error_code == "RPC_ERROR"
    assert exc.value.details == {"chain": "Mainnet"}

    stored = await WalletService().get_wallet(owner, wallet["id"])
    assert stored["last_synced"] is None


async def test_wallet_with_transactions_cannot_be_deleted():
    owner, stranger = await _owner()
    mainnet = await _chain("Mainnet", 1)
    used = await _wallet(owner, mainnet, "0xaaa")
    spare = await _wallet(owner, mainnet, "0xbbb")
    async with get_session() as session:
        session.add(
            Transaction(
                hash="0xfeed",
                blockchain_id=mainnet["id"],
                from_wallet_id=used["id"],
                type="GAME_PURCHASE",
                status="CONFIRMED",
                amount=Decimal("5"),
            )
        )
    service = WalletService()

    with pytest.raises(ApiException) as exc:
        await service.delete_wallet(owner, used["id"])
    assert exc.value.status_code == 400
    assert exc.value.error_code == "WALLET_IN_USE"
    assert exc.value.details == {"transactions": 1, "licenses": 0, "items": 0}

    with pytest.raises(ApiException) as foreign:
        await service.delete_wallet(stranger, spare["id"])
    assert foreign.value.status_code == 403

    await service.delete_wallet(owner, spare["id"])
    remaining = await service.list_wallets(owner, blockchain_id=None)
    assert [row["address"] for row in remaining] == ["0xaaa"]
