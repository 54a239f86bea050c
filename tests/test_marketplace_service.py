from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from conftest import make_principal
from sqlalchemy import event, select

from incubus.application.services.maintenance_service import MaintenanceService
from incubus.application.services.marketplace_service import MarketplaceService
from incubus.application.services.wishlist_service import WishlistService
from incubus.core.database import DatabaseManager, get_session
from incubus.core.errors import ApiException
from incubus.core.security import utc_now
from incubus.infrastructure.db.models import (
    Blockchain,
    Game,
    GameItem,
    GameLicense,
    InboxEntry,
    ItemOwnership,
    Publisher,
    User,
    Wallet,
)

pytestmark = pytest.mark.usefixtures("database")


async def _seed() -> SimpleNamespace:
    async with get_session() as session:
        seller = User(email="seller@example.com", name="Seller")
        buyer = User(email="buyer@example.com", name="Buyer")
        chain = Blockchain(
            name="Ethereum",
            chain_id=1,
            rpc_url="https://rpc.example.invalid",
            currency_symbol="ETH",
            is_default=True,
        )
        publisher = Publisher(name="Nightfall Studio", slug="nightfall-studio")
        session.add_all([seller, buyer, chain, publisher])
        await session.flush()

        game = Game(
            title="Hollow Crown",
            slug="hollow-crown",
            publisher_id=publisher.id,
            base_price=Decimal("20"),
        )
        session.add(game)
        await session.flush()

        item = GameItem(game_id=game.id, name="Ember Blade", rarity="EPIC")
        seller_wallet = Wallet(
            user_id=seller.id,
            blockchain_id=chain.id,
            address="0xseller",
            is_default=True,
            balance=Decimal("0"),
        )
        buyer_wallet = Wallet(
            user_id=buyer.id,
            blockchain_id=chain.id,
            address="0xbuyer",
            is_default=True,
            balance=Decimal("100"),
        )
        session.add_all([item, seller_wallet, buyer_wallet])
        await session.flush()

        session.add_all(
            [
                GameLicense(game_id=game.id, wallet_id=seller_wallet.id),
                ItemOwnership(item_id=item.id, wallet_id=seller_wallet.id, quantity=3),
            ]
        )
        return SimpleNamespace(
            seller=make_principal(seller.id),
            buyer=make_principal(buyer.id),
            game_id=game.id,
            item_id=item.id,
            seller_wallet_id=seller_wallet.id,
            buyer_wallet_id=buyer_wallet.id,
        )


async def _wallet_balance(wallet_id: int) -> Decimal:
    async with get_session() as session:
        return (await session.get(Wallet, wallet_id)).balance


async def test_license_purchase_moves_funds_and_license():
    world = await _seed()
    service = MarketplaceService()

    listing = await service.create_listing(
        world.seller,
        listing_type="GAME_LICENSE",
        price=Decimal("10"),
        game_id=world.game_id,
    )
    assert listing["seller_wallet_id"] == world.seller_wallet_id
    assert listing["game_title"] == "Hollow Crown"

    result = await service.purchase(
        world.buyer,
        listing_id=listing["id"],
        wallet_id=world.buyer_wallet_id,
    )

    assert result["listing"]["status"] == "SOLD"
    assert result["listing"]["buyer_id"] == world.buyer.user_id
    assert result["transaction"]["type"] == "GAME_PURCHASE"
    assert result["transaction"]["fee"] == Decimal("0.5")
    assert result["license"]["wallet_id"] == world.buyer_wallet_id
    assert await _wallet_balance(world.buyer_wallet_id) == Decimal("90")
    assert await _wallet_balance(world.seller_wallet_id) == Decimal("9.5")

    async with get_session() as session:
        licenses = {
            row.wallet_id: row.is_active
            for row in (await session.execute(select(GameLicense))).scalars()
        }
        recipients = {
            row.user_id
            for row in (await session.execute(select(InboxEntry))).scalars()
        }
    assert licenses == {world.seller_wallet_id: False, world.buyer_wallet_id: True}
    assert recipients == {world.seller.user_id, world.buyer.user_id}


async def test_item_purchase_transfers_quantity():
    world = await _seed()
    service = MarketplaceService()

    listing = await service.create_listing(
        world.seller,
        listing_type="GAME_ITEM",
        price=Decimal("4"),
        quantity=2,
        item_id=world.item_id,
    )
    assert listing["game_id"] == world.game_id
    assert listing["item_rarity"] == "EPIC"

    result = await service.purchase(
        world.buyer,
        listing_id=listing["id"],
        wallet_id=world.buyer_wallet_id,
    )

    assert result["item_ownership"]["quantity"] == 2
    async with get_session() as session:
        quantities = {
            row.wallet_id: row.quantity
            for row in (await session.execute(select(ItemOwnership))).scalars()
        }
    assert quantities == {world.seller_wallet_id: 1, world.buyer_wallet_id: 2}


async def test_cannot_list_unowned_items_or_bundles():
    world = await _seed()
    service = MarketplaceService()

    with pytest.raises(ApiException) as exc_info:
        await service.create_listing(
            world.buyer,
            listing_type="GAME_LICENSE",
            price=Decimal("10"),
            game_id=world.game_id,
        )
    assert exc_info.value.status_code == 403

    with pytest.raises(ApiException) as exc_info:
        await service.create_listing(
            world.seller,
            listing_type="GAME_ITEM",
            price=Decimal("1"),
            quantity=4,
            item_id=world.item_id,
        )
    assert exc_info.value.status_code == 403

    with pytest.raises(ApiException) as exc_info:
        await service.create_listing(world.seller, listing_type="BUNDLE", price=Decimal("1"))
    assert exc_info.value.error_code == "UNSUPPORTED_LISTING_TYPE"


async def test_purchase_blockers_leave_balances_untouched():
    world = await _seed()
    service = MarketplaceService()
    listing = await service.create_listing(
        world.seller,
        listing_type="GAME_LICENSE",
        price=Decimal("500"),
        game_id=world.game_id,
    )

    with pytest.raises(ApiException) as exc_info:
        await service.purchase(world.seller, listing_id=listing["id"], wallet_id=world.seller_wallet_id)
    assert exc_info.value.error_code == "CANNOT_BUY_OWN_LISTING"

    with pytest.raises(ApiException) as exc_info:
        await service.purchase(world.buyer, listing_id=listing["id"], wallet_id=world.seller_wallet_id)
    assert exc_info.value.status_code == 403

    with pytest.raises(ApiException) as exc_info:
        await service.purchase(world.buyer, listing_id=listing["id"], wallet_id=world.buyer_wallet_id)
    assert exc_info.value.error_code == "INSUFFICIENT_BALANCE"

    assert await _wallet_balance(world.buyer_wallet_id) == Decimal("100")
    assert (await service.get_listing(listing["id"]))["status"] == "ACTIVE"


async def test_purchase_locks_wallets_lowest_id_first():
    world = await _seed()
    service = MarketplaceService()
    listing = await service.create_listing(
        world.seller,
        listing_type="GAME_LICENSE",
        price=Decimal("10"),
        game_id=world.game_id,
    )
    locks: list[tuple] = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        if "FROM wallets" in statement and "wallets.id IN" in statement:
            assert "ORDER BY wallets.id ASC" in statement
            locks.append(tuple(parameters))

    engine = DatabaseManager._engine.sync_engine
    event.listen(engine, "before_cursor_execute", capture)
    try:
        await service.purchase(world.buyer, listing_id=listing["id"], wallet_id=world.buyer_wallet_id)
    finally:
        event.remove(engine, "before_cursor_execute", capture)

    assert locks == [tuple(sorted([world.buyer_wallet_id, world.seller_wallet_id]))]


async def test_expired_listing_is_marked_on_purchase_attempt():
    world = await _seed()
    service = MarketplaceService()
    listing = await service.create_listing(
        world.seller,
        listing_type="GAME_LICENSE",
        price=Decimal("10"),
        game_id=world.game_id,
        expires_at=utc_now() - timedelta(hours=1),
    )

    with pytest.raises(ApiException) as exc_info:
        await service.purchase(world.buyer, listing_id=listing["id"], wallet_id=world.buyer_wallet_id)

    assert exc_info.value.error_code == "LISTING_EXPIRED"
    assert (await service.get_listing(listing["id"]))["status"] == "EXPIRED"
    assert await _wallet_balance(world.buyer_wallet_id) == Decimal("100")


async def test_maintenance_expires_stale_listings():
    world = await _seed()
    service = MarketplaceService()
    stale = await service.create_listing(
        world.seller,
        listing_type="GAME_ITEM",
        price=Decimal("1"),
        item_id=world.item_id,
        expires_at=utc_now() - timedelta(minutes=5),
    )
    fresh = await service.create_listing(
        world.seller,
        listing_type="GAME_ITEM",
        price=Decimal("1"),
        item_id=world.item_id,
        expires_at=utc_now() + timedelta(days=2),
    )

    assert await MaintenanceService().expire_listings() == {"expired": 1}
    assert (await service.get_listing(stale["id"]))["status"] == "EXPIRED"
    assert (await service.get_listing(fresh["id"]))["status"] == "ACTIVE"


async def test_wishlist_add_is_idempotent_and_replace_checks_games():
    world = await _seed()
    service = WishlistService()
    user_id = world.buyer.user_id

    assert await service.add_game(user_id=user_id, game_id=world.game_id) is True
    assert await service.add_game(user_id=user_id, game_id=world.game_id) is False
    assert [row["game_id"] for row in await service.list_wishlist(user_id)] == [world.game_id]

    with pytest.raises(ApiException) as exc_info:
        await service.replace(user_id=user_id, game_ids=[world.game_id, 999])
    assert exc_info.value.details == {"ids": [999]}

    assert await service.replace(user_id=user_id, game_ids=[]) == []
    assert await service.list_wishlist(user_id) == []
