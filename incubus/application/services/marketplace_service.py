from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.audit_service import AuditService
from incubus.application.services.blockchain_service import transaction_to_dict
from incubus.application.services.notification_service import NotificationService
from incubus.core.config import get_settings
from incubus.core.database import get_session
from incubus.core.errors import ApiException, bad_request, conflict, forbidden, not_found
from incubus.core.metrics import metrics_registry
from incubus.core.security import as_utc, utc_now
from incubus.domain.pagination import PageParams, SortSpec
from incubus.domain.policies.marketplace import (
    ListingStatus,
    ListingType,
    MarketplacePolicy,
    TransactionStatus,
)
from incubus.infrastructure.db.models.blockchain import Wallet
from incubus.infrastructure.db.models.marketplace import MarketplaceListing
from incubus.infrastructure.repositories.blockchain_repository import WalletRepository
from incubus.infrastructure.repositories.game_repository import GameRepository
from incubus.infrastructure.repositories.marketplace_repository import (
    ListingFilters,
    MarketplaceRepository,
)

logger = logging.getLogger(__name__)

SELLER_UPDATABLE_FIELDS = frozenset({"price", "quantity", "description", "status", "expires_at"})

PURCHASE_BLOCKER_MESSAGES = {
    "LISTING_NOT_ACTIVE": "Listing is not active",
    "LISTING_EXPIRED": "Listing has expired",
    "CANNOT_BUY_OWN_LISTING": "You cannot purchase your own listing",
    "INSUFFICIENT_BALANCE": "Wallet balance is too low for this purchase",
}


def listing_to_dict(listing: MarketplaceListing, seller=None, game=None, item=None) -> dict:
    return {
        "id": listing.id,
        "type": listing.type,
        "status": listing.status,
        "seller_id": listing.seller_id,
        "seller_name": seller.name if seller is not None else None,
        "seller_wallet_id": listing.seller_wallet_id,
        "game_id": listing.game_id,
        "game_title": game.title if game is not None else None,
        "item_id": listing.item_id,
        "item_name": item.name if item is not None else None,
        "item_rarity": item.rarity if item is not None else None,
        "price": listing.price,
        "quantity": listing.quantity,
        "description": listing.description,
        "expires_at": listing.expires_at,
        "buyer_id": listing.buyer_id,
        "sold_at": listing.sold_at,
        "created_at": listing.created_at,
        "updated_at": listing.updated_at,
    }


class MarketplaceService:
    def __init__(self, notification_service: NotificationService | None = None):
        self.notification_service = notification_service or NotificationService()

    async def list_listings(
        self,
        *,
        filters: ListingFilters,
        params: PageParams,
        sort: SortSpec,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await MarketplaceRepository(session).list_listings(
                filters=filters,
                sort=sort,
                limit=params.limit,
                offset=params.offset,
            )
            return [listing_to_dict(*row) for row in rows], total

    async def get_listing(self, listing_id: int) -> dict:
        async with get_session() as session:
            row = await MarketplaceRepository(session).get_detail(listing_id)
            if row is None:
                raise not_found("Listing")
            return listing_to_dict(*row)

    async def create_listing(
        self,
        principal: AuthenticatedPrincipal,
        *,
        listing_type: str,
        price: Decimal,
        quantity: int = 1,
        game_id: int | None = None,
        item_id: int | None = None,
        description: str | None = None,
        status: str = ListingStatus.ACTIVE.value,
        expires_at: datetime | None = None,
    ) -> dict:
        settings = get_settings()
        if listing_type == ListingType.BUNDLE:
            raise bad_request("UNSUPPORTED_LISTING_TYPE", "Bundle listings are not yet supported")
        if expires_at is None and settings.INCUBUS_LISTING_DEFAULT_EXPIRY_DAYS > 0:
            expires_at = utc_now() + timedelta(days=settings.INCUBUS_LISTING_DEFAULT_EXPIRY_DAYS)

        async with get_session() as session:
            wallet_repo = WalletRepository(session)
            game_repo = GameRepository(session)
            wallet_ids = await wallet_repo.wallet_ids_for_user(principal.user_id)
            if listing_type == ListingType.GAME_LICENSE:
                if game_id is None:
                    raise bad_request("GAME_ID_REQUIRED", "game_id is required for license listings")
                if await game_repo.get_by_id(game_id) is None:
                    raise not_found("Game")
                license_row = await wallet_repo.find_active_license(game_id=game_id, wallet_ids=wallet_ids)
                if license_row is None:
                    raise forbidden("You do not own a license for this game")
                seller_wallet_id = license_row.wallet_id
                item_id = None
                quantity = 1
            else:
                if item_id is None:
                    raise bad_request("ITEM_ID_REQUIRED", "item_id is required for item listings")
                item = await game_repo.get_item(item_id)
                if item is None:
                    raise not_found("Game item", "ITEM_NOT_FOUND")
                ownership = await wallet_repo.find_ownership(
                    item_id=item_id,
                    wallet_ids=wallet_ids,
                    min_quantity=quantity,
                )
                if ownership is None:
                    raise forbidden("You do not own enough of this item", quantity=quantity)
                seller_wallet_id = ownership.wallet_id
                game_id = item.game_id

            listing = await MarketplaceRepository(session).create(
                seller_id=principal.user_id,
                type=listing_type,
                status=status,
                game_id=game_id,
                item_id=item_id,
                seller_wallet_id=seller_wallet_id,
                price=price,
                quantity=quantity,
                description=description,
                expires_at=expires_at,
            )
            logger.info(
                "Listing created id=%s type=%s seller_id=%s price=%s",
                listing.id,
                listing.type,
                principal.user_id,
                listing.price,
            )
            return listing_to_dict(*await MarketplaceRepository(session).get_detail(listing.id))

    async def update_listing(
        self,
        principal: AuthenticatedPrincipal,
        *,
        listing_id: int,
        values: dict[str, Any],
    ) -> dict:
        blocked = sorted(set(values) - SELLER_UPDATABLE_FIELDS)
        if blocked:
            raise bad_request("FIELDS_NOT_EDITABLE", "These fields cannot be changed", fields=blocked)
        if "status" in values and values["status"] not in MarketplacePolicy.SELLER_EDITABLE_STATUSES:
            raise bad_request("INVALID_STATUS", "Listing status cannot be set to this value")
        async with get_session() as session:
            repo = MarketplaceRepository(session)
            listing = await repo.get_for_update(listing_id)
            if listing is None:
                raise not_found("Listing")
            if listing.seller_id != principal.user_id:
                raise forbidden("Only the seller can update this listing")
            if listing.status not in MarketplacePolicy.SELLER_EDITABLE_STATUSES:
                raise bad_request(
                    "LISTING_NOT_EDITABLE",
                    "Listing can no longer be changed",
                    status=listing.status,
                )
            if listing.type == ListingType.GAME_LICENSE:
                values.pop("quantity", None)
            elif values.get("quantity") and values["quantity"] != listing.quantity:
                wallet_repo = WalletRepository(session)
                ownership = await wallet_repo.find_ownership(
                    item_id=listing.item_id,
                    wallet_ids=await wallet_repo.wallet_ids_for_user(principal.user_id),
                    min_quantity=values["quantity"],
                )
                if ownership is None:
                    raise forbidden("You do not own enough of this item", quantity=values["quantity"])
            await repo.update(listing, **values)
            return listing_to_dict(*await repo.get_detail(listing.id))

    async def delete_listing(self, principal: AuthenticatedPrincipal, *, listing_id: int) -> None:
        async with get_session() as session:
            repo = MarketplaceRepository(session)
            listing = await repo.get_by_id(listing_id)
            if listing is None:
                raise not_found("Listing")
            if listing.seller_id != principal.user_id and not principal.is_admin:
                raise forbidden("Only the seller or an administrator can delete this listing")
            await repo.delete(listing_id)

    async def purchase(
        self,
        principal: AuthenticatedPrincipal,
        *,
        listing_id: int,
        wallet_id: int,
    ) -> dict:
        listing_type = "unknown"
        try:
            result, listing_type = await self._purchase(principal, listing_id=listing_id, wallet_id=wallet_id)
        except ApiException as exc:
            metrics_registry.record_purchase(listing_type=listing_type, result=exc.error_code.lower())
            raise
        metrics_registry.record_purchase(listing_type=listing_type, result="ok")
        return result

    async def _purchase(
        self,
        principal: AuthenticatedPrincipal,
        *,
        listing_id: int,
        wallet_id: int,
    ) -> tuple[dict, str]:
        settings = get_settings()
        now = utc_now()
        expired_type: str | None = None
        async with get_session() as session:
            repo = MarketplaceRepository(session)
            wallet_repo = WalletRepository(session)
            listing = await repo.get_for_update(listing_id)
            if listing is None:
                raise not_found("Listing")
            buyer_wallet = await wallet_repo.get_by_id(wallet_id)
            if buyer_wallet is None:
                raise not_found("Wallet")
            seller_wallet = await wallet_repo.get_default(
                user_id=listing.seller_id,
                blockchain_id=buyer_wallet.blockchain_id,
            )
            await wallet_repo.lock_in_order([buyer_wallet.id, seller_wallet.id if seller_wallet else None])

            blockers = MarketplacePolicy.purchase_blockers(
                status=listing.status,
                expires_at=as_utc(listing.expires_at),
                seller_id=listing.seller_id,
                buyer_id=principal.user_id,
                price=listing.price,
                buyer_balance=buyer_wallet.balance,
                now=now,
            )
            if "LISTING_EXPIRED" in blockers:
                await repo.update(listing, status=ListingStatus.EXPIRED.value)
                expired_type = listing.type
            else:
                for code in ("LISTING_NOT_ACTIVE", "CANNOT_BUY_OWN_LISTING"):
                    if code in blockers:
                        raise bad_request(code, PURCHASE_BLOCKER_MESSAGES[code])
                if buyer_wallet.user_id != principal.user_id:
                    raise forbidden("This wallet does not belong to you")
                if "INSUFFICIENT_BALANCE" in blockers:
                    raise bad_request(
                        "INSUFFICIENT_BALANCE",
                        PURCHASE_BLOCKER_MESSAGES["INSUFFICIENT_BALANCE"],
                        balance=str(buyer_wallet.balance),
                        price=str(listing.price),
                    )
                result = await self._settle(
                    session,
                    principal,
                    listing=listing,
                    buyer_wallet=buyer_wallet,
                    seller_wallet=seller_wallet,
                    fee_bps=settings.INCUBUS_MARKETPLACE_FEE_BPS,
                    now=now,
                )
                return result, listing.type
        raise bad_request(
            "LISTING_EXPIRED",
            PURCHASE_BLOCKER_MESSAGES["LISTING_EXPIRED"],
            listing_type=expired_type,
        )

    async def _settle(
        self,
        session: AsyncSession,
        principal: AuthenticatedPrincipal,
        *,
        listing: MarketplaceListing,
        buyer_wallet: Wallet,
        seller_wallet: Wallet | None,
        fee_bps: int,
        now: datetime,
    ) -> dict:
        """Move funds and the asset for an ACTIVE listing inside the caller's transaction."""
        wallet_repo = WalletRepository(session)
        split = MarketplacePolicy.split_price(listing.price, fee_bps)
        transaction_type = MarketplacePolicy.transaction_type_for(listing.type)

        if seller_wallet is None:
            raise bad_request(
                "SELLER_WALLET_MISSING",
                "Seller has no default wallet on this blockchain",
            )
        seller_wallet_ids = await wallet_repo.wallet_ids_for_user(listing.seller_id)

        # Asset preconditions are checked before any balance moves.
        if listing.type == ListingType.GAME_LICENSE:
            if await wallet_repo.find_active_license(
                game_id=listing.game_id,
                wallet_ids=await wallet_repo.wallet_ids_for_user(principal.user_id),
            ):
                raise conflict("LICENSE_ALREADY_OWNED", "You already own a license for this game")
            seller_license = await wallet_repo.find_active_license(
                game_id=listing.game_id,
                wallet_ids=seller_wallet_ids,
            )
            if seller_license is None:
                raise bad_request("SELLER_ASSET_MISSING", "Seller no longer holds this license")
        else:
            seller_ownership = await wallet_repo.find_ownership(
                item_id=listing.item_id,
                wallet_ids=seller_wallet_ids,
                min_quantity=listing.quantity,
            )
            if seller_ownership is None:
                raise bad_request("SELLER_ASSET_MISSING", "Seller no longer holds enough of this item")

        tx = await wallet_repo.create_transaction(
            hash=f"tx-{uuid.uuid4()}",
            blockchain_id=buyer_wallet.blockchain_id,
            from_wallet_id=buyer_wallet.id,
            to_wallet_id=seller_wallet.id,
            type=transaction_type.value,
            status=TransactionStatus.CONFIRMED.value,
            amount=split.price,
            fee=split.fee,
            data_json={
                "listing_id": listing.id,
                "seller_amount": str(split.seller_amount),
                "fee_bps": fee_bps,
            },
            confirmed_at=now,
        )
        await wallet_repo.update(buyer_wallet, balance=buyer_wallet.balance - split.price)
        await wallet_repo.update(seller_wallet, balance=seller_wallet.balance + split.seller_amount)

        asset: dict[str, Any]
        if listing.type == ListingType.GAME_LICENSE:
            await wallet_repo.update(seller_license, is_active=False)
            buyer_license = await wallet_repo.get_license(
                game_id=listing.game_id,
                wallet_id=buyer_wallet.id,
            )
            if buyer_license is None:
                buyer_license = await wallet_repo.create_license(
                    game_id=listing.game_id,
                    wallet_id=buyer_wallet.id,
                )
            else:
                await wallet_repo.update(buyer_license, is_active=True, acquired_at=now)
            await wallet_repo.record_license_transaction(
                license_id=buyer_license.id,
                transaction_id=tx.id,
                type="PURCHASE",
                price=split.price,
            )
            asset = {
                "license": {
                    "id": buyer_license.id,
                    "game_id": buyer_license.game_id,
                    "wallet_id": buyer_license.wallet_id,
                    "is_active": buyer_license.is_active,
                }
            }
        else:
            await wallet_repo.update(
                seller_ownership,
                quantity=seller_ownership.quantity - listing.quantity,
            )
            buyer_ownership = await wallet_repo.get_ownership(
                item_id=listing.item_id,
                wallet_id=buyer_wallet.id,
            )
            if buyer_ownership is None:
                buyer_ownership = await wallet_repo.create_ownership(
                    item_id=listing.item_id,
                    wallet_id=buyer_wallet.id,
                    quantity=listing.quantity,
                )
            else:
                await wallet_repo.update(
                    buyer_ownership,
                    quantity=buyer_ownership.quantity + listing.quantity,
                )
            await wallet_repo.record_item_transaction(
                item_id=listing.item_id,
                ownership_id=buyer_ownership.id,
                transaction_id=tx.id,
                type="PURCHASE",
                quantity=listing.quantity,
                price=split.price,
            )
            asset = {
                "item_ownership": {
                    "id": buyer_ownership.id,
                    "item_id": buyer_ownership.item_id,
                    "wallet_id": buyer_ownership.wallet_id,
                    "quantity": buyer_ownership.quantity,
                }
            }

        await MarketplaceRepository(session).update(
            listing,
            status=ListingStatus.SOLD.value,
            buyer_id=principal.user_id,
            sold_at=now,
        )
        await AuditService.record_in_session(
            session,
            action="listing.purchase",
            entity_type="listing",
            entity_id=listing.id,
            user_id=principal.user_id,
            details={
                "transaction_hash": tx.hash,
                "price": str(split.price),
                "fee": str(split.fee),
                "seller_id": listing.seller_id,
            },
        )
        await self.notification_service.notify(
            session,
            user_ids=[principal.user_id],
            sender_id=principal.user_id,
            event_type="marketplace.purchase",
            category="marketplace",
            kind="success",
            title="Purchase complete",
            message=f"You paid {split.price} for listing #{listing.id}.",
            link=f"/wallets/{buyer_wallet.id}/transactions/{tx.id}",
            entity_type="listing",
            entity_id=listing.id,
            data={"transaction_hash": tx.hash},
        )
        await self.notification_service.notify(
            session,
            user_ids=[listing.seller_id],
            sender_id=principal.user_id,
            event_type="marketplace.sale",
            category="marketplace",
            kind="success",
            title="Listing sold",
            message=f"Listing #{listing.id} sold; {split.seller_amount} was credited to your wallet.",
            link=f"/marketplace/listings/{listing.id}",
            entity_type="listing",
            entity_id=listing.id,
            data={"transaction_hash": tx.hash},
        )
        logger.info(
            "Listing purchased id=%s buyer_id=%s seller_id=%s tx=%s",
            listing.id,
            principal.user_id,
            listing.seller_id,
            tx.hash,
        )
        return {
            "listing": listing_to_dict(listing),
            "transaction": transaction_to_dict(tx),
            **asset,
        }

    async def expire_listings(self) -> int:
        async with get_session() as session:
            return await MarketplaceRepository(session).expire_listings(now=utc_now())
