from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.domain.pagination import SortSpec
from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.db.models.catalog import Game, GameItem
from incubus.infrastructure.db.models.marketplace import MarketplaceListing
from incubus.infrastructure.repositories.base import BaseRepository


@dataclass(frozen=True)
class ListingFilters:
    status: str | None = "ACTIVE"
    listing_type: str | None = None
    seller_id: int | None = None
    game_id: int | None = None
    item_id: int | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    search: str | None = None


class MarketplaceRepository(BaseRepository[MarketplaceListing]):
    model = MarketplaceListing

    SORT_COLUMNS = {
        "price": MarketplaceListing.price,
        "createdAt": MarketplaceListing.created_at,
        "updatedAt": MarketplaceListing.updated_at,
    }

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    def _detail_select(self):
        return (
            select(MarketplaceListing, User, Game, GameItem)
            .join(User, User.id == MarketplaceListing.seller_id)
            .outerjoin(Game, Game.id == MarketplaceListing.game_id)
            .outerjoin(GameItem, GameItem.id == MarketplaceListing.item_id)
        )

    async def list_listings(
        self,
        *,
        filters: ListingFilters,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[tuple[MarketplaceListing, User, Game | None, GameItem | None]], int]:
        stmt = self._detail_select()
        if filters.status:
            stmt = stmt.where(MarketplaceListing.status == filters.status)
        if filters.listing_type:
            stmt = stmt.where(MarketplaceListing.type == filters.listing_type)
        if filters.seller_id is not None:
            stmt = stmt.where(MarketplaceListing.seller_id == filters.seller_id)
        if filters.game_id is not None:
            stmt = stmt.where(MarketplaceListing.game_id == filters.game_id)
        if filters.item_id is not None:
            stmt = stmt.where(MarketplaceListing.item_id == filters.item_id)
        if filters.min_price is not None:
            stmt = stmt.where(MarketplaceListing.price >= filters.min_price)
        if filters.max_price is not None:
            stmt = stmt.where(MarketplaceListing.price <= filters.max_price)
        pattern = self.search_pattern(filters.search)
        if pattern:
            stmt = stmt.where(or_(Game.title.ilike(pattern), GameItem.name.ilike(pattern)))
        stmt = self.apply_sort(stmt, sort, self.SORT_COLUMNS)
        return await self.fetch_page(stmt, limit=limit, offset=offset, scalars=False)

    async def get_detail(
        self,
        listing_id: int,
    ) -> tuple[MarketplaceListing, User, Game | None, GameItem | None] | None:
        stmt = self._detail_select().where(MarketplaceListing.id == listing_id)
        return (await self.session.execute(stmt)).first()

    async def get_for_update(self, listing_id: int) -> MarketplaceListing | None:
        stmt = (
            select(MarketplaceListing)
            .where(MarketplaceListing.id == listing_id)
            .with_for_update()
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def expire_listings(self, *, now: datetime) -> int:
        stmt = (
            update(MarketplaceListing)
            .where(
                MarketplaceListing.status == "ACTIVE",
                MarketplaceListing.expires_at.is_not(None),
                MarketplaceListing.expires_at <= now,
            )
            .values(status="EXPIRED")
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)
