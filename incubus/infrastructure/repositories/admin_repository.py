from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.db.models.blockchain import Transaction
from incubus.infrastructure.db.models.catalog import Game, Publisher
from incubus.infrastructure.db.models.marketplace import MarketplaceListing
from incubus.infrastructure.db.models.staff import Player
from incubus.infrastructure.repositories.base import BaseRepository, bucket_start

SALE_TYPES = ("GAME_PURCHASE", "ITEM_PURCHASE")


class AdminRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_dashboard_counts(self, *, day_start: datetime) -> dict[str, int]:
        return {
            "total_users": await self.count_rows(User),
            "banned_users": await self.count_rows(User, User.banned == True),  # noqa: E712
            "total_players": await self.count_rows(Player),
            "total_games": await self.count_rows(Game),
            "total_publishers": await self.count_rows(Publisher),
            "active_listings": await self.count_rows(
                MarketplaceListing,
                MarketplaceListing.status == "ACTIVE",
            ),
            "transactions_today": await self.count_rows(
                Transaction,
                Transaction.created_at >= day_start,
            ),
        }

    async def daily_counts(
        self,
        *,
        series: str,
        start: datetime,
        end: datetime,
    ) -> dict[date, float]:
        """Per-day totals for one analytics series between ``start`` and ``end``."""
        if series == "users":
            column = User.created_at
            value = func.count(User.id)
            conditions = []
        elif series == "games":
            column = Game.created_at
            value = func.count(Game.id)
            conditions = []
        elif series == "sales":
            column = Transaction.created_at
            value = func.coalesce(func.sum(Transaction.amount), 0)
            conditions = [Transaction.type.in_(SALE_TYPES), Transaction.status == "CONFIRMED"]
        else:
            raise ValueError(f"Unknown analytics series: {series}")

        day = self.truncate_time(column, "day")
        stmt = (
            select(day.label("day"), value.label("value"))
            .where(column >= start, column <= end, *conditions)
            .group_by(day)
            .order_by(day)
        )
        rows = (await self.session.execute(stmt)).all()
        totals: dict[date, float] = {}
        for row_day, row_value in rows:
            totals[bucket_start(row_day).date()] = float(row_value or 0)
        return totals
