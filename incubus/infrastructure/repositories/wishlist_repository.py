from __future__ import annotations

from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.infrastructure.db.models.catalog import Game, WishlistItem


class WishlistRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_entries(self, user_id: int) -> Sequence[tuple[WishlistItem, Game]]:
        stmt = (
            select(WishlistItem, Game)
            .join(Game, Game.id == WishlistItem.game_id)
            .where(WishlistItem.user_id == user_id)
            .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        )
        return (await self.session.execute(stmt)).all()

    async def game_ids(self, user_id: int) -> set[int]:
        stmt = select(WishlistItem.game_id).where(WishlistItem.user_id == user_id)
        return {int(value) for value in (await self.session.execute(stmt)).scalars().all()}

    async def add(self, *, user_id: int, game_id: int) -> bool:
        stmt = select(WishlistItem.id).where(
            WishlistItem.user_id == user_id,
            WishlistItem.game_id == game_id,
        )
        if (await self.session.execute(stmt)).scalar_one_or_none() is not None:
            return False
        self.session.add(WishlistItem(user_id=user_id, game_id=game_id))
        await self.session.flush()
        return True

    async def remove(self, *, user_id: int, game_ids: Sequence[int] | None = None) -> int:
        """Delete the given games from the wishlist, or every entry when ``game_ids`` is None."""
        stmt = delete(WishlistItem).where(WishlistItem.user_id == user_id)
        if game_ids is not None:
            if not game_ids:
                return 0
            stmt = stmt.where(WishlistItem.game_id.in_(set(game_ids)))
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)
