from __future__ import annotations

from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.infrastructure.db.models.catalog import Bundle, BundleGame, Game
from incubus.infrastructure.repositories.base import BaseRepository


class BundleRepository(BaseRepository[Bundle]):
    model = Bundle

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_bundles(
        self,
        *,
        search: str | None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[Bundle], int]:
        stmt = select(Bundle)
        pattern = self.search_pattern(search)
        if pattern:
            stmt = stmt.where(Bundle.title.ilike(pattern))
        stmt = stmt.order_by(Bundle.created_at.desc(), Bundle.id.desc())
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def get_by_title(self, title: str) -> Bundle | None:
        stmt = select(Bundle).where(func.lower(Bundle.title) == title.strip().lower())
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_games(self, bundle_id: int) -> Sequence[Game]:
        stmt = (
            select(Game)
            .join(BundleGame, BundleGame.game_id == Game.id)
            .where(BundleGame.bundle_id == bundle_id)
            .order_by(Game.title.asc())
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def replace_games(self, *, bundle_id: int, game_ids: Sequence[int]) -> None:
        await self.session.execute(delete(BundleGame).where(BundleGame.bundle_id == bundle_id))
        for game_id in set(game_ids):
            self.session.add(BundleGame(bundle_id=bundle_id, game_id=game_id))
        await self.session.flush()

    async def publisher_ids_for_games(self, game_ids: Sequence[int]) -> set[int]:
        if not game_ids:
            return set()
        stmt = select(Game.publisher_id).where(Game.id.in_(set(game_ids))).distinct()
        return {int(value) for value in (await self.session.execute(stmt)).scalars().all()}
