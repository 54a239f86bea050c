from __future__ import annotations

from typing import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.domain.pagination import SortSpec
from incubus.infrastructure.db.models.catalog import (
    Developer,
    Game,
    GameGenre,
    GameTag,
    Genre,
    Publisher,
    Tag,
)
from incubus.infrastructure.db.models.staff import PublisherStaff
from incubus.infrastructure.repositories.base import BaseRepository


class TaxonomyRepository(BaseRepository):
    """Name/slug catalog entries: genres, tags and developers share one shape."""

    def __init__(self, session: AsyncSession, model: type[Genre] | type[Tag] | type[Developer]):
        super().__init__(session)
        self.model = model

    async def list_entries(
        self,
        *,
        search: str | None,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> tuple[Sequence, int]:
        stmt = select(self.model)
        pattern = self.search_pattern(search)
        if pattern:
            stmt = stmt.where(self.model.name.ilike(pattern))
        stmt = self.apply_sort(
            stmt,
            sort,
            {"name": self.model.name, "createdAt": self.model.created_at},
        )
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def get_by_name(self, name: str):
        stmt = select(self.model).where(func.lower(self.model.name) == name.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str):
        stmt = select(self.model).where(self.model.slug == slug)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def existing_ids(self, ids: Sequence[int]) -> set[int]:
        if not ids:
            return set()
        stmt = select(self.model.id).where(self.model.id.in_(set(ids)))
        result = await self.session.execute(stmt)
        return {int(value) for value in result.scalars().all()}

    async def games_using(self, entry_id: int) -> int:
        """Games linked to the entry; developers have no delete guard."""
        if self.model is Genre:
            return await self.count_rows(GameGenre, GameGenre.genre_id == entry_id)
        if self.model is Tag:
            return await self.count_rows(GameTag, GameTag.tag_id == entry_id)
        return 0


class PublisherRepository(BaseRepository[Publisher]):
    model = Publisher

    SORT_COLUMNS = {
        "name": Publisher.name,
        "createdAt": Publisher.created_at,
        "isVerified": Publisher.is_verified,
    }

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_publishers(
        self,
        *,
        search: str | None,
        verified: bool | None,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[Publisher], int]:
        stmt = select(Publisher)
        pattern = self.search_pattern(search)
        if pattern:
            stmt = stmt.where(
                or_(Publisher.name.ilike(pattern), Publisher.description.ilike(pattern))
            )
        if verified is not None:
            stmt = stmt.where(Publisher.is_verified == verified)
        stmt = self.apply_sort(stmt, sort, self.SORT_COLUMNS)
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def get_by_name(self, name: str) -> Publisher | None:
        stmt = select(Publisher).where(func.lower(Publisher.name) == name.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str) -> Publisher | None:
        stmt = select(Publisher).where(Publisher.slug == slug)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_organization(self, organization_id: int) -> Publisher | None:
        stmt = select(Publisher).where(Publisher.organization_id == organization_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def game_count(self, publisher_id: int) -> int:
        return await self.count_rows(Game, Game.publisher_id == publisher_id)

    async def staff_count(self, publisher_id: int) -> int:
        return await self.count_rows(PublisherStaff, PublisherStaff.publisher_id == publisher_id)
