from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.domain.pagination import SortSpec
from incubus.infrastructure.db.models.blockchain import GameLicense, Wallet
from incubus.infrastructure.db.models.catalog import (
    Developer,
    Game,
    GameDeveloper,
    GameGenre,
    GameItem,
    GameTag,
    GameVersion,
    Genre,
    Publisher,
    Tag,
)
from incubus.infrastructure.repositories.base import BaseRepository


@dataclass(frozen=True)
class GameFilters:
    search: str | None = None
    publisher: str | None = None
    developer: str | None = None
    genre: str | None = None
    tag: str | None = None
    is_active: bool | None = None
    is_featured: bool | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    released_after: datetime | None = None
    released_before: datetime | None = None


def _reference(id_column, slug_column, value: str):
    """Match a path/query reference that is either a numeric id or a slug."""
    if value.isdigit():
        return id_column == int(value)
    return slug_column == value


class GameRepository(BaseRepository[Game]):
    model = Game

    SORT_COLUMNS = {
        "title": Game.title,
        "releaseDate": Game.release_date,
        "basePrice": Game.base_price,
        "createdAt": Game.created_at,
    }

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_games(
        self,
        *,
        filters: GameFilters,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[Game], int]:
        stmt = select(Game)
        pattern = self.search_pattern(filters.search)
        if pattern:
            stmt = stmt.where(
                or_(
                    Game.title.ilike(pattern),
                    Game.description.ilike(pattern),
                    Game.short_description.ilike(pattern),
                )
            )
        if filters.publisher:
            stmt = stmt.where(
                Game.publisher_id.in_(
                    select(Publisher.id).where(
                        _reference(Publisher.id, Publisher.slug, filters.publisher)
                    )
                )
            )
        if filters.developer:
            stmt = stmt.where(
                Game.id.in_(
                    select(GameDeveloper.game_id)
                    .join(Developer, Developer.id == GameDeveloper.developer_id)
                    .where(_reference(Developer.id, Developer.slug, filters.developer))
                )
            )
        if filters.genre:
            stmt = stmt.where(
                Game.id.in_(
                    select(GameGenre.game_id)
                    .join(Genre, Genre.id == GameGenre.genre_id)
                    .where(_reference(Genre.id, Genre.slug, filters.genre))
                )
            )
        if filters.tag:
            stmt = stmt.where(
                Game.id.in_(
                    select(GameTag.game_id)
                    .join(Tag, Tag.id == GameTag.tag_id)
                    .where(_reference(Tag.id, Tag.slug, filters.tag))
                )
            )
        if filters.is_active is not None:
            stmt = stmt.where(Game.is_active == filters.is_active)
        if filters.is_featured is not None:
            stmt = stmt.where(Game.is_featured == filters.is_featured)
        if filters.min_price is not None:
            stmt = stmt.where(Game.base_price >= filters.min_price)
        if filters.max_price is not None:
            stmt = stmt.where(Game.base_price <= filters.max_price)
        if filters.released_after is not None:
            stmt = stmt.where(Game.release_date >= filters.released_after)
        if filters.released_before is not None:
            stmt = stmt.where(Game.release_date <= filters.released_before)
        stmt = self.apply_sort(stmt, sort, self.SORT_COLUMNS)
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def get_by_slug(self, slug: str) -> Game | None:
        stmt = select(Game).where(Game.slug == slug)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def existing_ids(self, ids: Sequence[int]) -> set[int]:
        if not ids:
            return set()
        stmt = select(Game.id).where(Game.id.in_(set(ids)))
        result = await self.session.execute(stmt)
        return {int(value) for value in result.scalars().all()}

    async def list_by_ids(self, ids: Sequence[int]) -> Sequence[Game]:
        if not ids:
            return []
        stmt = select(Game).where(Game.id.in_(set(ids))).order_by(Game.title.asc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def replace_links(
        self,
        *,
        game_id: int,
        genre_ids: Sequence[int] | None = None,
        tag_ids: Sequence[int] | None = None,
        developer_ids: Sequence[int] | None = None,
    ) -> None:
        if genre_ids is not None:
            await self.session.execute(delete(GameGenre).where(GameGenre.game_id == game_id))
            for genre_id in set(genre_ids):
                self.session.add(GameGenre(game_id=game_id, genre_id=genre_id))
        if tag_ids is not None:
            await self.session.execute(delete(GameTag).where(GameTag.game_id == game_id))
            for tag_id in set(tag_ids):
                self.session.add(GameTag(game_id=game_id, tag_id=tag_id))
        if developer_ids is not None:
            await self.session.execute(
                delete(GameDeveloper).where(GameDeveloper.game_id == game_id)
            )
            for developer_id in set(developer_ids):
                self.session.add(GameDeveloper(game_id=game_id, developer_id=developer_id))
        await self.session.flush()

    async def list_genres(self, game_id: int) -> Sequence[Genre]:
        stmt = (
            select(Genre)
            .join(GameGenre, GameGenre.genre_id == Genre.id)
            .where(GameGenre.game_id == game_id)
            .order_by(Genre.name.asc())
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def list_tags(self, game_id: int) -> Sequence[Tag]:
        stmt = (
            select(Tag)
            .join(GameTag, GameTag.tag_id == Tag.id)
            .where(GameTag.game_id == game_id)
            .order_by(Tag.name.asc())
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def list_developers(self, game_id: int) -> Sequence[Developer]:
        stmt = (
            select(Developer)
            .join(GameDeveloper, GameDeveloper.developer_id == Developer.id)
            .where(GameDeveloper.game_id == game_id)
            .order_by(Developer.name.asc())
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def user_holds_license(self, *, user_id: int, game_id: int) -> bool:
        stmt = (
            select(func.count(GameLicense.id))
            .join(Wallet, Wallet.id == GameLicense.wallet_id)
            .where(
                Wallet.user_id == user_id,
                GameLicense.game_id == game_id,
                GameLicense.is_active == True,  # noqa: E712
            )
        )
        return int((await self.session.execute(stmt)).scalar() or 0) > 0

    # Versions

    async def list_versions(
        self,
        *,
        game_id: int,
        is_active: bool | None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[GameVersion], int]:
        stmt = select(GameVersion).where(GameVersion.game_id == game_id)
        if is_active is not None:
            stmt = stmt.where(GameVersion.is_active == is_active)
        stmt = stmt.order_by(GameVersion.created_at.desc(), GameVersion.id.desc())
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def get_version(self, *, game_id: int, version_id: int) -> GameVersion | None:
        stmt = select(GameVersion).where(
            GameVersion.id == version_id,
            GameVersion.game_id == game_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_version_by_label(self, *, game_id: int, version: str) -> GameVersion | None:
        stmt = select(GameVersion).where(
            GameVersion.game_id == game_id,
            GameVersion.version == version,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def create_version(self, **values) -> GameVersion:
        row = GameVersion(**values)
        self.session.add(row)
        await self.session.flush()
        return row

    async def delete_version(self, version_id: int) -> bool:
        result = await self.session.execute(delete(GameVersion).where(GameVersion.id == version_id))
        return bool(result.rowcount)

    # Items

    async def list_items(
        self,
        *,
        game_id: int,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[GameItem], int]:
        stmt = (
            select(GameItem)
            .where(GameItem.game_id == game_id)
            .order_by(GameItem.created_at.desc(), GameItem.id.desc())
        )
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def get_item(self, item_id: int) -> GameItem | None:
        return await self.session.get(GameItem, item_id)

    async def create_item(self, **values) -> GameItem:
        row = GameItem(**values)
        self.session.add(row)
        await self.session.flush()
        return row

    async def delete_item(self, item_id: int) -> bool:
        result = await self.session.execute(delete(GameItem).where(GameItem.id == item_id))
        return bool(result.rowcount)
