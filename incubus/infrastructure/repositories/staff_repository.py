from __future__ import annotations

from typing import Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.db.models.catalog import Game
from incubus.infrastructure.db.models.staff import (
    PlatformStaff,
    Player,
    PlayerGame,
    PublisherStaff,
)
from incubus.infrastructure.repositories.base import BaseRepository


class StaffRepository(BaseRepository[PlatformStaff]):
    """Platform staff, publisher staff and player registrations."""

    model = PlatformStaff

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_platform_staff(self, user_id: int) -> PlatformStaff | None:
        stmt = select(PlatformStaff).where(PlatformStaff.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_publisher_staff(self, user_id: int) -> PublisherStaff | None:
        stmt = select(PublisherStaff).where(PublisherStaff.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_player(self, user_id: int) -> Player | None:
        stmt = select(Player).where(Player.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_platform_staff(self, *, user_id: int, role: str) -> PlatformStaff:
        return await self.create(user_id=user_id, role=role)

    async def create_publisher_staff(
        self,
        *,
        user_id: int,
        publisher_id: int,
        role: str,
    ) -> PublisherStaff:
        row = PublisherStaff(user_id=user_id, publisher_id=publisher_id, role=role)
        self.session.add(row)
        await self.session.flush()
        return row

    async def create_player(self, *, user_id: int, player_type: str) -> Player:
        row = Player(user_id=user_id, type=player_type)
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_platform_staff(
        self,
        *,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[tuple[PlatformStaff, User]], int]:
        total = await self.count_rows(PlatformStaff)
        stmt = (
            select(PlatformStaff, User)
            .join(User, User.id == PlatformStaff.user_id)
            .order_by(PlatformStaff.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return result.all(), total

    async def list_publisher_staff(
        self,
        *,
        publisher_id: int,
    ) -> Sequence[tuple[PublisherStaff, User]]:
        stmt = (
            select(PublisherStaff, User)
            .join(User, User.id == PublisherStaff.user_id)
            .where(PublisherStaff.publisher_id == publisher_id)
            .order_by(PublisherStaff.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return result.all()

    async def delete_platform_staff(self, staff_id: int) -> bool:
        result = await self.session.execute(
            delete(PlatformStaff).where(PlatformStaff.id == staff_id)
        )
        return bool(result.rowcount)

    async def get_publisher_staff_by_id(self, staff_id: int) -> PublisherStaff | None:
        return await self.session.get(PublisherStaff, staff_id)

    async def delete_publisher_staff(self, staff_id: int) -> bool:
        result = await self.session.execute(
            delete(PublisherStaff).where(PublisherStaff.id == staff_id)
        )
        return bool(result.rowcount)

    async def list_players(
        self,
        *,
        search: str | None,
        player_type: str | None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[tuple[Player, User]], int]:
        stmt = select(Player, User).join(User, User.id == Player.user_id)
        pattern = self.search_pattern(search)
        if pattern:
            stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        if player_type:
            stmt = stmt.where(Player.type == player_type)
        stmt = stmt.order_by(Player.created_at.desc())
        return await self.fetch_page(stmt, limit=limit, offset=offset, scalars=False)

    async def delete_player(self, player_id: int) -> bool:
        result = await self.session.execute(delete(Player).where(Player.id == player_id))
        return bool(result.rowcount)

    async def list_player_games(self, player_id: int) -> Sequence[tuple[PlayerGame, Game]]:
        stmt = (
            select(PlayerGame, Game)
            .join(Game, Game.id == PlayerGame.game_id)
            .where(PlayerGame.player_id == player_id)
            .order_by(PlayerGame.added_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.all()

    async def get_player_game(self, *, player_id: int, game_id: int) -> PlayerGame | None:
        stmt = select(PlayerGame).where(
            PlayerGame.player_id == player_id,
            PlayerGame.game_id == game_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_player_game(self, *, player_id: int, game_id: int, owned: bool) -> PlayerGame:
        row = PlayerGame(player_id=player_id, game_id=game_id, owned=owned)
        self.session.add(row)
        await self.session.flush()
        return row

    async def remove_player_game(self, *, player_id: int, game_id: int) -> bool:
        result = await self.session.execute(
            delete(PlayerGame).where(
                PlayerGame.player_id == player_id,
                PlayerGame.game_id == game_id,
            )
        )
        return bool(result.rowcount)
