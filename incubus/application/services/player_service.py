from __future__ import annotations

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.core.database import get_session
from incubus.core.errors import conflict, forbidden, not_found
from incubus.domain.pagination import PageParams
from incubus.domain.roles import PLATFORM_ADMIN_ROLES, PlayerType
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.game_repository import GameRepository
from incubus.infrastructure.repositories.staff_repository import StaffRepository


def player_to_dict(player, user) -> dict:
    return {
        "id": player.id,
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "type": player.type,
        "created_at": player.created_at,
    }


def library_entry_to_dict(entry, game) -> dict:
    return {
        "game_id": game.id,
        "title": game.title,
        "slug": game.slug,
        "cover_image": game.cover_image,
        "owned": entry.owned,
        "added_at": entry.added_at,
    }


def is_platform_manager(principal: AuthenticatedPrincipal) -> bool:
    return principal.is_admin or principal.platform_role in PLATFORM_ADMIN_ROLES


class PlayerService:
    async def list_players(
        self,
        *,
        params: PageParams,
        search: str | None,
        player_type: str | None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await StaffRepository(session).list_players(
                search=search,
                player_type=player_type,
                limit=params.limit,
                offset=params.offset,
            )
            return [player_to_dict(player, user) for player, user in rows], total

    async def get_player(self, principal: AuthenticatedPrincipal, *, user_id: int) -> dict:
        self._ensure_staff_or_self(principal, user_id)
        async with get_session() as session:
            player, user = await self._load(session, user_id)
            return player_to_dict(player, user)

    async def update_player(
        self,
        principal: AuthenticatedPrincipal,
        *,
        user_id: int,
        player_type: str | None,
        name: str | None,
        image: str | None,
    ) -> dict:
        manager = is_platform_manager(principal)
        if not manager and principal.user_id != user_id:
            raise forbidden("You can only update your own player profile")
        async with get_session() as session:
            player, user = await self._load(session, user_id)
            if player_type is not None and player_type != player.type:
                if not manager:
                    raise forbidden("Only platform administrators can change the player type")
                player.type = PlayerType(player_type).value
            if name is not None:
                user.name = name.strip()
            if image is not None:
                user.image = image
            await session.flush()
            return player_to_dict(player, user)

    async def delete_player(self, principal: AuthenticatedPrincipal, *, user_id: int) -> None:
        if not is_platform_manager(principal):
            raise forbidden("Only platform administrators can delete players")
        async with get_session() as session:
            player, _ = await self._load(session, user_id)
            await StaffRepository(session).delete_player(player.id)

    async def list_library(self, principal: AuthenticatedPrincipal, *, user_id: int) -> list[dict]:
        self._ensure_staff_or_self(principal, user_id)
        async with get_session() as session:
            player, _ = await self._load(session, user_id)
            rows = await StaffRepository(session).list_player_games(player.id)
            return [library_entry_to_dict(entry, game) for entry, game in rows]

    async def add_library_game(
        self,
        principal: AuthenticatedPrincipal,
        *,
        user_id: int,
        game_id: int,
        owned: bool,
    ) -> dict:
        self._ensure_manager_or_self(principal, user_id)
        async with get_session() as session:
            player, _ = await self._load(session, user_id)
            game = await GameRepository(session).get_by_id(game_id)
            if game is None:
                raise not_found("Game")
            repo = StaffRepository(session)
            entry = await repo.get_player_game(player_id=player.id, game_id=game_id)
            if entry is not None:
                if entry.owned == owned:
                    raise conflict("GAME_ALREADY_IN_LIBRARY", "Game is already in the library")
                entry.owned = owned
                await session.flush()
            else:
                entry = await repo.add_player_game(player_id=player.id, game_id=game_id, owned=owned)
            return library_entry_to_dict(entry, game)

    async def remove_library_game(
        self,
        principal: AuthenticatedPrincipal,
        *,
        user_id: int,
        game_id: int,
    ) -> None:
        self._ensure_manager_or_self(principal, user_id)
        async with get_session() as session:
            player, _ = await self._load(session, user_id)
            removed = await StaffRepository(session).remove_player_game(
                player_id=player.id,
                game_id=game_id,
            )
            if not removed:
                raise not_found("Library entry", "LIBRARY_ENTRY_NOT_FOUND")

    @staticmethod
    async def _load(session, user_id: int):
        player = await StaffRepository(session).get_player(user_id)
        if player is None:
            raise not_found("Player")
        user = await AuthRepository(session).get_user_by_id(user_id)
        return player, user

    @staticmethod
    def _ensure_staff_or_self(principal: AuthenticatedPrincipal, user_id: int) -> None:
        if principal.user_id == user_id or principal.platform_role or principal.is_admin:
            return
        raise forbidden("Platform staff access is required")

    @staticmethod
    def _ensure_manager_or_self(principal: AuthenticatedPrincipal, user_id: int) -> None:
        if principal.user_id == user_id or is_platform_manager(principal):
            return
        raise forbidden("You can only manage your own library")
