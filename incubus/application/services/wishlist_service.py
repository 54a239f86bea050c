from __future__ import annotations

import logging
from typing import Sequence

from incubus.application.services.game_service import game_to_dict
from incubus.core.database import get_session
from incubus.core.errors import ApiException, not_found
from incubus.infrastructure.repositories.game_repository import GameRepository
from incubus.infrastructure.repositories.wishlist_repository import WishlistRepository

logger = logging.getLogger(__name__)


class WishlistService:
    """Per-user set of wished-for games."""

    async def list_wishlist(self, user_id: int) -> list[dict]:
        async with get_session() as session:
            rows = await WishlistRepository(session).list_entries(user_id)
            return [
                {"game_id": game.id, "added_at": entry.created_at, "game": game_to_dict(game)}
                for entry, game in rows
            ]

    async def add_game(self, *, user_id: int, game_id: int) -> bool:
        async with get_session() as session:
            if await GameRepository(session).get_by_id(game_id) is None:
                raise not_found("Game")
            return await WishlistRepository(session).add(user_id=user_id, game_id=game_id)

    async def remove_game(self, *, user_id: int, game_id: int) -> bool:
        async with get_session() as session:
            return await WishlistRepository(session).remove(user_id=user_id, game_ids=[game_id]) > 0

    async def clear(self, user_id: int) -> int:
        async with get_session() as session:
            return await WishlistRepository(session).remove(user_id=user_id)

    async def replace(self, *, user_id: int, game_ids: Sequence[int]) -> list[int]:
        wanted = set(game_ids)
        async with get_session() as session:
            missing = sorted(wanted - await GameRepository(session).existing_ids(list(wanted)))
            if missing:
                raise ApiException(
                    status_code=404,
                    error_code="GAME_NOT_FOUND",
                    message="One or more games were not found",
                    details={"ids": missing},
                )
            repo = WishlistRepository(session)
            current = await repo.game_ids(user_id)
            await repo.remove(user_id=user_id, game_ids=sorted(current - wanted))
            for game_id in sorted(wanted - current):
                await repo.add(user_id=user_id, game_id=game_id)
            logger.info(
                "Wishlist replaced user_id=%s added=%s removed=%s",
                user_id,
                len(wanted - current),
                len(current - wanted),
            )
            return sorted(wanted)
