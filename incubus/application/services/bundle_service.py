from __future__ import annotations

import logging
from typing import Any, Sequence

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.catalog_service import PublisherService
from incubus.application.services.game_service import game_to_dict
from incubus.core.database import get_session
from incubus.core.errors import ApiException, conflict, forbidden, not_found
from incubus.domain.pagination import PageParams
from incubus.domain.roles import PublisherStaffRole
from incubus.infrastructure.db.models.catalog import Bundle
from incubus.infrastructure.repositories.bundle_repository import BundleRepository
from incubus.infrastructure.repositories.game_repository import GameRepository

logger = logging.getLogger(__name__)


def bundle_to_dict(bundle: Bundle, games: Sequence = ()) -> dict:
    return {
        "id": bundle.id,
        "title": bundle.title,
        "description": bundle.description,
        "price": bundle.price,
        "discount_percentage": bundle.discount_percentage,
        "games": [game_to_dict(game) for game in games],
        "created_at": bundle.created_at,
        "updated_at": bundle.updated_at,
    }


def _is_publisher(principal: AuthenticatedPrincipal) -> bool:
    return (
        principal.publisher_id is not None
        and principal.publisher_role == PublisherStaffRole.PUBLISHER
    )


class BundleService:
    async def list_bundles(
        self,
        *,
        params: PageParams,
        search: str | None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            repo = BundleRepository(session)
            rows, total = await repo.list_bundles(
                search=search,
                limit=params.limit,
                offset=params.offset,
            )
            return [bundle_to_dict(row, await repo.list_games(row.id)) for row in rows], total

    async def get_bundle(self, bundle_id: int) -> dict:
        async with get_session() as session:
            repo = BundleRepository(session)
            bundle = await repo.get_by_id(bundle_id)
            if bundle is None:
                raise not_found("Bundle")
            return bundle_to_dict(bundle, await repo.list_games(bundle.id))

    async def create_bundle(
        self,
        principal: AuthenticatedPrincipal,
        *,
        values: dict[str, Any],
    ) -> dict:
        self._ensure_can_edit(principal)
        game_ids = values.pop("game_ids")
        async with get_session() as session:
            repo = BundleRepository(session)
            values["title"] = values["title"].strip()
            if await repo.get_by_title(values["title"]) is not None:
                raise conflict("BUNDLE_ALREADY_EXISTS", "A bundle with this title already exists")
            await self._check_games(session, principal, game_ids)
            bundle = await repo.create(**values)
            await repo.replace_games(bundle_id=bundle.id, game_ids=game_ids)
            logger.info("Bundle created id=%s by user_id=%s", bundle.id, principal.user_id)
            return bundle_to_dict(bundle, await repo.list_games(bundle.id))

    async def update_bundle(
        self,
        principal: AuthenticatedPrincipal,
        *,
        bundle_id: int,
        values: dict[str, Any],
    ) -> dict:
        self._ensure_can_edit(principal)
        game_ids = values.pop("game_ids", None)
        async with get_session() as session:
            repo = BundleRepository(session)
            bundle = await repo.get_by_id(bundle_id)
            if bundle is None:
                raise not_found("Bundle")
            current = [game.id for game in await repo.list_games(bundle.id)]
            await self._check_games(session, principal, current)
            if values.get("title"):
                values["title"] = values["title"].strip()
                existing = await repo.get_by_title(values["title"])
                if existing is not None and existing.id != bundle.id:
                    raise conflict("BUNDLE_ALREADY_EXISTS", "A bundle with this title already exists")
            else:
                values.pop("title", None)
            if game_ids is not None:
                await self._check_games(session, principal, game_ids)
                await repo.replace_games(bundle_id=bundle.id, game_ids=game_ids)
            await repo.update(bundle, **values)
            return bundle_to_dict(bundle, await repo.list_games(bundle.id))

    async def delete_bundle(self, principal: AuthenticatedPrincipal, *, bundle_id: int) -> None:
        self._ensure_can_edit(principal)
        async with get_session() as session:
            repo = BundleRepository(session)
            bundle = await repo.get_by_id(bundle_id)
            if bundle is None:
                raise not_found("Bundle")
            if not PublisherService.is_platform_admin(principal):
                games = await repo.list_games(bundle.id)
                if any(game.publisher_id != principal.publisher_id for game in games):
                    raise forbidden("Bundle contains games from other publishers")
            await repo.delete(bundle_id)
            logger.info("Bundle deleted id=%s by user_id=%s", bundle_id, principal.user_id)

    @staticmethod
    def _ensure_can_edit(principal: AuthenticatedPrincipal) -> None:
        if PublisherService.is_platform_admin(principal) or _is_publisher(principal):
            return
        raise forbidden("Only platform administrators or publishers can manage bundles")

    @staticmethod
    async def _check_games(
        session,
        principal: AuthenticatedPrincipal,
        game_ids: Sequence[int],
    ) -> None:
        missing = sorted(set(game_ids) - await GameRepository(session).existing_ids(game_ids))
        if missing:
            raise ApiException(
                status_code=404,
                error_code="GAME_NOT_FOUND",
                message="One or more games were not found",
                details={"ids": missing},
            )
        if PublisherService.is_platform_admin(principal):
            return
        publisher_ids = await BundleRepository(session).publisher_ids_for_games(game_ids)
        if publisher_ids - {principal.publisher_id}:
            raise forbidden("You can only bundle your own publisher's games")
