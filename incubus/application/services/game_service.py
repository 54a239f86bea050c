from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.catalog_service import (
    PublisherService,
    publisher_to_dict,
    taxonomy_to_dict,
)
from incubus.core.database import get_session
from incubus.core.errors import ApiException, bad_request, conflict, forbidden, not_found
from incubus.domain.pagination import PageParams, SortSpec
from incubus.domain.policies.organization_access import OrganizationAccessPolicy
from incubus.domain.slugs import slugify
from incubus.infrastructure.db.models.catalog import (
    Developer,
    Game,
    GameItem,
    GameVersion,
    Genre,
    Tag,
)
from incubus.infrastructure.repositories.catalog_repository import (
    PublisherRepository,
    TaxonomyRepository,
)
from incubus.infrastructure.repositories.game_repository import GameFilters, GameRepository
from incubus.infrastructure.repositories.organization_repository import OrganizationRepository
from incubus.infrastructure.repositories.review_repository import ReviewRepository

logger = logging.getLogger(__name__)

LINK_FIELDS = {
    "genre_ids": (Genre, "GENRE"),
    "tag_ids": (Tag, "TAG"),
    "developer_ids": (Developer, "DEVELOPER"),
}


def game_to_dict(game: Game) -> dict:
    return {
        "id": game.id,
        "title": game.title,
        "slug": game.slug,
        "description": game.description,
        "short_description": game.short_description,
        "publisher_id": game.publisher_id,
        "release_date": game.release_date,
        "base_price": game.base_price,
        "discount_price": game.discount_price,
        "is_active": game.is_active,
        "is_featured": game.is_featured,
        "content_rating": game.content_rating,
        "system_requirements": game.system_requirements,
        "cover_image": game.cover_image,
        "created_at": game.created_at,
        "updated_at": game.updated_at,
    }


def version_to_dict(version: GameVersion) -> dict:
    return {
        "id": version.id,
        "game_id": version.game_id,
        "version": version.version,
        "release_notes": version.release_notes,
        "is_active": version.is_active,
        "size_bytes": version.size_bytes,
        "content_hash": version.content_hash,
        "content_cid": version.content_cid,
        "created_at": version.created_at,
        "updated_at": version.updated_at,
    }


def item_to_dict(item: GameItem) -> dict:
    return {
        "id": item.id,
        "game_id": item.game_id,
        "name": item.name,
        "description": item.description,
        "item_type": item.item_type,
        "rarity": item.rarity,
        "image": item.image,
        "is_tradable": item.is_tradable,
        "max_supply": item.max_supply,
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


class GameService:
    async def list_games(
        self,
        *,
        filters: GameFilters,
        params: PageParams,
        sort: SortSpec,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await GameRepository(session).list_games(
                filters=filters,
                sort=sort,
                limit=params.limit,
                offset=params.offset,
            )
            return [game_to_dict(row) for row in rows], total

    async def get_game(self, game_id: int) -> dict:
        async with get_session() as session:
            game = await GameRepository(session).get_by_id(game_id)
            if game is None:
                raise not_found("Game")
            return await self._detail(session, game)

    async def get_game_by_slug(self, slug: str) -> dict:
        async with get_session() as session:
            game = await GameRepository(session).get_by_slug(slug)
            if game is None:
                raise not_found("Game")
            return await self._detail(session, game)

    async def create_game(
        self,
        principal: AuthenticatedPrincipal,
        *,
        values: dict[str, Any],
    ) -> dict:
        links = {field: values.pop(field, None) for field in LINK_FIELDS}
        async with get_session() as session:
            await self.authorize(session, principal, values["publisher_id"], "game", "create")
            repo = GameRepository(session)
            values["title"] = values["title"].strip()
            values["slug"] = await self._unique_slug(repo, values["title"])
            self._check_discount(values.get("base_price"), values.get("discount_price"))
            await self._check_links(session, links)
            game = await repo.create(**values)
            await repo.replace_links(game_id=game.id, **links)
            logger.info(
                "Game created id=%s slug=%s by user_id=%s",
                game.id,
                game.slug,
                principal.user_id,
            )
            return await self._detail(session, game)

    async def update_game(
        self,
        principal: AuthenticatedPrincipal,
        *,
        game_id: int,
        values: dict[str, Any],
    ) -> dict:
        links = {field: values.pop(field, None) for field in LINK_FIELDS}
        async with get_session() as session:
            repo = GameRepository(session)
            game = await repo.get_by_id(game_id)
            if game is None:
                raise not_found("Game")
            await self.authorize(session, principal, game.publisher_id, "game", "update")
            if "publisher_id" in values and values["publisher_id"] != game.publisher_id:
                await self.authorize(session, principal, values["publisher_id"], "game", "create")
            if values.get("title") and values["title"].strip() != game.title:
                values["title"] = values["title"].strip()
                values["slug"] = await self._unique_slug(repo, values["title"], exclude_id=game.id)
            else:
                values.pop("title", None)
            self._check_discount(
                values.get("base_price", game.base_price),
                values.get("discount_price", game.discount_price),
            )
            await self._check_links(session, links)
            await repo.update(game, **values)
            await repo.replace_links(game_id=game.id, **links)
            return await self._detail(session, game)

    async def delete_game(self, principal: AuthenticatedPrincipal, *, game_id: int) -> None:
        async with get_session() as session:
            repo = GameRepository(session)
            game = await repo.get_by_id(game_id)
            if game is None:
                raise not_found("Game")
            await self.authorize(session, principal, game.publisher_id, "game", "delete")
            await repo.delete(game_id)
            logger.info("Game deleted id=%s by user_id=%s", game_id, principal.user_id)

    # Versions

    async def list_versions(
        self,
        *,
        game_id: int,
        params: PageParams,
        is_active: bool | None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            repo = GameRepository(session)
            if await repo.get_by_id(game_id) is None:
                raise not_found("Game")
            rows, total = await repo.list_versions(
                game_id=game_id,
                is_active=is_active,
                limit=params.limit,
                offset=params.offset,
            )
            return [version_to_dict(row) for row in rows], total

    async def get_version(self, *, game_id: int, version_id: int) -> dict:
        async with get_session() as session:
            row = await GameRepository(session).get_version(game_id=game_id, version_id=version_id)
            if row is None:
                raise not_found("Game version", "VERSION_NOT_FOUND")
            return version_to_dict(row)

    async def create_version(
        self,
        principal: AuthenticatedPrincipal,
        *,
        game_id: int,
        values: dict[str, Any],
    ) -> dict:
        async with get_session() as session:
            repo = GameRepository(session)
            game = await self._managed_game(session, principal, game_id, "game", "update")
            if await repo.get_version_by_label(game_id=game.id, version=values["version"]):
                raise conflict("VERSION_ALREADY_EXISTS", "This version already exists for the game")
            row = await repo.create_version(game_id=game.id, **values)
            return version_to_dict(row)

    async def update_version(
        self,
        principal: AuthenticatedPrincipal,
        *,
        game_id: int,
        version_id: int,
        values: dict[str, Any],
    ) -> dict:
        async with get_session() as session:
            repo = GameRepository(session)
            await self._managed_game(session, principal, game_id, "game", "update")
            row = await repo.get_version(game_id=game_id, version_id=version_id)
            if row is None:
                raise not_found("Game version", "VERSION_NOT_FOUND")
            label = values.get("version")
            if label and label != row.version:
                if await repo.get_version_by_label(game_id=game_id, version=label):
                    raise conflict("VERSION_ALREADY_EXISTS", "This version already exists for the game")
            elif "version" in values:
                values.pop("version")
            await repo.update(row, **values)
            return version_to_dict(row)

    async def delete_version(
        self,
        principal: AuthenticatedPrincipal,
        *,
        game_id: int,
        version_id: int,
    ) -> None:
        async with get_session() as session:
            repo = GameRepository(session)
            await self._managed_game(session, principal, game_id, "game", "update")
            if await repo.get_version(game_id=game_id, version_id=version_id) is None:
                raise not_found("Game version", "VERSION_NOT_FOUND")
            await repo.delete_version(version_id)

    # Items

    async def list_items(self, *, game_id: int, params: PageParams) -> tuple[list[dict], int]:
        async with get_session() as session:
            repo = GameRepository(session)
            if await repo.get_by_id(game_id) is None:
                raise not_found("Game")
            rows, total = await repo.list_items(
                game_id=game_id,
                limit=params.limit,
                offset=params.offset,
            )
            return [item_to_dict(row) for row in rows], total

    async def get_item(self, *, game_id: int, item_id: int) -> dict:
        async with get_session() as session:
            item = await GameRepository(session).get_item(item_id)
            if item is None or item.game_id != game_id:
                raise not_found("Game item", "ITEM_NOT_FOUND")
            return item_to_dict(item)

    async def create_item(
        self,
        principal: AuthenticatedPrincipal,
        *,
        game_id: int,
        values: dict[str, Any],
    ) -> dict:
        async with get_session() as session:
            game = await self._managed_game(session, principal, game_id, "gameItem", "create")
            item = await GameRepository(session).create_item(game_id=game.id, **values)
            logger.info("Game item created id=%s game_id=%s", item.id, game.id)
            return item_to_dict(item)

    async def update_item(
        self,
        principal: AuthenticatedPrincipal,
        *,
        game_id: int,
        item_id: int,
        values: dict[str, Any],
    ) -> dict:
        async with get_session() as session:
            repo = GameRepository(session)
            await self._managed_game(session, principal, game_id, "gameItem", "update")
            item = await repo.get_item(item_id)
            if item is None or item.game_id != game_id:
                raise not_found("Game item", "ITEM_NOT_FOUND")
            await repo.update(item, **values)
            return item_to_dict(item)

    async def delete_item(
        self,
        principal: AuthenticatedPrincipal,
        *,
        game_id: int,
        item_id: int,
    ) -> None:
        async with get_session() as session:
            repo = GameRepository(session)
            await self._managed_game(session, principal, game_id, "gameItem", "delete")
            item = await repo.get_item(item_id)
            if item is None or item.game_id != game_id:
                raise not_found("Game item", "ITEM_NOT_FOUND")
            await repo.delete_item(item_id)

    # Permissions

    @staticmethod
    async def authorize(
        session: AsyncSession,
        principal: AuthenticatedPrincipal,
        publisher_id: int,
        resource: str,
        action: str,
    ) -> None:
        """Check ``resource:action`` against the publisher organization's member role.

        Platform admins pass. Publishers without an organization are admin-only.
        Creating a game needs an owner, admin or publisher membership.
        """
        publisher = await PublisherRepository(session).get_by_id(publisher_id)
        if publisher is None:
            raise not_found("Publisher")
        if PublisherService.is_platform_admin(principal):
            return
        if publisher.organization_id is None:
            raise forbidden("Only administrators can manage games for this publisher")
        member = await OrganizationRepository(session).get_member(
            organization_id=publisher.organization_id,
            user_id=principal.user_id,
        )
        if member is None:
            raise forbidden("You are not a member of this publisher's organization")
        if resource == "game" and action == "create":
            required = sorted(str(role) for role in OrganizationAccessPolicy.GAME_MANAGER_ROLES)
            allowed = member.role in required
        else:
            required = OrganizationAccessPolicy.roles_allowing(resource, action)
            allowed = OrganizationAccessPolicy.allows(member.role, resource, action)
        if not allowed:
            raise ApiException(
                status_code=403,
                error_code="PERMISSION_DENIED",
                message="You do not have required permissions",
                details={"required_roles": required, "user_role": member.role},
            )

    async def _managed_game(
        self,
        session: AsyncSession,
        principal: AuthenticatedPrincipal,
        game_id: int,
        resource: str,
        action: str,
    ) -> Game:
        game = await GameRepository(session).get_by_id(game_id)
        if game is None:
            raise not_found("Game")
        await self.authorize(session, principal, game.publisher_id, resource, action)
        return game

    @staticmethod
    async def _detail(session: AsyncSession, game: Game) -> dict:
        repo = GameRepository(session)
        publisher = await PublisherRepository(session).get_by_id(game.publisher_id)
        average, approved = await ReviewRepository(session).approved_summary(game.id)
        return {
            **game_to_dict(game),
            "publisher": publisher_to_dict(publisher) if publisher is not None else None,
            "genres": [taxonomy_to_dict(row) for row in await repo.list_genres(game.id)],
            "tags": [taxonomy_to_dict(row) for row in await repo.list_tags(game.id)],
            "developers": [taxonomy_to_dict(row) for row in await repo.list_developers(game.id)],
            "average_rating": round(average, 2) if average is not None else None,
            "review_count": approved,
        }

    @staticmethod
    async def _check_links(session: AsyncSession, links: dict[str, Sequence[int] | None]) -> None:
        for field, ids in links.items():
            if not ids:
                continue
            model, label = LINK_FIELDS[field]
            missing = sorted(set(ids) - await TaxonomyRepository(session, model).existing_ids(ids))
            if missing:
                raise bad_request(
                    f"INVALID_{label}_IDS",
                    f"Unknown {label.lower()} ids",
                    ids=missing,
                )

    @staticmethod
    def _check_discount(base_price, discount_price) -> None:
        if discount_price is not None and base_price is not None and discount_price > base_price:
            raise bad_request(
                "INVALID_DISCOUNT",
                "Discount price cannot exceed the base price",
            )

    @staticmethod
    async def _unique_slug(repo: GameRepository, title: str, exclude_id: int | None = None) -> str:
        slug = slugify(title, fallback="game")
        existing = await repo.get_by_slug(slug)
        if existing is not None and existing.id != exclude_id:
            raise conflict("GAME_ALREADY_EXISTS", "A game with this title already exists")
        return slug
