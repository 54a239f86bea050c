from __future__ import annotations

import logging
from typing import Any

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.staff_service import staff_to_dict
from incubus.core.database import get_session
from incubus.core.errors import bad_request, conflict, forbidden, not_found
from incubus.domain.pagination import PageParams, SortSpec
from incubus.domain.roles import PLATFORM_ADMIN_ROLES, PublisherStaffRole
from incubus.domain.slugs import slugify
from incubus.infrastructure.db.models.catalog import Developer, Genre, Publisher, Tag
from incubus.infrastructure.repositories.catalog_repository import (
    PublisherRepository,
    TaxonomyRepository,
)
from incubus.infrastructure.repositories.staff_repository import StaffRepository

logger = logging.getLogger(__name__)

TAXONOMY_MODELS = {"genre": Genre, "tag": Tag, "developer": Developer}


def taxonomy_to_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "slug": row.slug,
        "description": getattr(row, "description", None),
        "website": getattr(row, "website", None),
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def publisher_to_dict(row: Publisher) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "slug": row.slug,
        "description": row.description,
        "website": row.website,
        "logo": row.logo,
        "is_verified": row.is_verified,
        "royalty_percentage": row.royalty_percentage,
        "organization_id": row.organization_id,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


class TaxonomyService:
    """Genres, tags and developers: name-keyed catalog entries."""

    def __init__(self, kind: str):
        self.kind = kind
        self.model = TAXONOMY_MODELS[kind]
        self.label = kind.capitalize()

    async def list_entries(
        self,
        *,
        params: PageParams,
        sort: SortSpec,
        search: str | None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await TaxonomyRepository(session, self.model).list_entries(
                search=search,
                sort=sort,
                limit=params.limit,
                offset=params.offset,
            )
            return [taxonomy_to_dict(row) for row in rows], total

    async def get_entry(self, entry_id: int) -> dict:
        async with get_session() as session:
            row = await TaxonomyRepository(session, self.model).get_by_id(entry_id)
            if row is None:
                raise not_found(self.label)
            return taxonomy_to_dict(row)

    async def create_entry(self, values: dict[str, Any]) -> dict:
        async with get_session() as session:
            repo = TaxonomyRepository(session, self.model)
            name = values["name"].strip()
            slug = await self._unique_slug(repo, name)
            row = await repo.create(**self._columns({**values, "name": name, "slug": slug}))
            logger.info("%s created id=%s slug=%s", self.label, row.id, row.slug)
            return taxonomy_to_dict(row)

    async def update_entry(self, entry_id: int, values: dict[str, Any]) -> dict:
        async with get_session() as session:
            repo = TaxonomyRepository(session, self.model)
            row = await repo.get_by_id(entry_id)
            if row is None:
                raise not_found(self.label)
            if values.get("name") and values["name"].strip() != row.name:
                values["name"] = values["name"].strip()
                values["slug"] = await self._unique_slug(repo, values["name"], exclude_id=row.id)
            else:
                values.pop("name", None)
            await repo.update(row, **self._columns(values))
            return taxonomy_to_dict(row)

    async def delete_entry(self, entry_id: int) -> None:
        async with get_session() as session:
            repo = TaxonomyRepository(session, self.model)
            if await repo.get_by_id(entry_id) is None:
                raise not_found(self.label)
            in_use = await repo.games_using(entry_id)
            if in_use:
                raise bad_request(
                    f"{self.kind.upper()}_IN_USE",
                    f"{self.label} is used by {in_use} game(s) and cannot be deleted",
                    games=in_use,
                )
            await repo.delete(entry_id)

    async def _unique_slug(self, repo: TaxonomyRepository, name: str, exclude_id: int | None = None) -> str:
        existing = await repo.get_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise conflict(
                f"{self.kind.upper()}_ALREADY_EXISTS",
                f"{self.label} with this name already exists",
            )
        slug = slugify(name, fallback=self.kind)
        existing = await repo.get_by_slug(slug)
        if existing is not None and existing.id != exclude_id:
            raise conflict(
                f"{self.kind.upper()}_ALREADY_EXISTS",
                f"{self.label} with this slug already exists",
            )
        return slug

    def _columns(self, values: dict[str, Any]) -> dict[str, Any]:
        columns = self.model.__table__.columns.keys()
        return {key: value for key, value in values.items() if key in columns}


class PublisherService:
    async def list_publishers(
        self,
        *,
        params: PageParams,
        sort: SortSpec,
        search: str | None,
        verified: bool | None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await PublisherRepository(session).list_publishers(
                search=search,
                verified=verified,
                sort=sort,
                limit=params.limit,
                offset=params.offset,
            )
            return [publisher_to_dict(row) for row in rows], total

    async def get_publisher(self, publisher_id: int) -> dict:
        async with get_session() as session:
            repo = PublisherRepository(session)
            row = await repo.get_by_id(publisher_id)
            if row is None:
                raise not_found("Publisher")
            staff = await StaffRepository(session).list_publisher_staff(publisher_id=row.id)
            return {
                **publisher_to_dict(row),
                "game_count": await repo.game_count(row.id),
                "staff": [staff_to_dict(member, user) for member, user in staff],
            }

    async def create_publisher(self, values: dict[str, Any]) -> dict:
        async with get_session() as session:
            repo = PublisherRepository(session)
            values["name"] = values["name"].strip()
            values["slug"] = await self._unique_slug(repo, values["name"])
            row = await repo.create(**values)
            logger.info("Publisher created id=%s slug=%s", row.id, row.slug)
            return publisher_to_dict(row)

    async def update_publisher(
        self,
        principal: AuthenticatedPrincipal,
        *,
        publisher_id: int,
        values: dict[str, Any],
    ) -> dict:
        self.ensure_can_manage(principal, publisher_id)
        async with get_session() as session:
            repo = PublisherRepository(session)
            row = await repo.get_by_id(publisher_id)
            if row is None:
                raise not_found("Publisher")
            if "is_verified" in values and not self.is_platform_admin(principal):
                raise forbidden("Only platform administrators can verify publishers")
            if values.get("name") and values["name"].strip() != row.name:
                values["name"] = values["name"].strip()
                values["slug"] = await self._unique_slug(repo, values["name"], exclude_id=row.id)
            else:
                values.pop("name", None)
            await repo.update(row, **values)
            return publisher_to_dict(row)

    async def delete_publisher(self, publisher_id: int) -> None:
        async with get_session() as session:
            repo = PublisherRepository(session)
            if await repo.get_by_id(publisher_id) is None:
                raise not_found("Publisher")
            games = await repo.game_count(publisher_id)
            if games:
                raise bad_request(
                    "PUBLISHER_HAS_GAMES",
                    "Publisher has games and cannot be deleted",
                    games=games,
                )
            await repo.delete(publisher_id)

    @staticmethod
    def is_platform_admin(principal: AuthenticatedPrincipal) -> bool:
        return principal.is_admin or principal.platform_role in PLATFORM_ADMIN_ROLES

    @classmethod
    def ensure_can_manage(cls, principal: AuthenticatedPrincipal, publisher_id: int) -> None:
        """Platform admins, or the publisher's own Publisher-role staff."""
        if cls.is_platform_admin(principal):
            return
        if (
            principal.publisher_id == publisher_id
            and principal.publisher_role == PublisherStaffRole.PUBLISHER
        ):
            return
        raise forbidden("You cannot manage this publisher")

    @staticmethod
    async def _unique_slug(
        repo: PublisherRepository,
        name: str,
        exclude_id: int | None = None,
    ) -> str:
        existing = await repo.get_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise conflict("PUBLISHER_ALREADY_EXISTS", "Publisher with this name already exists")
        slug = slugify(name, fallback="publisher")
        existing = await repo.get_by_slug(slug)
        if existing is not None and existing.id != exclude_id:
            raise conflict("PUBLISHER_ALREADY_EXISTS", "Publisher with this slug already exists")
        return slug
