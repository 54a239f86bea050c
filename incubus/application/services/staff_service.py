from __future__ import annotations

import logging

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.core.database import get_session
from incubus.core.errors import ApiException, bad_request, conflict, forbidden, not_found
from incubus.domain.pagination import PageParams
from incubus.domain.roles import PlatformStaffRole, PlayerType, PublisherStaffRole
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.catalog_repository import PublisherRepository
from incubus.infrastructure.repositories.staff_repository import StaffRepository

logger = logging.getLogger(__name__)


def staff_to_dict(staff, user) -> dict:
    row = {
        "id": staff.id,
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "role": staff.role,
        "created_at": staff.created_at,
    }
    publisher_id = getattr(staff, "publisher_id", None)
    if publisher_id is not None:
        row["publisher_id"] = publisher_id
    return row


def _already_registered(kind: str) -> ApiException:
    return bad_request("ALREADY_REGISTERED", f"User is already registered as {kind}")


class StaffService:
    async def register_platform_staff(self, principal: AuthenticatedPrincipal) -> dict:
        async with get_session() as session:
            repo = StaffRepository(session)
            if await repo.get_platform_staff(principal.user_id) is not None:
                raise _already_registered("platform staff")
            staff = await repo.create_platform_staff(
                user_id=principal.user_id,
                role=PlatformStaffRole.SUPPORT.value,
            )
            user = await AuthRepository(session).get_user_by_id(principal.user_id)
            return staff_to_dict(staff, user)

    async def register_publisher_staff(
        self,
        principal: AuthenticatedPrincipal,
        *,
        publisher_id: int,
        role: str,
    ) -> dict:
        async with get_session() as session:
            repo = StaffRepository(session)
            if await repo.get_publisher_staff(principal.user_id) is not None:
                raise _already_registered("publisher staff")
            if await PublisherRepository(session).get_by_id(publisher_id) is None:
                raise not_found("Publisher")
            staff = await repo.create_publisher_staff(
                user_id=principal.user_id,
                publisher_id=publisher_id,
                role=PublisherStaffRole(role).value,
            )
            user = await AuthRepository(session).get_user_by_id(principal.user_id)
            return staff_to_dict(staff, user)

    async def register_player(self, principal: AuthenticatedPrincipal) -> dict:
        async with get_session() as session:
            repo = StaffRepository(session)
            if await repo.get_player(principal.user_id) is not None:
                raise _already_registered("a player")
            player = await repo.create_player(
                user_id=principal.user_id,
                player_type=PlayerType.STANDARD.value,
            )
            return {
                "id": player.id,
                "user_id": player.user_id,
                "type": player.type,
                "created_at": player.created_at,
            }

    async def list_platform_staff(self, *, params: PageParams) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await StaffRepository(session).list_platform_staff(
                limit=params.limit,
                offset=params.offset,
            )
            return [staff_to_dict(staff, user) for staff, user in rows], total

    async def create_platform_staff(self, *, email: str, name: str, role: str) -> dict:
        async with get_session() as session:
            auth_repo = AuthRepository(session)
            repo = StaffRepository(session)
            user = await auth_repo.get_user_by_email(email)
            if user is None:
                user = await auth_repo.create_user(
                    email=email,
                    name=name,
                    password_hash=None,
                    email_verified=True,
                )
            elif await repo.get_platform_staff(user.id) is not None:
                raise conflict("STAFF_ALREADY_EXISTS", "User is already platform staff")
            staff = await repo.create_platform_staff(
                user_id=user.id,
                role=PlatformStaffRole(role).value,
            )
            logger.info("Platform staff created user_id=%s role=%s", user.id, staff.role)
            return staff_to_dict(staff, user)

    async def delete_platform_staff(self, principal: AuthenticatedPrincipal, *, user_id: int) -> None:
        """Remove the staff registration together with the staff user's account."""
        if user_id == principal.user_id:
            raise bad_request("CANNOT_REMOVE_SELF", "You cannot remove yourself")
        async with get_session() as session:
            repo = StaffRepository(session)
            staff = await repo.get_platform_staff(user_id)
            if staff is None:
                raise not_found("Platform staff", "STAFF_NOT_FOUND")
            await repo.delete_platform_staff(staff.id)
            await AuthRepository(session).delete(user_id)

    async def list_publisher_staff(self, *, publisher_id: int) -> list[dict]:
        async with get_session() as session:
            if await PublisherRepository(session).get_by_id(publisher_id) is None:
                raise not_found("Publisher")
            rows = await StaffRepository(session).list_publisher_staff(publisher_id=publisher_id)
            return [staff_to_dict(staff, user) for staff, user in rows]

    async def add_publisher_staff(
        self,
        *,
        publisher_id: int,
        email: str,
        name: str | None,
        role: str,
    ) -> dict:
        async with get_session() as session:
            if await PublisherRepository(session).get_by_id(publisher_id) is None:
                raise not_found("Publisher")
            auth_repo = AuthRepository(session)
            repo = StaffRepository(session)
            user = await auth_repo.get_user_by_email(email)
            if user is None:
                user = await auth_repo.create_user(
                    email=email,
                    name=name or email.split("@")[0],
                    password_hash=None,
                )
            elif await repo.get_publisher_staff(user.id) is not None:
                raise conflict("STAFF_ALREADY_EXISTS", "User is already publisher staff")
            staff = await repo.create_publisher_staff(
                user_id=user.id,
                publisher_id=publisher_id,
                role=PublisherStaffRole(role).value,
            )
            return staff_to_dict(staff, user)

    async def remove_publisher_staff(
        self,
        principal: AuthenticatedPrincipal,
        *,
        publisher_id: int,
        user_id: int,
    ) -> None:
        if user_id == principal.user_id:
            raise forbidden("You cannot remove yourself from the publisher")
        async with get_session() as session:
            repo = StaffRepository(session)
            staff = await repo.get_publisher_staff(user_id)
            if staff is None or staff.publisher_id != publisher_id:
                raise not_found("Publisher staff", "STAFF_NOT_FOUND")
            await repo.delete_publisher_staff(staff.id)
