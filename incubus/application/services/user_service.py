from __future__ import annotations

import logging
from typing import Any

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.core.database import get_session
from incubus.core.errors import conflict, forbidden, not_found
from incubus.core.security import hash_password
from incubus.domain.pagination import PageParams, SortSpec
from incubus.domain.roles import UserRole
from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.repositories.auth_repository import AuthRepository

logger = logging.getLogger(__name__)

PROFILE_FIELDS = frozenset({"name", "image"})
ADMIN_ONLY_FIELDS = frozenset({"role", "banned", "ban_reason", "ban_expires"})
NULLABLE_FIELDS = frozenset({"image", "ban_reason", "ban_expires"})


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "email_verified": user.email_verified,
        "role": user.role,
        "banned": user.banned,
        "ban_reason": user.ban_reason,
        "ban_expires": user.ban_expires,
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


class UserService:
    async def get_user(self, user_id: int) -> dict:
        async with get_session() as session:
            user = await AuthRepository(session).get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            return user_to_dict(user)

    async def update_profile(self, *, user_id: int, changes: dict[str, Any]) -> dict:
        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            values = {key: value for key, value in changes.items() if key in PROFILE_FIELDS}
            if "name" in values and values["name"]:
                values["name"] = values["name"].strip()
            await repo.update(user, **values)
            return user_to_dict(user)

    async def list_users(
        self,
        *,
        params: PageParams,
        sort: SortSpec,
        search: str | None = None,
        role: str | None = None,
        banned: bool | None = None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await AuthRepository(session).list_users(
                search=search,
                search_fields=("name", "email"),
                search_operator="contains",
                role=role,
                banned=banned,
                sort=sort,
                limit=params.limit,
                offset=params.offset,
            )
            return [user_to_dict(row) for row in rows], total

    async def create_user(
        self,
        *,
        email: str,
        password: str | None,
        name: str,
        role: str = UserRole.USER.value,
        image: str | None = None,
    ) -> dict:
        async with get_session() as session:
            repo = AuthRepository(session)
            if await repo.get_user_by_email(email) is not None:
                raise conflict("EMAIL_ALREADY_EXISTS", "A user with this email already exists")
            user = await repo.create_user(
                email=email,
                name=name,
                password_hash=hash_password(password) if password else None,
                role=role,
                image=image,
            )
            logger.info("User created user_id=%s role=%s", user.id, user.role)
            return user_to_dict(user)

    async def update_user(
        self,
        *,
        principal: AuthenticatedPrincipal,
        user_id: int,
        changes: dict[str, Any],
    ) -> dict:
        if not principal.is_admin:
            if principal.user_id != user_id:
                raise forbidden("You can only update your own account")
            blocked = sorted(ADMIN_ONLY_FIELDS.intersection(changes))
            if blocked:
                raise forbidden("Only administrators can change these fields", fields=blocked)

        changes = {
            key: value
            for key, value in changes.items()
            if value is not None or key in NULLABLE_FIELDS
        }
        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            email = changes.get("email")
            if email and email.strip().lower() != user.email:
                existing = await repo.get_user_by_email(email)
                if existing is not None and existing.id != user.id:
                    raise conflict("EMAIL_ALREADY_EXISTS", "A user with this email already exists")
                changes["email"] = email.strip().lower()
            password = changes.pop("password", None)
            if password:
                changes["password_hash"] = hash_password(password)
            await repo.update(user, **changes)
            return user_to_dict(user)

    async def delete_user(self, user_id: int) -> None:
        async with get_session() as session:
            deleted = await AuthRepository(session).delete(user_id)
            if not deleted:
                raise not_found("User")
            logger.info("User deleted user_id=%s", user_id)
