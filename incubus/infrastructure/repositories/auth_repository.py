from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.domain.pagination import SortSpec
from incubus.infrastructure.db.models.auth import Account, User, UserSession
from incubus.infrastructure.repositories.base import BaseRepository

USER_SORT_COLUMNS = {
    "name": User.name,
    "email": User.email,
    "createdAt": User.created_at,
    "updatedAt": User.updated_at,
    "role": User.role,
}


class AuthRepository(BaseRepository[User]):
    model = User

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_user_by_id(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(
        self,
        *,
        email: str,
        name: str,
        password_hash: str | None,
        role: str = "user",
        image: str | None = None,
        email_verified: bool = False,
    ) -> User:
        return await self.create(
            email=email.strip().lower(),
            name=name.strip(),
            password_hash=password_hash,
            role=role,
            image=image,
            email_verified=email_verified,
            banned=False,
        )

    async def list_users(
        self,
        *,
        search: str | None,
        search_fields: Sequence[str],
        search_operator: str,
        role: str | None,
        banned: bool | None,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[User], int]:
        stmt = select(User)
        if search is not None and search.strip():
            term = search.strip()
            if search_operator == "starts_with":
                pattern = f"{term}%"
            elif search_operator == "ends_with":
                pattern = f"%{term}"
            else:
                pattern = f"%{term}%"
            columns = [USER_SORT_COLUMNS[field] for field in search_fields]
            stmt = stmt.where(or_(*(column.ilike(pattern) for column in columns)))
        if role:
            stmt = stmt.where(User.role == role)
        if banned is not None:
            stmt = stmt.where(User.banned == banned)
        stmt = self.apply_sort(stmt, sort, USER_SORT_COLUMNS)
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    async def list_user_ids(self, *, role: str | None = None) -> list[int]:
        stmt = select(User.id).order_by(User.id.asc())
        if role:
            stmt = stmt.where(User.role == role)
        result = await self.session.execute(stmt)
        return [int(user_id) for user_id in result.scalars().all()]

    async def touch_user_login(self, user_id: int) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(last_login_at=datetime.now(timezone.utc))
        )
        await self.session.execute(stmt)

    async def get_account(self, *, provider: str, provider_account_id: str) -> Account | None:
        stmt = select(Account).where(
            Account.provider == provider,
            Account.provider_account_id == provider_account_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def link_account(
        self,
        *,
        user_id: int,
        provider: str,
        provider_account_id: str,
        scope: str | None,
    ) -> Account:
        account = await self.get_account(
            provider=provider,
            provider_account_id=provider_account_id,
        )
        if account is None:
            account = Account(
                user_id=user_id,
                provider=provider,
                provider_account_id=provider_account_id,
                scope=scope,
            )
            self.session.add(account)
        else:
            account.scope = scope
        await self.session.flush()
        return account

    async def create_session(
        self,
        *,
        user_id: int,
        token_jti: str,
        expires_at: datetime,
        user_agent: str | None,
        ip_address: str | None,
        impersonated_by_user_id: int | None = None,
    ) -> UserSession:
        session = UserSession(
            user_id=user_id,
            token_jti=token_jti,
            expires_at=expires_at,
            user_agent=user_agent,
            ip_address=ip_address,
            impersonated_by_user_id=impersonated_by_user_id,
            is_revoked=False,
        )
        self.session.add(session)
        await self.session.flush()
        return session

    async def get_session_by_jti(self, token_jti: str) -> UserSession | None:
        stmt = select(UserSession).where(UserSession.token_jti == token_jti)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_session_by_id(self, session_id: int) -> UserSession | None:
        return await self.session.get(UserSession, session_id)

    async def list_sessions(
        self,
        *,
        user_id: int,
        active_only: bool = True,
    ) -> Sequence[UserSession]:
        stmt = (
            select(UserSession)
            .where(UserSession.user_id == user_id)
            .order_by(UserSession.created_at.desc())
        )
        if active_only:
            stmt = stmt.where(
                UserSession.is_revoked == False,  # noqa: E712
                UserSession.expires_at > datetime.now(timezone.utc),
            )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def revoke_session(self, token_jti: str) -> bool:
        stmt = (
            update(UserSession)
            .where(UserSession.token_jti == token_jti, UserSession.is_revoked == False)  # noqa: E712
            .values(
                is_revoked=True,
                revoked_at=datetime.now(timezone.utc),
            )
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount and result.rowcount > 0)

    async def revoke_user_sessions(self, user_id: int) -> int:
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_revoked == False)  # noqa: E712
            .values(
                is_revoked=True,
                revoked_at=datetime.now(timezone.utc),
            )
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def prune_sessions(self, *, older_than: datetime) -> int:
        stmt = delete(UserSession).where(
            or_(
                UserSession.expires_at < older_than,
                (UserSession.is_revoked == True) & (UserSession.revoked_at < older_than),  # noqa: E712
            )
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)
