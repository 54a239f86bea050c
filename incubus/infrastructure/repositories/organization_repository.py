from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.db.models.organizations import (
    Invitation,
    Member,
    Organization,
)
from incubus.infrastructure.repositories.base import BaseRepository


class OrganizationRepository(BaseRepository[Organization]):
    model = Organization

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_slug(self, slug: str) -> Organization | None:
        stmt = select(Organization).where(Organization.slug == slug)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_organizations(
        self,
        *,
        member_user_id: int | None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[Organization], int]:
        stmt = select(Organization)
        if member_user_id is not None:
            stmt = stmt.where(
                Organization.id.in_(
                    select(Member.organization_id).where(Member.user_id == member_user_id)
                )
            )
        stmt = stmt.order_by(Organization.created_at.desc(), Organization.id.desc())
        return await self.fetch_page(stmt, limit=limit, offset=offset)

    # Members

    async def get_member(self, *, organization_id: int, user_id: int) -> Member | None:
        stmt = select(Member).where(
            Member.organization_id == organization_id,
            Member.user_id == user_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_member_by_id(self, *, organization_id: int, member_id: int) -> Member | None:
        stmt = select(Member).where(
            Member.organization_id == organization_id,
            Member.id == member_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def add_member(self, *, organization_id: int, user_id: int, role: str) -> Member:
        row = Member(organization_id=organization_id, user_id=user_id, role=role)
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_members(self, organization_id: int) -> Sequence[tuple[Member, User]]:
        stmt = (
            select(Member, User)
            .join(User, User.id == Member.user_id)
            .where(Member.organization_id == organization_id)
            .order_by(Member.created_at.asc(), Member.id.asc())
        )
        return (await self.session.execute(stmt)).all()

    async def count_members(self, organization_id: int) -> int:
        return await self.count_rows(Member, Member.organization_id == organization_id)

    async def count_owners(self, organization_id: int) -> int:
        return await self.count_rows(
            Member,
            Member.organization_id == organization_id,
            Member.role == "owner",
        )

    async def remove_member(self, member_id: int) -> bool:
        result = await self.session.execute(delete(Member).where(Member.id == member_id))
        return bool(result.rowcount)

    async def organization_ids_for_user(self, user_id: int) -> dict[int, str]:
        stmt = select(Member.organization_id, Member.role).where(Member.user_id == user_id)
        rows = (await self.session.execute(stmt)).all()
        return {int(organization_id): str(role) for organization_id, role in rows}

    # Invitations

    async def create_invitation(
        self,
        *,
        organization_id: int,
        email: str,
        role: str,
        expires_at: datetime,
        inviter_id: int,
    ) -> Invitation:
        row = Invitation(
            organization_id=organization_id,
            email=email,
            role=role,
            status="PENDING",
            expires_at=expires_at,
            inviter_id=inviter_id,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_invitation(self, *, organization_id: int, invitation_id: int) -> Invitation | None:
        stmt = select(Invitation).where(
            Invitation.organization_id == organization_id,
            Invitation.id == invitation_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def find_pending_invitation(self, *, organization_id: int, email: str) -> Invitation | None:
        stmt = select(Invitation).where(
            Invitation.organization_id == organization_id,
            func.lower(Invitation.email) == email.lower(),
            Invitation.status == "PENDING",
        )
        return (await self.session.execute(stmt)).scalars().first()

    async def list_invitations(
        self,
        *,
        organization_id: int,
        status: str | None,
    ) -> Sequence[Invitation]:
        stmt = select(Invitation).where(Invitation.organization_id == organization_id)
        if status:
            stmt = stmt.where(Invitation.status == status)
        stmt = stmt.order_by(Invitation.created_at.desc())
        return (await self.session.execute(stmt)).scalars().all()

    async def list_pending_for_email(self, email: str) -> Sequence[tuple[Invitation, Organization]]:
        stmt = (
            select(Invitation, Organization)
            .join(Organization, Organization.id == Invitation.organization_id)
            .where(
                func.lower(Invitation.email) == email.lower(),
                Invitation.status == "PENDING",
            )
            .order_by(Invitation.created_at.desc())
        )
        return (await self.session.execute(stmt)).all()

    async def expire_invitations(self, *, now: datetime) -> int:
        stmt = (
            update(Invitation)
            .where(Invitation.status == "PENDING", Invitation.expires_at <= now)
            .values(status="EXPIRED")
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)
