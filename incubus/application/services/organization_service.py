from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.catalog_service import PublisherService
from incubus.application.services.notification_service import NotificationService
from incubus.core.config import get_settings
from incubus.core.database import get_session
from incubus.core.errors import ApiException, bad_request, conflict, forbidden, not_found
from incubus.core.security import as_utc, utc_now
from incubus.domain.pagination import PageParams
from incubus.domain.policies.organization_access import (
    INVITEE_STATUSES,
    InvitationStatus,
    OrganizationAccessPolicy,
)
from incubus.domain.roles import OrganizationRole
from incubus.domain.slugs import slugify
from incubus.infrastructure.db.models.organizations import Invitation, Member, Organization
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.catalog_repository import PublisherRepository
from incubus.infrastructure.repositories.organization_repository import OrganizationRepository

logger = logging.getLogger(__name__)

PUBLISHER_METADATA = {"type": "publisher", "verified": False, "royalty_percentage": 10}
MEMBER_MANAGER_ROLES = (OrganizationRole.OWNER, OrganizationRole.ADMIN)


def organization_to_dict(
    organization: Organization,
    *,
    role: str | None = None,
    publisher_id: int | None = None,
) -> dict:
    return {
        "id": organization.id,
        "name": organization.name,
        "slug": organization.slug,
        "logo": organization.logo,
        "metadata": organization.metadata_json or {},
        "role": role,
        "publisher_id": publisher_id,
        "created_at": organization.created_at,
        "updated_at": organization.updated_at,
    }


def member_to_dict(member: Member, user=None) -> dict:
    return {
        "id": member.id,
        "organization_id": member.organization_id,
        "user_id": member.user_id,
        "role": member.role,
        "name": user.name if user is not None else None,
        "email": user.email if user is not None else None,
        "image": user.image if user is not None else None,
        "created_at": member.created_at,
    }


def invitation_to_dict(invitation: Invitation, organization: Organization | None = None) -> dict:
    return {
        "id": invitation.id,
        "organization_id": invitation.organization_id,
        "organization_name": organization.name if organization is not None else None,
        "email": invitation.email,
        "role": invitation.role,
        "status": invitation.status,
        "expires_at": invitation.expires_at,
        "inviter_id": invitation.inviter_id,
        "created_at": invitation.created_at,
        "updated_at": invitation.updated_at,
    }


async def authorize_organization(
    session: AsyncSession,
    principal: AuthenticatedPrincipal,
    organization_id: int,
    required_roles: Iterable[str] = (),
) -> Member | None:
    """Return the caller's membership, or ``None`` for platform admins.

    A non-member, or a member whose role is not in ``required_roles``, gets 403.
    An empty ``required_roles`` admits any member.
    """
    repo = OrganizationRepository(session)
    if await repo.get_by_id(organization_id) is None:
        raise not_found("Organization")
    if PublisherService.is_platform_admin(principal):
        return None
    member = await repo.get_member(organization_id=organization_id, user_id=principal.user_id)
    if member is None:
        raise forbidden("You are not a member of this organization")
    required = [str(role) for role in required_roles]
    if required and member.role not in required:
        raise ApiException(
            status_code=403,
            error_code="PERMISSION_DENIED",
            message="You do not have required permissions",
            details={"required_roles": required, "user_role": member.role},
        )
    return member


class OrganizationService:
    def __init__(self, notification_service: NotificationService | None = None):
        self.notification_service = notification_service or NotificationService()

    async def list_organizations(
        self,
        principal: AuthenticatedPrincipal,
        *,
        params: PageParams,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            repo = OrganizationRepository(session)
            admin = PublisherService.is_platform_admin(principal)
            rows, total = await repo.list_organizations(
                member_user_id=None if admin else principal.user_id,
                limit=params.limit,
                offset=params.offset,
            )
            roles = await repo.organization_ids_for_user(principal.user_id)
            publisher_repo = PublisherRepository(session)
            data = []
            for row in rows:
                publisher = await publisher_repo.get_by_organization(row.id)
                data.append(
                    organization_to_dict(
                        row,
                        role=roles.get(row.id),
                        publisher_id=publisher.id if publisher is not None else None,
                    )
                )
            return data, total

    async def create_organization(
        self,
        principal: AuthenticatedPrincipal,
        *,
        name: str,
        logo: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict:
        name = name.strip()
        async with get_session() as session:
            repo = OrganizationRepository(session)
            slug = slugify(name, fallback="organization")
            if await repo.get_by_slug(slug) is not None:
                raise conflict("ORGANIZATION_ALREADY_EXISTS", "An organization with this slug already exists")
            publisher_repo = PublisherRepository(session)
            publisher_slug = await PublisherService._unique_slug(publisher_repo, name)
            organization = await repo.create(
                name=name,
                slug=slug,
                logo=logo,
                metadata_json={**(metadata or {}), **PUBLISHER_METADATA},
            )
            member = await repo.add_member(
                organization_id=organization.id,
                user_id=principal.user_id,
                role=OrganizationRole.OWNER.value,
            )
            publisher = await publisher_repo.create(
                name=name,
                slug=publisher_slug,
                logo=logo,
                is_verified=False,
                organization_id=organization.id,
            )
            logger.info(
                "Organization created id=%s slug=%s owner_user_id=%s publisher_id=%s",
                organization.id,
                organization.slug,
                principal.user_id,
                publisher.id,
            )
            return organization_to_dict(organization, role=member.role, publisher_id=publisher.id)

    async def get_organization(self, principal: AuthenticatedPrincipal, organization_id: int) -> dict:
        async with get_session() as session:
            member = await authorize_organization(session, principal, organization_id)
            repo = OrganizationRepository(session)
            organization = await repo.get_by_id(organization_id)
            publisher = await PublisherRepository(session).get_by_organization(organization_id)
            return {
                **organization_to_dict(
                    organization,
                    role=member.role if member is not None else None,
                    publisher_id=publisher.id if publisher is not None else None,
                ),
                "member_count": await repo.count_members(organization_id),
            }

    async def update_organization(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        values: dict[str, Any],
    ) -> dict:
        async with get_session() as session:
            member = await authorize_organization(
                session,
                principal,
                organization_id,
                OrganizationAccessPolicy.roles_allowing("organization", "update"),
            )
            repo = OrganizationRepository(session)
            organization = await repo.get_by_id(organization_id)
            if values.get("name") and values["name"].strip() != organization.name:
                values["name"] = values["name"].strip()
                slug = slugify(values["name"], fallback="organization")
                existing = await repo.get_by_slug(slug)
                if existing is not None and existing.id != organization.id:
                    raise conflict(
                        "ORGANIZATION_ALREADY_EXISTS",
                        "An organization with this slug already exists",
                    )
                values["slug"] = slug
            else:
                values.pop("name", None)
            if "metadata" in values:
                values["metadata_json"] = {
                    **(organization.metadata_json or {}),
                    **(values.pop("metadata") or {}),
                }
            await repo.update(organization, **values)
            return organization_to_dict(
                organization,
                role=member.role if member is not None else None,
            )

    async def delete_organization(self, principal: AuthenticatedPrincipal, organization_id: int) -> None:
        async with get_session() as session:
            await authorize_organization(
                session,
                principal,
                organization_id,
                OrganizationAccessPolicy.roles_allowing("organization", "delete"),
            )
            await OrganizationRepository(session).delete(organization_id)
            logger.info("Organization deleted id=%s by user_id=%s", organization_id, principal.user_id)

    # Members

    async def list_members(self, principal: AuthenticatedPrincipal, organization_id: int) -> list[dict]:
        async with get_session() as session:
            await authorize_organization(session, principal, organization_id)
            rows = await OrganizationRepository(session).list_members(organization_id)
            return [member_to_dict(member, user) for member, user in rows]

    async def add_member(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        user_id: int,
        role: str,
    ) -> dict:
        async with get_session() as session:
            await authorize_organization(session, principal, organization_id, MEMBER_MANAGER_ROLES)
            user = await AuthRepository(session).get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            repo = OrganizationRepository(session)
            if await repo.get_member(organization_id=organization_id, user_id=user_id) is not None:
                raise conflict("MEMBER_ALREADY_EXISTS", "User is already a member of this organization")
            member = await repo.add_member(
                organization_id=organization_id,
                user_id=user_id,
                role=OrganizationRole(role).value,
            )
            return member_to_dict(member, user)

    async def update_member_role(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        member_id: int,
        role: str,
    ) -> dict:
        async with get_session() as session:
            await authorize_organization(session, principal, organization_id, (OrganizationRole.OWNER,))
            repo = OrganizationRepository(session)
            member = await repo.get_member_by_id(organization_id=organization_id, member_id=member_id)
            if member is None:
                raise not_found("Member")
            role = OrganizationRole(role).value
            if member.role == OrganizationRole.OWNER and role != OrganizationRole.OWNER:
                await self._ensure_not_last_owner(repo, organization_id)
            await repo.update(member, role=role)
            return member_to_dict(member)

    async def remove_member(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        member_id: int,
    ) -> None:
        async with get_session() as session:
            repo = OrganizationRepository(session)
            member = await repo.get_member_by_id(organization_id=organization_id, member_id=member_id)
            if member is None:
                raise not_found("Member")
            if member.user_id != principal.user_id:
                await authorize_organization(
                    session,
                    principal,
                    organization_id,
                    (OrganizationRole.OWNER,),
                )
            if member.role == OrganizationRole.OWNER:
                await self._ensure_not_last_owner(repo, organization_id)
            await repo.remove_member(member.id)

    # Invitations

    async def create_invitation(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        email: str,
        role: str = OrganizationRole.MEMBER.value,
    ) -> dict:
        email = email.strip().lower()
        settings = get_settings()
        async with get_session() as session:
            await authorize_organization(
                session,
                principal,
                organization_id,
                OrganizationAccessPolicy.roles_allowing("invitation", "create"),
            )
            repo = OrganizationRepository(session)
            organization = await repo.get_by_id(organization_id)
            invitee = await AuthRepository(session).get_user_by_email(email)
            if invitee is not None and await repo.get_member(
                organization_id=organization_id,
                user_id=invitee.id,
            ):
                raise conflict("MEMBER_ALREADY_EXISTS", "User is already a member of this organization")
            if await repo.find_pending_invitation(organization_id=organization_id, email=email):
                raise conflict("INVITATION_ALREADY_EXISTS", "A pending invitation already exists for this email")
            invitation = await repo.create_invitation(
                organization_id=organization_id,
                email=email,
                role=OrganizationRole(role).value,
                expires_at=utc_now() + timedelta(days=settings.INCUBUS_INVITATION_TTL_DAYS),
                inviter_id=principal.user_id,
            )
            if invitee is not None:
                await self.notification_service.notify(
                    session,
                    user_ids=[invitee.id],
                    sender_id=principal.user_id,
                    event_type="organization.invitation",
                    category="organizations",
                    title=f"Invitation to join {organization.name}",
                    message=f"{principal.name} invited you to join {organization.name} as {invitation.role}.",
                    link=f"/organizations/accept-invitation/{invitation.id}",
                    entity_type="invitation",
                    entity_id=invitation.id,
                    data={"organization_id": organization_id},
                )
            logger.info(
                "Invitation created id=%s organization_id=%s email=%s role=%s",
                invitation.id,
                organization_id,
                email,
                invitation.role,
            )
            return invitation_to_dict(invitation, organization)

    async def list_invitations(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        status: str | None,
    ) -> list[dict]:
        async with get_session() as session:
            await authorize_organization(session, principal, organization_id)
            rows = await OrganizationRepository(session).list_invitations(
                organization_id=organization_id,
                status=status,
            )
            return [invitation_to_dict(row) for row in rows]

    async def get_invitation(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        invitation_id: int,
    ) -> dict:
        async with get_session() as session:
            repo = OrganizationRepository(session)
            invitation = await repo.get_invitation(
                organization_id=organization_id,
                invitation_id=invitation_id,
            )
            if invitation is None:
                raise not_found("Invitation")
            if not self._is_invitee(principal, invitation):
                await authorize_organization(session, principal, organization_id)
            return invitation_to_dict(invitation, await repo.get_by_id(organization_id))

    async def list_my_invitations(self, principal: AuthenticatedPrincipal) -> list[dict]:
        async with get_session() as session:
            rows = await OrganizationRepository(session).list_pending_for_email(principal.email)
            now = utc_now()
            return [
                invitation_to_dict(invitation, organization)
                for invitation, organization in rows
                if as_utc(invitation.expires_at) > now
            ]

    async def update_invitation_status(
        self,
        principal: AuthenticatedPrincipal,
        *,
        organization_id: int,
        invitation_id: int,
        status: str,
    ) -> dict:
        status = InvitationStatus(status)
        expired = False
        async with get_session() as session:
            repo = OrganizationRepository(session)
            invitation = await repo.get_invitation(
                organization_id=organization_id,
                invitation_id=invitation_id,
            )
            if invitation is None:
                raise not_found("Invitation")
            if status in INVITEE_STATUSES:
                if not self._is_invitee(principal, invitation):
                    raise forbidden("Only the invited user can respond to this invitation")
            elif status == InvitationStatus.CANCELLED:
                await authorize_organization(
                    session,
                    principal,
                    organization_id,
                    OrganizationAccessPolicy.roles_allowing("invitation", "cancel"),
                )
            else:
                raise bad_request("INVALID_STATUS", "Invitation status cannot be set to this value")

            if invitation.status != InvitationStatus.PENDING:
                raise bad_request(
                    "INVITATION_NOT_PENDING",
                    "Invitation is no longer pending",
                    status=invitation.status,
                )
            if as_utc(invitation.expires_at) <= utc_now():
                await repo.update(invitation, status=InvitationStatus.EXPIRED.value)
                expired = True
            else:
                if status == InvitationStatus.ACCEPTED:
                    existing = await repo.get_member(
                        organization_id=organization_id,
                        user_id=principal.user_id,
                    )
                    if existing is None:
                        await repo.add_member(
                            organization_id=organization_id,
                            user_id=principal.user_id,
                            role=invitation.role,
                        )
                await repo.update(invitation, status=status.value)
                logger.info(
                    "Invitation id=%s organization_id=%s set to %s by user_id=%s",
                    invitation.id,
                    organization_id,
                    status.value,
                    principal.user_id,
                )
                result = invitation_to_dict(invitation, await repo.get_by_id(organization_id))
        if expired:
            raise bad_request("INVITATION_EXPIRED", "Invitation has expired")
        return result

    @staticmethod
    def _is_invitee(principal: AuthenticatedPrincipal, invitation: Invitation) -> bool:
        return principal.email.strip().lower() == invitation.email.strip().lower()

    @staticmethod
    async def _ensure_not_last_owner(repo: OrganizationRepository, organization_id: int) -> None:
        if await repo.count_owners(organization_id) <= 1:
            raise bad_request(
                "LAST_OWNER",
                "The organization must keep at least one owner",
            )
