from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType

from incubus.domain.roles import OrganizationRole


class InvitationStatus(StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


INVITEE_STATUSES = frozenset({InvitationStatus.ACCEPTED, InvitationStatus.REJECTED})


class OrganizationAccessPolicy:
    """Resource/action statements granted to each organization member role."""

    STATEMENTS = MappingProxyType(
        {
            OrganizationRole.OWNER: {
                "organization": frozenset({"update", "delete"}),
                "member": frozenset({"create", "update", "delete"}),
                "invitation": frozenset({"create", "cancel"}),
                "game": frozenset({"create", "update", "delete", "publish"}),
                "gameItem": frozenset({"create", "update", "delete"}),
            },
            OrganizationRole.ADMIN: {
                "organization": frozenset({"update"}),
                "member": frozenset({"create", "update", "delete"}),
                "invitation": frozenset({"create", "cancel"}),
                "game": frozenset({"create", "update", "publish"}),
                "gameItem": frozenset({"create", "update"}),
            },
            OrganizationRole.MEMBER: {
                "game": frozenset({"create"}),
                "gameItem": frozenset({"create"}),
            },
            OrganizationRole.PUBLISHER: {
                "organization": frozenset({"update"}),
                "member": frozenset({"create"}),
                "invitation": frozenset({"create", "cancel"}),
                "game": frozenset({"create", "update", "publish"}),
                "gameItem": frozenset({"create", "update"}),
            },
        }
    )

    # Roles allowed to manage catalog entries on behalf of a publisher organization.
    GAME_MANAGER_ROLES = frozenset(
        {OrganizationRole.OWNER, OrganizationRole.ADMIN, OrganizationRole.PUBLISHER}
    )

    @classmethod
    def allows(cls, role: str | None, resource: str, action: str) -> bool:
        if role is None:
            return False
        try:
            statements = cls.STATEMENTS[OrganizationRole(role)]
        except ValueError:
            return False
        return action in statements.get(resource, frozenset())

    @classmethod
    def roles_allowing(cls, resource: str, action: str) -> list[str]:
        return [
            role.value
            for role, statements in cls.STATEMENTS.items()
            if action in statements.get(resource, frozenset())
        ]
