from __future__ import annotations

import json
from enum import StrEnum
from typing import Iterable


class UserRole(StrEnum):
    ADMIN = "admin"
    USER = "user"


class PlatformStaffRole(StrEnum):
    OWNER = "Owner"
    ADMIN = "Admin"
    MODERATOR = "Moderator"
    SUPPORT = "Support"


class PublisherStaffRole(StrEnum):
    PUBLISHER = "Publisher"
    DEVELOPER = "Developer"
    ARTIST = "Artist"
    TESTER = "Tester"
    QA = "QA"
    MARKETING = "Marketing"


class PlayerType(StrEnum):
    STANDARD = "Standard"
    PREMIUM = "Premium"


class OrganizationRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    PUBLISHER = "publisher"


PLATFORM_ADMIN_ROLES = frozenset({PlatformStaffRole.OWNER, PlatformStaffRole.ADMIN})
PLATFORM_MANAGER_ROLES = frozenset(
    {PlatformStaffRole.OWNER, PlatformStaffRole.ADMIN, PlatformStaffRole.MODERATOR}
)


def platform_role_tag(role: str) -> str:
    return f"platform:{role}"


def publisher_role_tag(role: str) -> str:
    return f"publisher:{role}"


def build_role_tags(
    *,
    user_role: str,
    platform_role: str | None = None,
    publisher_role: str | None = None,
    is_player: bool = False,
) -> tuple[str, ...]:
    tags = [user_role]
    if platform_role:
        tags.append(platform_role_tag(platform_role))
    if publisher_role:
        tags.append(publisher_role_tag(publisher_role))
    if is_player:
        tags.append("player")
    return tuple(tags)


def account_kind(
    *,
    platform_role: str | None,
    publisher_role: str | None,
    is_player: bool,
) -> str | None:
    if platform_role:
        return "platform"
    if publisher_role:
        return "publisher"
    if is_player:
        return "player"
    return None


def encode_roles_header(roles: Iterable[str]) -> str:
    return json.dumps(list(roles), separators=(",", ":"))


def parse_roles_header(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if isinstance(decoded, str):
        return [decoded]
    if not isinstance(decoded, list):
        return []
    return [item for item in decoded if isinstance(item, str)]


def has_any_role(roles: Iterable[str], required: Iterable[str]) -> bool:
    required_set = set(required)
    if not required_set:
        return True
    return bool(required_set.intersection(roles))


def has_all_roles(roles: Iterable[str], required: Iterable[str]) -> bool:
    return set(required).issubset(set(roles))
