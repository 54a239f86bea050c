from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    user_id: int
    email: str
    name: str
    role: str
    roles: tuple[str, ...] = field(default_factory=tuple)
    platform_role: str | None = None
    publisher_role: str | None = None
    publisher_id: int | None = None
    is_player: bool = False
    image: str | None = None
    token_jti: str | None = None
    impersonated_by: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class IssuedAccessToken:
    access_token: str
    expires_at: datetime
    token_jti: str
