from __future__ import annotations

from pydantic import BaseModel


class NavItemResponse(BaseModel):
    key: str
    title: str
    path: str
    icon: str
    required_role: str | None = None


class NavigationResponse(BaseModel):
    role: str
    roles: list[str]
    items: list[NavItemResponse]
