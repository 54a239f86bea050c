from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class NavItem:
    key: str
    title: str
    path: str
    icon: str
    required_role: str | None = "admin"

    def as_dict(self) -> dict:
        return asdict(self)


ADMIN_NAV_ITEMS: tuple[NavItem, ...] = (
    NavItem(key="dashboard", title="Dashboard", path="/admin", icon="layout-dashboard"),
    NavItem(key="users", title="Users", path="/admin/users", icon="users"),
    NavItem(key="moderation", title="Moderation", path="/admin/moderation", icon="shield"),
    NavItem(key="monitoring", title="Monitoring", path="/admin/monitoring", icon="activity"),
    NavItem(key="analytics", title="Analytics", path="/admin/analytics", icon="bar-chart"),
    NavItem(key="audit-logs", title="Audit Logs", path="/admin/audit-logs", icon="file-text"),
    NavItem(
        key="notifications",
        title="Notifications",
        path="/admin/notifications",
        icon="bell",
    ),
    NavItem(key="settings", title="Settings", path="/admin/settings", icon="settings"),
)


def visible_nav_items(
    role: str | None,
    items: tuple[NavItem, ...] = ADMIN_NAV_ITEMS,
) -> list[NavItem]:
    return [item for item in items if item.required_role is None or item.required_role == role]
