from incubus.api.deps.auth import (
    get_current_principal,
    get_optional_principal,
    require_admin,
    require_platform_admin,
    require_platform_roles,
    require_publisher_roles,
)
from incubus.api.deps.pagination import get_page_params

__all__ = [
    "get_current_principal",
    "get_optional_principal",
    "get_page_params",
    "require_admin",
    "require_platform_admin",
    "require_platform_roles",
    "require_publisher_roles",
]
