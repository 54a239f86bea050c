from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.auth_service import AuthService
from incubus.core.config import get_settings
from incubus.core.errors import ApiException
from incubus.core.request_context import bind_actor
from incubus.domain.roles import PLATFORM_ADMIN_ROLES

bearer_scheme = HTTPBearer(auto_error=False)


def _extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().INCUBUS_AUTH_COOKIE_NAME) or None


async def get_optional_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedPrincipal | None:
    token = _extract_token(request, credentials)
    if not token:
        return None
    service = AuthService()
    principal = await service.get_principal_from_access_token(token)
    request.state.authenticated_principal = principal
    bind_actor(principal.user_id, principal.impersonated_by)
    return principal


async def get_current_principal(
    request: Request,
    principal: AuthenticatedPrincipal | None = Depends(get_optional_principal),
) -> AuthenticatedPrincipal:
    if principal is None:
        raise ApiException(
            status_code=401,
            error_code="AUTH_REQUIRED",
            message="Authentication is required for this endpoint",
        )
    request.state.authenticated_principal = principal
    return principal


async def require_admin(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> AuthenticatedPrincipal:
    if not principal.is_admin:
        raise ApiException(
            status_code=403,
            error_code="ADMIN_REQUIRED",
            message="Administrator role is required",
        )
    return principal


def require_platform_roles(
    *roles: str,
) -> Callable[[AuthenticatedPrincipal], AuthenticatedPrincipal]:
    """Allow platform staff holding one of ``roles``; no roles means any staff role."""
    allowed = tuple(str(role) for role in roles if role)

    async def _dependency(
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
    ) -> AuthenticatedPrincipal:
        if principal.platform_role is None:
            raise ApiException(
                status_code=403,
                error_code="PLATFORM_STAFF_REQUIRED",
                message="Platform staff access is required",
            )
        if allowed and principal.platform_role not in allowed:
            raise ApiException(
                status_code=403,
                error_code="PERMISSION_DENIED",
                message="You do not have required permissions",
                details={
                    "required_roles": list(allowed),
                    "user_role": principal.platform_role,
                },
            )
        return principal

    return _dependency


def require_publisher_roles(
    *roles: str,
) -> Callable[[AuthenticatedPrincipal], AuthenticatedPrincipal]:
    allowed = tuple(str(role) for role in roles if role)

    async def _dependency(
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
    ) -> AuthenticatedPrincipal:
        if principal.publisher_role is None or principal.publisher_id is None:
            raise ApiException(
                status_code=403,
                error_code="PUBLISHER_STAFF_REQUIRED",
                message="Publisher staff access is required",
            )
        if allowed and principal.publisher_role not in allowed:
            raise ApiException(
                status_code=403,
                error_code="PERMISSION_DENIED",
                message="You do not have required permissions",
                details={
                    "required_roles": list(allowed),
                    "user_role": principal.publisher_role,
                },
            )
        return principal

    return _dependency


async def get_access_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    return _extract_token(request, credentials)


async def require_platform_admin(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> AuthenticatedPrincipal:
    """Site administrators, or platform staff holding the Owner or Admin role."""
    if principal.is_admin or principal.platform_role in PLATFORM_ADMIN_ROLES:
        return principal
    raise ApiException(
        status_code=403,
        error_code="PERMISSION_DENIED",
        message="You do not have required permissions",
        details={
            "required_roles": sorted(str(role) for role in PLATFORM_ADMIN_ROLES),
            "user_role": principal.platform_role,
        },
    )
