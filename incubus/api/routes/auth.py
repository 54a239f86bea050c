from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request, Response

from incubus.api.deps.auth import get_current_principal, get_optional_principal
from incubus.api.schemas.auth import (
    AuthLoginResponse,
    AuthSessionResponse,
    AuthUserResponse,
    SignInRequest,
    SignUpRequest,
    UserSessionResponse,
)
from incubus.api.schemas.common import OperationResponse
from incubus.application.dto.auth import AuthenticatedPrincipal, IssuedAccessToken
from incubus.application.services.auth_service import AuthService
from incubus.core.config import IncubusSettings

router = APIRouter()


def get_auth_service() -> AuthService:
    return AuthService()


def to_auth_user(principal: AuthenticatedPrincipal) -> AuthUserResponse:
    return AuthUserResponse(
        user_id=principal.user_id,
        email=principal.email,
        name=principal.name,
        role=principal.role,
        roles=list(principal.roles),
        platform_role=principal.platform_role,
        publisher_role=principal.publisher_role,
        publisher_id=principal.publisher_id,
        is_player=principal.is_player,
        image=principal.image,
        impersonated_by=principal.impersonated_by,
    )


def set_auth_cookie(
    response: Response,
    *,
    settings: IncubusSettings,
    token: str,
    expires_at: datetime,
) -> None:
    expires_in_seconds = max(
        0,
        int((expires_at - datetime.now(timezone.utc)).total_seconds()),
    )
    max_age = min(settings.auth_cookie_max_age_seconds, expires_in_seconds) if expires_in_seconds else 0
    response.set_cookie(
        key=settings.INCUBUS_AUTH_COOKIE_NAME,
        value=token,
        max_age=max_age,
        expires=max_age,
        path=settings.INCUBUS_AUTH_COOKIE_PATH or "/",
        domain=settings.auth_cookie_domain,
        secure=settings.INCUBUS_AUTH_COOKIE_SECURE,
        httponly=True,
        samesite=settings.auth_cookie_samesite,
    )


def clear_auth_cookie(
    response: Response,
    *,
    settings: IncubusSettings,
) -> None:
    response.delete_cookie(
        key=settings.INCUBUS_AUTH_COOKIE_NAME,
        path=settings.INCUBUS_AUTH_COOKIE_PATH or "/",
        domain=settings.auth_cookie_domain,
        secure=settings.INCUBUS_AUTH_COOKIE_SECURE,
        httponly=True,
        samesite=settings.auth_cookie_samesite,
    )


def session_response(
    response: Response,
    *,
    settings: IncubusSettings,
    issued: IssuedAccessToken,
    principal: AuthenticatedPrincipal,
) -> AuthSessionResponse:
    set_auth_cookie(
        response,
        settings=settings,
        token=issued.access_token,
        expires_at=issued.expires_at,
    )
    return AuthSessionResponse(
        expires_at=issued.expires_at,
        access_token=issued.access_token,
        user=to_auth_user(principal),
    )


def client_details(request: Request) -> tuple[str | None, str | None]:
    ip_address = request.client.host if request.client else None
    return request.headers.get("user-agent"), ip_address


@router.post("/sign-up", response_model=AuthSessionResponse, status_code=201)
async def sign_up(
    payload: SignUpRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    user_agent, ip_address = client_details(request)
    issued, principal = await service.register(
        email=str(payload.email).lower(),
        password=payload.password,
        name=payload.name.strip(),
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return session_response(response, settings=service.settings, issued=issued, principal=principal)


@router.post("/sign-in", response_model=AuthSessionResponse)
async def sign_in(
    payload: SignInRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    user_agent, ip_address = client_details(request)
    issued, principal = await service.sign_in(
        email=str(payload.email).lower(),
        password=payload.password,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return session_response(response, settings=service.settings, issued=issued, principal=principal)


@router.get("/google/login", response_model=AuthLoginResponse)
async def google_login(
    next_url: str | None = Query(default=None, max_length=2048),
    service: AuthService = Depends(get_auth_service),
):
    payload = await service.build_google_login(next_url=next_url)
    return AuthLoginResponse(**payload)


@router.get("/google/callback", response_model=AuthSessionResponse)
async def google_callback(
    code: str,
    state: str,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    user_agent, ip_address = client_details(request)
    issued, principal = await service.exchange_google_callback(
        code=code,
        state=state,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return session_response(response, settings=service.settings, issued=issued, principal=principal)


@router.get("/me", response_model=AuthUserResponse)
async def auth_me(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
):
    return to_auth_user(principal)


@router.post("/logout", response_model=OperationResponse)
async def auth_logout(
    response: Response,
    principal: AuthenticatedPrincipal | None = Depends(get_optional_principal),
    service: AuthService = Depends(get_auth_service),
):
    if principal is not None and principal.token_jti:
        await service.logout(principal.token_jti)
    clear_auth_cookie(response, settings=service.settings)
    return OperationResponse(ok=True, message="Logged out")


@router.get("/sessions", response_model=list[UserSessionResponse])
async def list_sessions(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    rows = await service.list_sessions(user_id=principal.user_id, current_jti=principal.token_jti)
    return [UserSessionResponse(**row) for row in rows]


@router.delete("/sessions/{session_id}", response_model=OperationResponse)
async def revoke_session(
    session_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    result = await service.revoke_own_session(user_id=principal.user_id, session_id=session_id)
    return OperationResponse(
        ok=bool(result["revoked"]),
        message="Session revoked" if result["revoked"] else "Session already revoked",
    )
