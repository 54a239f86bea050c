from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, Response

from incubus.api.deps.auth import get_access_token, get_current_principal, require_admin
from incubus.api.deps.pagination import get_page_params
from incubus.api.routes.auth import client_details, session_response
from incubus.api.schemas.admin import (
    AdminUserListResponse,
    AnalyticsResponse,
    AuditFacetsResponse,
    AuditLogResponse,
    BanUserRequest,
    DashboardResponse,
    ImpersonateRequest,
    MonitoringResponse,
    SetRoleRequest,
)
from incubus.api.schemas.auth import AuthSessionResponse, UserSessionResponse
from incubus.api.schemas.common import OperationResponse, Page
from incubus.api.schemas.notifications import BroadcastRequest, BroadcastResponse
from incubus.api.schemas.reviews import (
    ModerationDecisionRequest,
    ModerationReviewResponse,
    ReviewResponse,
)
from incubus.api.schemas.users import UserCreateRequest, UserResponse
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.admin_service import ANALYTICS_SERIES, AdminService
from incubus.application.services.audit_service import AuditService
from incubus.application.services.notification_service import NotificationService
from incubus.application.services.review_service import ReviewService
from incubus.application.services.user_service import UserService
from incubus.core.errors import ApiException
from incubus.domain.charts import ChartBox
from incubus.domain.pagination import PageParams, paginated, resolve_sort

router = APIRouter()

USER_SORT_FIELDS = ("name", "email", "createdAt", "updatedAt", "role")


def get_admin_service() -> AdminService:
    return AdminService()


def get_chart_box(
    width: int = Query(default=800, ge=100, le=4000),
    height: int = Query(default=300, ge=100, le=2000),
) -> ChartBox:
    return ChartBox(width=width, height=height)


@router.get("/users", response_model=AdminUserListResponse)
async def admin_list_users(
    search_value: str | None = Query(default=None, max_length=255),
    search_field: Literal["name", "email"] = Query(default="email"),
    search_operator: Literal["contains", "starts_with", "ends_with"] = Query(default="contains"),
    role: str | None = Query(default=None, max_length=32),
    banned: bool | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    payload = await service.list_users(
        search_value=search_value,
        search_field=search_field,
        search_operator=search_operator,
        role=role,
        banned=banned,
        sort=resolve_sort(
            sort_by,
            sort_order,
            default_field="createdAt",
            allowed_fields=USER_SORT_FIELDS,
        ),
        limit=limit,
        offset=offset,
    )
    return AdminUserListResponse(**payload)


@router.post("/users", response_model=UserResponse, status_code=201)
async def admin_create_user(
    payload: UserCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_admin),
):
    row = await UserService().create_user(
        email=str(payload.email),
        password=payload.password,
        name=payload.name,
        role=payload.role,
        image=payload.image,
    )
    return UserResponse(**row)


@router.post("/users/{user_id}/role", response_model=UserResponse)
async def admin_set_role(
    user_id: int,
    payload: SetRoleRequest,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return UserResponse(**await service.set_role(actor=principal, user_id=user_id, role=payload.role))


@router.post("/users/{user_id}/ban", response_model=UserResponse)
async def admin_ban_user(
    user_id: int,
    payload: BanUserRequest,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    row = await service.ban_user(
        actor=principal,
        user_id=user_id,
        reason=payload.reason,
        expires_in=payload.expires_in,
    )
    return UserResponse(**row)


@router.post("/users/{user_id}/unban", response_model=UserResponse)
async def admin_unban_user(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return UserResponse(**await service.unban_user(actor=principal, user_id=user_id))


@router.get("/users/{user_id}/sessions", response_model=list[UserSessionResponse])
async def admin_list_user_sessions(
    user_id: int,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return [UserSessionResponse(**row) for row in await service.list_user_sessions(user_id)]


@router.delete("/users/{user_id}/sessions/{session_id}", response_model=OperationResponse)
async def admin_revoke_user_session(
    user_id: int,
    session_id: int,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    revoked = await service.revoke_user_session(user_id=user_id, session_id=session_id)
    return OperationResponse(
        ok=revoked,
        message="Session revoked" if revoked else "Session already revoked",
    )


@router.delete("/users/{user_id}/sessions", response_model=OperationResponse)
async def admin_revoke_all_sessions(
    user_id: int,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    revoked = await service.revoke_all_sessions(user_id)
    return OperationResponse(ok=True, message="Sessions revoked", details={"revoked": revoked})


@router.delete("/users/{user_id}", response_model=OperationResponse)
async def admin_remove_user(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    await service.remove_user(actor=principal, user_id=user_id)
    return OperationResponse(ok=True, message="User removed")


@router.post("/impersonate", response_model=AuthSessionResponse)
async def admin_impersonate(
    payload: ImpersonateRequest,
    request: Request,
    response: Response,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    user_agent, ip_address = client_details(request)
    issued, impersonated = await service.impersonate(
        actor=principal,
        user_id=payload.user_id,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return session_response(
        response,
        settings=service.settings,
        issued=issued,
        principal=impersonated,
    )


@router.post("/stop-impersonating", response_model=AuthSessionResponse)
async def admin_stop_impersonating(
    response: Response,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    access_token: str | None = Depends(get_access_token),
    service: AdminService = Depends(get_admin_service),
):
    if not access_token:
        raise ApiException(
            status_code=401,
            error_code="AUTH_REQUIRED",
            message="Authentication is required for this endpoint",
        )
    issued, admin = await service.stop_impersonating(
        principal=principal,
        access_token=access_token,
    )
    return session_response(response, settings=service.settings, issued=issued, principal=admin)


@router.get("/dashboard", response_model=DashboardResponse)
async def admin_dashboard(
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return DashboardResponse(**await service.get_dashboard())


@router.get("/analytics", response_model=AnalyticsResponse)
async def admin_analytics(
    series: list[str] = Query(default=list(ANALYTICS_SERIES)),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    box: ChartBox = Depends(get_chart_box),
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    payload = await service.get_analytics(series=series, start=start, end=end, box=box)
    return AnalyticsResponse(**payload)


@router.get("/monitoring", response_model=MonitoringResponse)
async def admin_monitoring(
    hours: int = Query(default=24, ge=1, le=168),
    box: ChartBox = Depends(get_chart_box),
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return MonitoringResponse(**await service.get_monitoring(hours=hours, box=box))


@router.get("/audit-logs", response_model=Page[AuditLogResponse])
async def admin_audit_logs(
    action: str | None = Query(default=None, max_length=96),
    entity_type: str | None = Query(default=None, max_length=64),
    user_id: int | None = Query(default=None),
    start: datetime | None = Query(default=None, alias="from"),
    end: datetime | None = Query(default=None, alias="to"),
    query: str | None = Query(default=None, alias="q", max_length=128),
    params: PageParams = Depends(get_page_params),
    _: AuthenticatedPrincipal = Depends(require_admin),
):
    rows, total = await AuditService().search(
        params=params,
        action=action,
        entity_type=entity_type,
        user_id=user_id,
        start=start,
        end=end,
        query=query,
    )
    return paginated([AuditLogResponse(**row) for row in rows], params, total)


@router.get("/audit-logs/facets", response_model=AuditFacetsResponse)
async def admin_audit_facets(_: AuthenticatedPrincipal = Depends(require_admin)):
    return AuditFacetsResponse(**await AuditService().facets())


@router.post("/notifications/broadcast", response_model=BroadcastResponse, status_code=201)
async def admin_broadcast(
    payload: BroadcastRequest,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    row = await NotificationService().broadcast(sender_id=principal.user_id, **payload.model_dump())
    return BroadcastResponse(**row)


@router.get("/moderation/reviews", response_model=Page[ModerationReviewResponse])
async def admin_moderation_queue(
    params: PageParams = Depends(get_page_params),
    _: AuthenticatedPrincipal = Depends(require_admin),
):
    rows, total = await ReviewService().list_moderation_queue(params=params)
    return paginated([ModerationReviewResponse(**row) for row in rows], params, total)


@router.post("/moderation/reviews/{review_id}", response_model=ReviewResponse)
async def admin_moderate_review(
    review_id: int,
    payload: ModerationDecisionRequest,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    row = await ReviewService().moderate(actor=principal, review_id=review_id, status=payload.status)
    return ReviewResponse(**row)
