from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import get_current_principal
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.common import OperationResponse, Page
from incubus.api.schemas.notifications import (
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.notification_service import NotificationService
from incubus.core.config import get_settings
from incubus.domain.pagination import PageParams, paginated
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()


def get_notification_service() -> NotificationService:
    return NotificationService()


@router.get("", response_model=Page[NotificationResponse])
async def list_inbox(
    unread_only: bool = Query(default=False),
    category: str | None = Query(default=None, max_length=64),
    params: PageParams = Depends(get_page_params),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    async def load() -> dict:
        rows, total = await service.list_inbox(
            user_id=principal.user_id,
            unread_only=unread_only,
            category=category,
            params=params,
        )
        return jsonable_encoder(paginated([NotificationResponse(**row) for row in rows], params, total))

    return await cache.remember(
        cache.build_key(
            "inbox",
            {
                "user_id": principal.user_id,
                "unread_only": unread_only,
                "category": category,
                "page": params.page,
                "limit": params.limit,
            },
        ),
        ttl_seconds=get_settings().INCUBUS_CACHE_NOTIFICATIONS_TTL_SECONDS,
        tags={cache.notifications_tag(principal.user_id)},
        loader=load,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    async def load() -> dict:
        return {"unread_count": await service.unread_count(user_id=principal.user_id)}

    return await cache.remember(
        cache.build_key("inbox_unread", {"user_id": principal.user_id}),
        ttl_seconds=get_settings().INCUBUS_CACHE_NOTIFICATIONS_TTL_SECONDS,
        tags={cache.notifications_tag(principal.user_id)},
        loader=load,
    )


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    updated = await service.mark_all_read(user_id=principal.user_id)
    await cache.invalidate_tags(cache.notifications_tag(principal.user_id))
    return MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    row = await service.mark_read(user_id=principal.user_id, notification_id=notification_id)
    await cache.invalidate_tags(cache.notifications_tag(principal.user_id))
    return NotificationResponse(**row)


@router.delete("/{notification_id}", response_model=OperationResponse)
async def remove_notification(
    notification_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    await service.remove(user_id=principal.user_id, notification_id=notification_id)
    await cache.invalidate_tags(cache.notifications_tag(principal.user_id))
    return OperationResponse(ok=True, message="Notification removed")
