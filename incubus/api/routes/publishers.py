from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import get_current_principal, require_platform_admin
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.catalog import (
    PublisherCreateRequest,
    PublisherDetailResponse,
    PublisherResponse,
    PublisherUpdateRequest,
)
from incubus.api.schemas.common import OperationResponse, Page, payload_values
from incubus.api.schemas.staff import PublisherStaffCreateRequest, StaffResponse
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.catalog_service import PublisherService
from incubus.application.services.staff_service import StaffService
from incubus.core.config import get_settings
from incubus.domain.pagination import PageParams, paginated, resolve_sort
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()

PUBLISHER_SORT_FIELDS = ("name", "createdAt", "isVerified")


def get_publisher_service() -> PublisherService:
    return PublisherService()


@router.get("", response_model=Page[PublisherResponse])
async def list_publishers(
    search: str | None = Query(default=None, max_length=100),
    verified: bool | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: PublisherService = Depends(get_publisher_service),
):
    settings = get_settings()
    sort = resolve_sort(
        sort_by,
        sort_order,
        default_field="name",
        default_order="asc",
        allowed_fields=PUBLISHER_SORT_FIELDS,
    )
    cache_key = cache.build_key(
        "publishers_list",
        {
            "search": search,
            "verified": verified,
            "sort": f"{sort.field}:{sort.order}",
            "page": params.page,
            "limit": params.limit,
        },
    )
    cached = await cache.get_json(cache_key)
    if cached is not None:
        return cached

    rows, total = await service.list_publishers(
        params=params,
        sort=sort,
        search=search,
        verified=verified,
    )
    payload = paginated(
        [PublisherResponse(**row).model_dump(mode="json") for row in rows],
        params,
        total,
    )
    await cache.set_json(
        key=cache_key,
        value=jsonable_encoder(payload),
        ttl_seconds=settings.INCUBUS_CACHE_PUBLIC_TTL_SECONDS,
        tags={"publishers"},
    )
    return payload


@router.get("/{publisher_id}", response_model=PublisherDetailResponse)
async def get_publisher(
    publisher_id: int,
    service: PublisherService = Depends(get_publisher_service),
):
    return PublisherDetailResponse(**await service.get_publisher(publisher_id))


@router.post("", response_model=PublisherResponse, status_code=201)
async def create_publisher(
    payload: PublisherCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: PublisherService = Depends(get_publisher_service),
):
    row = await service.create_publisher(payload_values(payload, exclude_unset=False))
    await cache.invalidate_tags("publishers")
    return PublisherResponse(**row)


@router.patch("/{publisher_id}", response_model=PublisherResponse)
async def update_publisher(
    publisher_id: int,
    payload: PublisherUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: PublisherService = Depends(get_publisher_service),
):
    row = await service.update_publisher(
        principal,
        publisher_id=publisher_id,
        values=payload_values(payload),
    )
    await cache.invalidate_tags("publishers")
    return PublisherResponse(**row)


@router.delete("/{publisher_id}", response_model=OperationResponse)
async def delete_publisher(
    publisher_id: int,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: PublisherService = Depends(get_publisher_service),
):
    await service.delete_publisher(publisher_id)
    await cache.invalidate_tags("publishers")
    return OperationResponse(ok=True, message="Publisher deleted")


@router.get("/{publisher_id}/staff", response_model=list[StaffResponse])
async def list_publisher_staff(
    publisher_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
):
    PublisherService.ensure_can_manage(principal, publisher_id)
    rows = await StaffService().list_publisher_staff(publisher_id=publisher_id)
    return [StaffResponse(**row) for row in rows]


@router.post("/{publisher_id}/staff", response_model=StaffResponse, status_code=201)
async def add_publisher_staff(
    publisher_id: int,
    payload: PublisherStaffCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
):
    PublisherService.ensure_can_manage(principal, publisher_id)
    row = await StaffService().add_publisher_staff(
        publisher_id=publisher_id,
        email=str(payload.email),
        name=payload.name,
        role=payload.role,
    )
    return StaffResponse(**row)


@router.delete("/{publisher_id}/staff/{user_id}", response_model=OperationResponse)
async def remove_publisher_staff(
    publisher_id: int,
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
):
    PublisherService.ensure_can_manage(principal, publisher_id)
    await StaffService().remove_publisher_staff(
        principal,
        publisher_id=publisher_id,
        user_id=user_id,
    )
    return OperationResponse(ok=True, message="Publisher staff removed")
