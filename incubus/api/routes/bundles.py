from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import get_current_principal
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.bundles import BundleCreateRequest, BundleResponse, BundleUpdateRequest
from incubus.api.schemas.common import OperationResponse, Page
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.bundle_service import BundleService
from incubus.core.config import get_settings
from incubus.domain.pagination import PageParams, paginated
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()


def get_bundle_service() -> BundleService:
    return BundleService()


@router.get("", response_model=Page[BundleResponse])
async def list_bundles(
    search: str | None = Query(default=None, max_length=100),
    params: PageParams = Depends(get_page_params),
    service: BundleService = Depends(get_bundle_service),
):
    settings = get_settings()
    cache_key = cache.build_key(
        "bundles_list",
        {"search": search, "page": params.page, "limit": params.limit},
    )
    cached = await cache.get_json(cache_key)
    if cached is not None:
        return cached

    rows, total = await service.list_bundles(params=params, search=search)
    payload = paginated(
        [BundleResponse(**row).model_dump(mode="json") for row in rows],
        params,
        total,
    )
    await cache.set_json(
        key=cache_key,
        value=jsonable_encoder(payload),
        ttl_seconds=settings.INCUBUS_CACHE_PUBLIC_TTL_SECONDS,
        tags={"bundles", "games"},
    )
    return payload


@router.get("/{bundle_id}", response_model=BundleResponse)
async def get_bundle(
    bundle_id: int,
    service: BundleService = Depends(get_bundle_service),
):
    return BundleResponse(**await service.get_bundle(bundle_id))


@router.post("", response_model=BundleResponse, status_code=201)
async def create_bundle(
    payload: BundleCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: BundleService = Depends(get_bundle_service),
):
    row = await service.create_bundle(principal, values=payload.model_dump())
    await cache.invalidate_tags("bundles")
    return BundleResponse(**row)


@router.patch("/{bundle_id}", response_model=BundleResponse)
async def update_bundle(
    bundle_id: int,
    payload: BundleUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: BundleService = Depends(get_bundle_service),
):
    row = await service.update_bundle(
        principal,
        bundle_id=bundle_id,
        values=payload.model_dump(exclude_unset=True),
    )
    await cache.invalidate_tags("bundles")
    return BundleResponse(**row)


@router.delete("/{bundle_id}", response_model=OperationResponse)
async def delete_bundle(
    bundle_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: BundleService = Depends(get_bundle_service),
):
    await service.delete_bundle(principal, bundle_id=bundle_id)
    await cache.invalidate_tags("bundles")
    return OperationResponse(ok=True, message="Bundle deleted")
