from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import require_platform_admin
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.catalog import TagCreateRequest, TagUpdateRequest, TaxonomyResponse
from incubus.api.schemas.common import OperationResponse, Page, payload_values
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.catalog_service import TaxonomyService
from incubus.core.config import get_settings
from incubus.domain.pagination import PageParams, paginated, resolve_sort
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()


def get_tag_service() -> TaxonomyService:
    return TaxonomyService("tag")


@router.get("", response_model=Page[TaxonomyResponse])
async def list_tags(
    search: str | None = Query(default=None, max_length=50),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: TaxonomyService = Depends(get_tag_service),
):
    settings = get_settings()
    sort = resolve_sort(
        sort_by,
        sort_order,
        default_field="name",
        default_order="asc",
        allowed_fields=("name", "createdAt"),
    )
    cache_key = cache.build_key(
        "tags_list",
        {
            "search": search,
            "sort": f"{sort.field}:{sort.order}",
            "page": params.page,
            "limit": params.limit,
        },
    )
    cached = await cache.get_json(cache_key)
    if cached is not None:
        return cached

    rows, total = await service.list_entries(params=params, sort=sort, search=search)
    payload = paginated(
        [TaxonomyResponse(**row).model_dump(mode="json") for row in rows],
        params,
        total,
    )
    await cache.set_json(
        key=cache_key,
        value=jsonable_encoder(payload),
        ttl_seconds=settings.INCUBUS_CACHE_PUBLIC_TTL_SECONDS,
        tags={"tags"},
    )
    return payload


@router.get("/{tag_id}", response_model=TaxonomyResponse)
async def get_tag(
    tag_id: int,
    service: TaxonomyService = Depends(get_tag_service),
):
    return TaxonomyResponse(**await service.get_entry(tag_id))


@router.post("", response_model=TaxonomyResponse, status_code=201)
async def create_tag(
    payload: TagCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: TaxonomyService = Depends(get_tag_service),
):
    row = await service.create_entry(payload_values(payload, exclude_unset=False))
    await cache.invalidate_tags("tags")
    return TaxonomyResponse(**row)


@router.patch("/{tag_id}", response_model=TaxonomyResponse)
async def update_tag(
    tag_id: int,
    payload: TagUpdateRequest,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: TaxonomyService = Depends(get_tag_service),
):
    row = await service.update_entry(tag_id, payload_values(payload))
    await cache.invalidate_tags("tags", "games")
    return TaxonomyResponse(**row)


@router.delete("/{tag_id}", response_model=OperationResponse)
async def delete_tag(
    tag_id: int,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: TaxonomyService = Depends(get_tag_service),
):
    await service.delete_entry(tag_id)
    await cache.invalidate_tags("tags")
    return OperationResponse(ok=True, message="Tag deleted")
