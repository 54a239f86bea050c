from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import require_platform_admin
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.catalog import GenreCreateRequest, GenreUpdateRequest, TaxonomyResponse
from incubus.api.schemas.common import OperationResponse, Page, payload_values
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.catalog_service import TaxonomyService
from incubus.core.config import get_settings
from incubus.domain.pagination import PageParams, paginated, resolve_sort
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()


def get_genre_service() -> TaxonomyService:
    return TaxonomyService("genre")


@router.get("", response_model=Page[TaxonomyResponse])
async def list_genres(
    search: str | None = Query(default=None, max_length=100),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: TaxonomyService = Depends(get_genre_service),
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
        "genres_list",
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
        tags={"genres"},
    )
    return payload


@router.get("/{genre_id}", response_model=TaxonomyResponse)
async def get_genre(
    genre_id: int,
    service: TaxonomyService = Depends(get_genre_service),
):
    return TaxonomyResponse(**await service.get_entry(genre_id))


@router.post("", response_model=TaxonomyResponse, status_code=201)
async def create_genre(
    payload: GenreCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: TaxonomyService = Depends(get_genre_service),
):
    row = await service.create_entry(payload_values(payload, exclude_unset=False))
    await cache.invalidate_tags("genres")
    return TaxonomyResponse(**row)


@router.patch("/{genre_id}", response_model=TaxonomyResponse)
async def update_genre(
    genre_id: int,
    payload: GenreUpdateRequest,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: TaxonomyService = Depends(get_genre_service),
):
    row = await service.update_entry(genre_id, payload_values(payload))
    await cache.invalidate_tags("genres", "games")
    return TaxonomyResponse(**row)


@router.delete("/{genre_id}", response_model=OperationResponse)
async def delete_genre(
    genre_id: int,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: TaxonomyService = Depends(get_genre_service),
):
    await service.delete_entry(genre_id)
    await cache.invalidate_tags("genres")
    return OperationResponse(ok=True, message="Genre deleted")
