from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from incubus.api.deps.auth import require_platform_admin
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.catalog import DeveloperCreateRequest, TaxonomyResponse
from incubus.api.schemas.common import Page, payload_values
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.catalog_service import TaxonomyService
from incubus.domain.pagination import PageParams, paginated, resolve_sort
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()


def get_developer_service() -> TaxonomyService:
    return TaxonomyService("developer")


@router.get("", response_model=Page[TaxonomyResponse])
async def list_developers(
    search: str | None = Query(default=None, max_length=100),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: TaxonomyService = Depends(get_developer_service),
):
    sort = resolve_sort(
        sort_by,
        sort_order,
        default_field="name",
        default_order="asc",
        allowed_fields=("name", "createdAt"),
    )
    rows, total = await service.list_entries(params=params, sort=sort, search=search)
    return paginated([TaxonomyResponse(**row) for row in rows], params, total)


@router.get("/{developer_id}", response_model=TaxonomyResponse)
async def get_developer(
    developer_id: int,
    service: TaxonomyService = Depends(get_developer_service),
):
    return TaxonomyResponse(**await service.get_entry(developer_id))


@router.post("", response_model=TaxonomyResponse, status_code=201)
async def create_developer(
    payload: DeveloperCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_platform_admin),
    service: TaxonomyService = Depends(get_developer_service),
):
    row = await service.create_entry(payload_values(payload, exclude_unset=False))
    await cache.invalidate_tags("developers")
    return TaxonomyResponse(**row)
