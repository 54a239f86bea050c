from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import get_current_principal
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.common import OperationResponse, Page
from incubus.api.schemas.marketplace import (
    ListingCreateRequest,
    ListingResponse,
    ListingUpdateRequest,
    PurchaseRequest,
    PurchaseResponse,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.marketplace_service import MarketplaceService
from incubus.core.config import get_settings
from incubus.domain.pagination import PageParams, paginated, resolve_sort
from incubus.infrastructure.cache.redis_cache import cache
from incubus.infrastructure.repositories.marketplace_repository import ListingFilters

router = APIRouter()

LISTING_SORT_FIELDS = ("price", "createdAt", "updatedAt")
LISTING_STATUS_PATTERN = "^(DRAFT|ACTIVE|SOLD|CANCELLED|EXPIRED)$"
LISTING_TYPE_PATTERN = "^(GAME_LICENSE|GAME_ITEM|BUNDLE)$"


def get_marketplace_service() -> MarketplaceService:
    return MarketplaceService()


@router.get("/listings", response_model=Page[ListingResponse])
async def list_listings(
    status: str = Query(default="ACTIVE", pattern=LISTING_STATUS_PATTERN),
    type: str | None = Query(default=None, pattern=LISTING_TYPE_PATTERN),
    seller_id: int | None = Query(default=None, ge=1),
    game_id: int | None = Query(default=None, ge=1),
    item_id: int | None = Query(default=None, ge=1),
    min_price: Decimal | None = Query(default=None, ge=0),
    max_price: Decimal | None = Query(default=None, ge=0),
    search: str | None = Query(default=None, max_length=100),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    settings = get_settings()
    sort = resolve_sort(
        sort_by,
        sort_order,
        default_field="createdAt",
        default_order="desc",
        allowed_fields=LISTING_SORT_FIELDS,
    )
    filters = ListingFilters(
        status=status,
        listing_type=type,
        seller_id=seller_id,
        game_id=game_id,
        item_id=item_id,
        min_price=min_price,
        max_price=max_price,
        search=search,
    )
    cache_key = cache.build_key(
        "marketplace_listings",
        {
            **jsonable_encoder(filters.__dict__),
            "sort": f"{sort.field}:{sort.order}",
            "page": params.page,
            "limit": params.limit,
        },
    )
    cached = await cache.get_json(cache_key)
    if cached is not None:
        return cached

    rows, total = await service.list_listings(filters=filters, params=params, sort=sort)
    payload = paginated(
        [ListingResponse(**row).model_dump(mode="json") for row in rows],
        params,
        total,
    )
    await cache.set_json(
        key=cache_key,
        value=jsonable_encoder(payload),
        ttl_seconds=settings.INCUBUS_CACHE_PUBLIC_TTL_SECONDS,
        tags={"marketplace"},
    )
    return payload


@router.get("/listings/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: int,
    service: MarketplaceService = Depends(get_marketplace_service),
):
    return ListingResponse(**await service.get_listing(listing_id))


@router.post("/listings", response_model=ListingResponse, status_code=201)
async def create_listing(
    payload: ListingCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    values = payload.model_dump()
    row = await service.create_listing(
        principal,
        listing_type=values.pop("type"),
        **values,
    )
    await cache.invalidate_tags("marketplace")
    return ListingResponse(**row)


@router.patch("/listings/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: int,
    payload: ListingUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    row = await service.update_listing(
        principal,
        listing_id=listing_id,
        values=payload.model_dump(exclude_unset=True),
    )
    await cache.invalidate_tags("marketplace")
    return ListingResponse(**row)


@router.delete("/listings/{listing_id}", response_model=OperationResponse)
async def delete_listing(
    listing_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    await service.delete_listing(principal, listing_id=listing_id)
    await cache.invalidate_tags("marketplace")
    return OperationResponse(ok=True, message="Listing deleted")


@router.post("/listings/{listing_id}/purchase", response_model=PurchaseResponse)
async def purchase_listing(
    listing_id: int,
    payload: PurchaseRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    result = await service.purchase(principal, listing_id=listing_id, wallet_id=payload.wallet_id)
    await cache.invalidate_tags("marketplace")
    return PurchaseResponse(**result)
