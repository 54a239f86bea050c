from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import get_current_principal
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.common import OperationResponse, Page, payload_values
from incubus.api.schemas.games import (
    GameCreateRequest,
    GameDetailResponse,
    GameItemCreateRequest,
    GameItemResponse,
    GameItemUpdateRequest,
    GameResponse,
    GameUpdateRequest,
    GameVersionCreateRequest,
    GameVersionResponse,
    GameVersionUpdateRequest,
)
from incubus.api.schemas.reviews import (
    ReviewCreateRequest,
    ReviewResponse,
    ReviewUpdateRequest,
    ReviewVoteRequest,
    ReviewVoteResponse,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.game_service import GameService
from incubus.application.services.review_service import ReviewService
from incubus.core.config import get_settings
from incubus.domain.pagination import PageParams, paginated, resolve_sort
from incubus.infrastructure.cache.redis_cache import cache
from incubus.infrastructure.repositories.game_repository import GameFilters

router = APIRouter()

GAME_SORT_FIELDS = ("title", "releaseDate", "basePrice", "createdAt")
REVIEW_SORT_FIELDS = ("rating", "createdAt", "upvotes")


def get_game_service() -> GameService:
    return GameService()


def get_review_service() -> ReviewService:
    return ReviewService()


@router.get("", response_model=Page[GameResponse])
async def list_games(
    search: str | None = Query(default=None, max_length=100),
    publisher: str | None = Query(default=None, max_length=120),
    developer: str | None = Query(default=None, max_length=120),
    genre: str | None = Query(default=None, max_length=120),
    tag: str | None = Query(default=None, max_length=120),
    is_active: bool | None = Query(default=None),
    is_featured: bool | None = Query(default=None),
    min_price: Decimal | None = Query(default=None, ge=0),
    max_price: Decimal | None = Query(default=None, ge=0),
    released_after: datetime | None = Query(default=None),
    released_before: datetime | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: GameService = Depends(get_game_service),
):
    settings = get_settings()
    sort = resolve_sort(
        sort_by,
        sort_order,
        default_field="createdAt",
        default_order="desc",
        allowed_fields=GAME_SORT_FIELDS,
    )
    filters = GameFilters(
        search=search,
        publisher=publisher,
        developer=developer,
        genre=genre,
        tag=tag,
        is_active=is_active,
        is_featured=is_featured,
        min_price=min_price,
        max_price=max_price,
        released_after=released_after,
        released_before=released_before,
    )
    cache_key = cache.build_key(
        "games_list",
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

    rows, total = await service.list_games(filters=filters, params=params, sort=sort)
    payload = paginated(
        [GameResponse(**row).model_dump(mode="json") for row in rows],
        params,
        total,
    )
    await cache.set_json(
        key=cache_key,
        value=jsonable_encoder(payload),
        ttl_seconds=settings.INCUBUS_CACHE_PUBLIC_TTL_SECONDS,
        tags={"games"},
    )
    return payload


@router.get("/slug/{slug}", response_model=GameDetailResponse)
async def get_game_by_slug(
    slug: str,
    service: GameService = Depends(get_game_service),
):
    return GameDetailResponse(**await service.get_game_by_slug(slug))


@router.get("/{game_id}", response_model=GameDetailResponse)
async def get_game(
    game_id: int,
    service: GameService = Depends(get_game_service),
):
    return GameDetailResponse(**await service.get_game(game_id))


@router.post("", response_model=GameDetailResponse, status_code=201)
async def create_game(
    payload: GameCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    row = await service.create_game(principal, values=payload_values(payload, exclude_unset=False))
    await cache.invalidate_tags("games")
    return GameDetailResponse(**row)


@router.patch("/{game_id}", response_model=GameDetailResponse)
async def update_game(
    game_id: int,
    payload: GameUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    row = await service.update_game(principal, game_id=game_id, values=payload_values(payload))
    await cache.invalidate_tags("games")
    return GameDetailResponse(**row)


@router.delete("/{game_id}", response_model=OperationResponse)
async def delete_game(
    game_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    await service.delete_game(principal, game_id=game_id)
    await cache.invalidate_tags("games", "publishers")
    return OperationResponse(ok=True, message="Game deleted")


# Versions


@router.get("/{game_id}/versions", response_model=Page[GameVersionResponse])
async def list_versions(
    game_id: int,
    is_active: bool | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: GameService = Depends(get_game_service),
):
    rows, total = await service.list_versions(game_id=game_id, params=params, is_active=is_active)
    return paginated([GameVersionResponse(**row) for row in rows], params, total)


@router.get("/{game_id}/versions/{version_id}", response_model=GameVersionResponse)
async def get_version(
    game_id: int,
    version_id: int,
    service: GameService = Depends(get_game_service),
):
    return GameVersionResponse(**await service.get_version(game_id=game_id, version_id=version_id))


@router.post("/{game_id}/versions", response_model=GameVersionResponse, status_code=201)
async def create_version(
    game_id: int,
    payload: GameVersionCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    row = await service.create_version(
        principal,
        game_id=game_id,
        values=payload.model_dump(),
    )
    return GameVersionResponse(**row)


@router.patch("/{game_id}/versions/{version_id}", response_model=GameVersionResponse)
async def update_version(
    game_id: int,
    version_id: int,
    payload: GameVersionUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    row = await service.update_version(
        principal,
        game_id=game_id,
        version_id=version_id,
        values=payload.model_dump(exclude_unset=True),
    )
    return GameVersionResponse(**row)


@router.delete("/{game_id}/versions/{version_id}", response_model=OperationResponse)
async def delete_version(
    game_id: int,
    version_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    await service.delete_version(principal, game_id=game_id, version_id=version_id)
    return OperationResponse(ok=True, message="Version deleted")


# Items


@router.get("/{game_id}/items", response_model=Page[GameItemResponse])
async def list_items(
    game_id: int,
    params: PageParams = Depends(get_page_params),
    service: GameService = Depends(get_game_service),
):
    rows, total = await service.list_items(game_id=game_id, params=params)
    return paginated([GameItemResponse(**row) for row in rows], params, total)


@router.get("/{game_id}/items/{item_id}", response_model=GameItemResponse)
async def get_item(
    game_id: int,
    item_id: int,
    service: GameService = Depends(get_game_service),
):
    return GameItemResponse(**await service.get_item(game_id=game_id, item_id=item_id))


@router.post("/{game_id}/items", response_model=GameItemResponse, status_code=201)
async def create_item(
    game_id: int,
    payload: GameItemCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    row = await service.create_item(
        principal,
        game_id=game_id,
        values=payload_values(payload, exclude_unset=False),
    )
    return GameItemResponse(**row)


@router.patch("/{game_id}/items/{item_id}", response_model=GameItemResponse)
async def update_item(
    game_id: int,
    item_id: int,
    payload: GameItemUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    row = await service.update_item(
        principal,
        game_id=game_id,
        item_id=item_id,
        values=payload_values(payload),
    )
    return GameItemResponse(**row)


@router.delete("/{game_id}/items/{item_id}", response_model=OperationResponse)
async def delete_item(
    game_id: int,
    item_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: GameService = Depends(get_game_service),
):
    await service.delete_item(principal, game_id=game_id, item_id=item_id)
    return OperationResponse(ok=True, message="Item deleted")


# Reviews


@router.get("/{game_id}/reviews", response_model=Page[ReviewResponse])
async def list_reviews(
    game_id: int,
    rating: int | None = Query(default=None, ge=1, le=5),
    status: str | None = Query(default=None, pattern="^(PENDING|APPROVED|REJECTED)$"),
    verified: bool | None = Query(default=None),
    recommended: bool | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    service: ReviewService = Depends(get_review_service),
):
    sort = resolve_sort(
        sort_by,
        sort_order,
        default_field="createdAt",
        default_order="desc",
        allowed_fields=REVIEW_SORT_FIELDS,
    )
    rows, total, summary = await service.list_reviews(
        game_id=game_id,
        params=params,
        sort=sort,
        rating=rating,
        status=status,
        verified=verified,
        recommended=recommended,
    )
    return paginated([ReviewResponse(**row) for row in rows], params, total, **summary)


@router.post("/{game_id}/reviews", response_model=ReviewResponse, status_code=201)
async def create_review(
    game_id: int,
    payload: ReviewCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: ReviewService = Depends(get_review_service),
):
    row = await service.create_review(
        principal=principal,
        game_id=game_id,
        rating=payload.rating,
        content=payload.content,
        title=payload.title,
        is_recommended=payload.is_recommended,
    )
    return ReviewResponse(**row)


@router.get("/{game_id}/reviews/{review_id}", response_model=ReviewResponse)
async def get_review(
    game_id: int,
    review_id: int,
    service: ReviewService = Depends(get_review_service),
):
    return ReviewResponse(**await service.get_review(game_id=game_id, review_id=review_id))


@router.patch("/{game_id}/reviews/{review_id}", response_model=ReviewResponse)
async def update_review(
    game_id: int,
    review_id: int,
    payload: ReviewUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: ReviewService = Depends(get_review_service),
):
    row = await service.update_review(
        principal=principal,
        game_id=game_id,
        review_id=review_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return ReviewResponse(**row)


@router.delete("/{game_id}/reviews/{review_id}", response_model=OperationResponse)
async def delete_review(
    game_id: int,
    review_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: ReviewService = Depends(get_review_service),
):
    await service.delete_review(principal=principal, game_id=game_id, review_id=review_id)
    return OperationResponse(ok=True, message="Review deleted")


@router.post("/{game_id}/reviews/{review_id}/vote", response_model=ReviewVoteResponse)
async def vote_review(
    game_id: int,
    review_id: int,
    payload: ReviewVoteRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: ReviewService = Depends(get_review_service),
):
    result = await service.vote(
        principal=principal,
        game_id=game_id,
        review_id=review_id,
        vote_type=payload.vote_type,
    )
    return ReviewVoteResponse(**result)
