from __future__ import annotations

from fastapi import APIRouter, Depends

from incubus.api.deps.auth import get_current_principal
from incubus.api.schemas.common import OperationResponse
from incubus.api.schemas.wishlist import (
    WishlistChangeResponse,
    WishlistEntryResponse,
    WishlistIdsResponse,
    WishlistReplaceRequest,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.wishlist_service import WishlistService

router = APIRouter()


def get_wishlist_service() -> WishlistService:
    return WishlistService()


@router.get("", response_model=list[WishlistEntryResponse])
async def list_wishlist(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WishlistService = Depends(get_wishlist_service),
):
    return [WishlistEntryResponse(**row) for row in await service.list_wishlist(principal.user_id)]


@router.put("", response_model=WishlistIdsResponse)
async def replace_wishlist(
    payload: WishlistReplaceRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WishlistService = Depends(get_wishlist_service),
):
    game_ids = await service.replace(user_id=principal.user_id, game_ids=payload.game_ids)
    return WishlistIdsResponse(game_ids=game_ids)


@router.delete("", response_model=OperationResponse)
async def clear_wishlist(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WishlistService = Depends(get_wishlist_service),
):
    removed = await service.clear(principal.user_id)
    return OperationResponse(ok=True, message="Wishlist cleared", details={"removed": removed})


@router.post("/{game_id}", response_model=WishlistChangeResponse)
async def add_to_wishlist(
    game_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WishlistService = Depends(get_wishlist_service),
):
    changed = await service.add_game(user_id=principal.user_id, game_id=game_id)
    return WishlistChangeResponse(game_id=game_id, changed=changed)


@router.delete("/{game_id}", response_model=WishlistChangeResponse)
async def remove_from_wishlist(
    game_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WishlistService = Depends(get_wishlist_service),
):
    changed = await service.remove_game(user_id=principal.user_id, game_id=game_id)
    return WishlistChangeResponse(game_id=game_id, changed=changed)
