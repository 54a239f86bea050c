from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from incubus.api.deps.auth import get_current_principal, require_platform_roles
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.common import OperationResponse, Page
from incubus.api.schemas.staff import (
    LibraryAddRequest,
    LibraryEntryResponse,
    PlayerRegistrationResponse,
    PlayerResponse,
    PlayerUpdateRequest,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.player_service import PlayerService
from incubus.application.services.staff_service import StaffService
from incubus.domain.pagination import PageParams, paginated

router = APIRouter()


def get_player_service() -> PlayerService:
    return PlayerService()


@router.post("/register", response_model=PlayerRegistrationResponse, status_code=201)
async def register_player(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
):
    return PlayerRegistrationResponse(**await StaffService().register_player(principal))


@router.get("", response_model=Page[PlayerResponse])
async def list_players(
    search: str | None = Query(default=None, max_length=255),
    type: str | None = Query(default=None, max_length=32),
    params: PageParams = Depends(get_page_params),
    _: AuthenticatedPrincipal = Depends(require_platform_roles()),
    service: PlayerService = Depends(get_player_service),
):
    rows, total = await service.list_players(params=params, search=search, player_type=type)
    return paginated([PlayerResponse(**row) for row in rows], params, total)


@router.get("/{user_id}", response_model=PlayerResponse)
async def get_player(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: PlayerService = Depends(get_player_service),
):
    return PlayerResponse(**await service.get_player(principal, user_id=user_id))


@router.patch("/{user_id}", response_model=PlayerResponse)
async def update_player(
    user_id: int,
    payload: PlayerUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: PlayerService = Depends(get_player_service),
):
    row = await service.update_player(
        principal,
        user_id=user_id,
        player_type=payload.type,
        name=payload.name,
        image=payload.image,
    )
    return PlayerResponse(**row)


@router.delete("/{user_id}", response_model=OperationResponse)
async def delete_player(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: PlayerService = Depends(get_player_service),
):
    await service.delete_player(principal, user_id=user_id)
    return OperationResponse(ok=True, message="Player deleted")


@router.get("/{user_id}/games", response_model=list[LibraryEntryResponse])
async def list_player_games(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: PlayerService = Depends(get_player_service),
):
    rows = await service.list_library(principal, user_id=user_id)
    return [LibraryEntryResponse(**row) for row in rows]


@router.post("/{user_id}/games", response_model=LibraryEntryResponse, status_code=201)
async def add_player_game(
    user_id: int,
    payload: LibraryAddRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: PlayerService = Depends(get_player_service),
):
    row = await service.add_library_game(
        principal,
        user_id=user_id,
        game_id=payload.game_id,
        owned=payload.owned,
    )
    return LibraryEntryResponse(**row)


@router.delete("/{user_id}/games/{game_id}", response_model=OperationResponse)
async def remove_player_game(
    user_id: int,
    game_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: PlayerService = Depends(get_player_service),
):
    await service.remove_library_game(principal, user_id=user_id, game_id=game_id)
    return OperationResponse(ok=True, message="Game removed from library")
