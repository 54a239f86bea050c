from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from incubus.api.deps.auth import require_admin
from incubus.api.schemas.blockchain import (
    BlockchainCreateRequest,
    BlockchainResponse,
    BlockchainUpdateRequest,
)
from incubus.api.schemas.common import OperationResponse, payload_values
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.blockchain_service import BlockchainService
from incubus.core.config import get_settings
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()


def get_blockchain_service() -> BlockchainService:
    return BlockchainService()


@router.get("", response_model=list[BlockchainResponse])
async def list_blockchains(
    is_active: bool | None = Query(default=None),
    service: BlockchainService = Depends(get_blockchain_service),
):
    settings = get_settings()
    cache_key = cache.build_key("blockchains_list", {"is_active": is_active})
    cached = await cache.get_json(cache_key)
    if cached is not None:
        return cached

    payload = [
        BlockchainResponse(**row).model_dump(mode="json")
        for row in await service.list_blockchains(is_active=is_active)
    ]
    await cache.set_json(
        key=cache_key,
        value=jsonable_encoder(payload),
        ttl_seconds=settings.INCUBUS_CACHE_PUBLIC_TTL_SECONDS,
        tags={"blockchains"},
    )
    return payload


@router.get("/{blockchain_id}", response_model=BlockchainResponse)
async def get_blockchain(
    blockchain_id: int,
    service: BlockchainService = Depends(get_blockchain_service),
):
    return BlockchainResponse(**await service.get_blockchain(blockchain_id))


@router.post("", response_model=BlockchainResponse, status_code=201)
async def create_blockchain(
    payload: BlockchainCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: BlockchainService = Depends(get_blockchain_service),
):
    row = await service.create_blockchain(payload_values(payload, exclude_unset=False))
    await cache.invalidate_tags("blockchains")
    return BlockchainResponse(**row)


@router.patch("/{blockchain_id}", response_model=BlockchainResponse)
async def update_blockchain(
    blockchain_id: int,
    payload: BlockchainUpdateRequest,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: BlockchainService = Depends(get_blockchain_service),
):
    row = await service.update_blockchain(blockchain_id, payload_values(payload))
    await cache.invalidate_tags("blockchains")
    return BlockchainResponse(**row)


@router.delete("/{blockchain_id}", response_model=OperationResponse)
async def delete_blockchain(
    blockchain_id: int,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: BlockchainService = Depends(get_blockchain_service),
):
    await service.delete_blockchain(blockchain_id)
    await cache.invalidate_tags("blockchains")
    return OperationResponse(ok=True, message="Blockchain deleted")
