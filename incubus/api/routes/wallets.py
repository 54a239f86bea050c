from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from incubus.api.deps.auth import get_current_principal
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.blockchain import (
    TransactionResponse,
    WalletCreateRequest,
    WalletResponse,
    WalletSyncRequest,
    WalletSyncResponse,
    WalletUpdateRequest,
)
from incubus.api.schemas.common import OperationResponse, Page
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.blockchain_service import WalletService
from incubus.domain.pagination import PageParams, paginated

router = APIRouter()


def get_wallet_service() -> WalletService:
    return WalletService()


@router.get("", response_model=list[WalletResponse])
async def list_wallets(
    blockchain_id: int | None = Query(default=None, ge=1),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    rows = await service.list_wallets(principal, blockchain_id=blockchain_id)
    return [WalletResponse(**row) for row in rows]


@router.post("", response_model=WalletResponse, status_code=201)
async def create_wallet(
    payload: WalletCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    row = await service.create_wallet(principal, **payload.model_dump())
    return WalletResponse(**row)


@router.get("/{wallet_id}", response_model=WalletResponse)
async def get_wallet(
    wallet_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    return WalletResponse(**await service.get_wallet(principal, wallet_id))


@router.patch("/{wallet_id}", response_model=WalletResponse)
async def update_wallet(
    wallet_id: int,
    payload: WalletUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    row = await service.update_wallet(
        principal,
        wallet_id=wallet_id,
        values=payload.model_dump(exclude_unset=True),
    )
    return WalletResponse(**row)


@router.delete("/{wallet_id}", response_model=OperationResponse)
async def delete_wallet(
    wallet_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    await service.delete_wallet(principal, wallet_id)
    return OperationResponse(ok=True, message="Wallet deleted")


@router.post("/{wallet_id}/sync", response_model=WalletSyncResponse)
async def sync_wallet(
    wallet_id: int,
    payload: WalletSyncRequest | None = None,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    result = await service.sync_wallet(
        principal,
        wallet_id=wallet_id,
        force_sync=payload.force_sync if payload is not None else False,
    )
    return WalletSyncResponse(**result)


@router.get("/{wallet_id}/transactions", response_model=Page[TransactionResponse])
async def list_transactions(
    wallet_id: int,
    type: str | None = Query(default=None, max_length=32),
    status: str | None = Query(default=None, max_length=16),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    rows, total = await service.list_transactions(
        principal,
        wallet_id=wallet_id,
        params=params,
        tx_type=type,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    return paginated([TransactionResponse(**row) for row in rows], params, total)


@router.get(
    "/{wallet_id}/transactions/{transaction_id}",
    response_model=TransactionResponse,
)
async def get_transaction(
    wallet_id: int,
    transaction_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: WalletService = Depends(get_wallet_service),
):
    row = await service.get_transaction(
        principal,
        wallet_id=wallet_id,
        transaction_id=transaction_id,
    )
    return TransactionResponse(**row)
