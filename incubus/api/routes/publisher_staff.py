from __future__ import annotations

from fastapi import APIRouter, Depends

from incubus.api.deps.auth import get_current_principal, require_publisher_roles
from incubus.api.schemas.common import OperationResponse
from incubus.api.schemas.staff import (
    PublisherStaffCreateRequest,
    PublisherStaffRegisterRequest,
    StaffResponse,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.staff_service import StaffService
from incubus.domain.roles import PublisherStaffRole

router = APIRouter()

require_publisher_lead = require_publisher_roles(PublisherStaffRole.PUBLISHER)


def get_staff_service() -> StaffService:
    return StaffService()


@router.post("/register", response_model=StaffResponse, status_code=201)
async def register_publisher_staff(
    payload: PublisherStaffRegisterRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: StaffService = Depends(get_staff_service),
):
    row = await service.register_publisher_staff(
        principal,
        publisher_id=payload.publisher_id,
        role=payload.role,
    )
    return StaffResponse(**row)


@router.get("", response_model=list[StaffResponse])
async def list_own_publisher_staff(
    principal: AuthenticatedPrincipal = Depends(require_publisher_lead),
    service: StaffService = Depends(get_staff_service),
):
    rows = await service.list_publisher_staff(publisher_id=principal.publisher_id)
    return [StaffResponse(**row) for row in rows]


@router.post("", response_model=StaffResponse, status_code=201)
async def create_own_publisher_staff(
    payload: PublisherStaffCreateRequest,
    principal: AuthenticatedPrincipal = Depends(require_publisher_lead),
    service: StaffService = Depends(get_staff_service),
):
    row = await service.add_publisher_staff(
        publisher_id=principal.publisher_id,
        email=str(payload.email),
        name=payload.name,
        role=payload.role,
    )
    return StaffResponse(**row)


@router.delete("/{user_id}", response_model=OperationResponse)
async def delete_own_publisher_staff(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(require_publisher_lead),
    service: StaffService = Depends(get_staff_service),
):
    await service.remove_publisher_staff(
        principal,
        publisher_id=principal.publisher_id,
        user_id=user_id,
    )
    return OperationResponse(ok=True, message="Publisher staff removed")
