from __future__ import annotations

from fastapi import APIRouter, Depends

from incubus.api.deps.auth import get_current_principal, require_platform_roles
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.common import OperationResponse, Page
from incubus.api.schemas.staff import PlatformStaffCreateRequest, StaffResponse
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.staff_service import StaffService
from incubus.domain.pagination import PageParams, paginated
from incubus.domain.roles import PLATFORM_MANAGER_ROLES

router = APIRouter()

require_staff_manager = require_platform_roles(*PLATFORM_MANAGER_ROLES)


def get_staff_service() -> StaffService:
    return StaffService()


@router.post("/register", response_model=StaffResponse, status_code=201)
async def register_platform_staff(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: StaffService = Depends(get_staff_service),
):
    return StaffResponse(**await service.register_platform_staff(principal))


@router.get("", response_model=Page[StaffResponse])
async def list_platform_staff(
    params: PageParams = Depends(get_page_params),
    _: AuthenticatedPrincipal = Depends(require_staff_manager),
    service: StaffService = Depends(get_staff_service),
):
    rows, total = await service.list_platform_staff(params=params)
    return paginated([StaffResponse(**row) for row in rows], params, total)


@router.post("", response_model=StaffResponse, status_code=201)
async def create_platform_staff(
    payload: PlatformStaffCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_staff_manager),
    service: StaffService = Depends(get_staff_service),
):
    row = await service.create_platform_staff(
        email=str(payload.email),
        name=payload.name,
        role=payload.role,
    )
    return StaffResponse(**row)


@router.delete("/{user_id}", response_model=OperationResponse)
async def delete_platform_staff(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(require_staff_manager),
    service: StaffService = Depends(get_staff_service),
):
    await service.delete_platform_staff(principal, user_id=user_id)
    return OperationResponse(ok=True, message="Platform staff removed")
