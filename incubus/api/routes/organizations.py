from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from incubus.api.deps.auth import get_current_principal
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.common import OperationResponse, Page, payload_values
from incubus.api.schemas.organizations import (
    InvitationCreateRequest,
    InvitationResponse,
    InvitationStatusUpdateRequest,
    MemberCreateRequest,
    MemberResponse,
    MemberRoleUpdateRequest,
    OrganizationCreateRequest,
    OrganizationDetailResponse,
    OrganizationResponse,
    OrganizationUpdateRequest,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.organization_service import OrganizationService
from incubus.domain.pagination import PageParams, paginated
from incubus.infrastructure.cache.redis_cache import cache

router = APIRouter()


def get_organization_service() -> OrganizationService:
    return OrganizationService()


@router.get("/invitations/mine", response_model=list[InvitationResponse])
async def list_my_invitations(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    rows = await service.list_my_invitations(principal)
    return [InvitationResponse(**row) for row in rows]


@router.get("", response_model=Page[OrganizationResponse])
async def list_organizations(
    params: PageParams = Depends(get_page_params),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    rows, total = await service.list_organizations(principal, params=params)
    return paginated([OrganizationResponse(**row) for row in rows], params, total)


@router.post("", response_model=OrganizationResponse, status_code=201)
async def create_organization(
    payload: OrganizationCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    values = payload_values(payload, exclude_unset=False)
    row = await service.create_organization(principal, **values)
    await cache.invalidate_tags("publishers")
    return OrganizationResponse(**row)


@router.get("/{organization_id}", response_model=OrganizationDetailResponse)
async def get_organization(
    organization_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    return OrganizationDetailResponse(**await service.get_organization(principal, organization_id))


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: int,
    payload: OrganizationUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    row = await service.update_organization(
        principal,
        organization_id=organization_id,
        values=payload_values(payload),
    )
    return OrganizationResponse(**row)


@router.delete("/{organization_id}", response_model=OperationResponse)
async def delete_organization(
    organization_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    await service.delete_organization(principal, organization_id)
    await cache.invalidate_tags("publishers")
    return OperationResponse(ok=True, message="Organization deleted")


# Members


@router.get("/{organization_id}/members", response_model=list[MemberResponse])
async def list_members(
    organization_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    rows = await service.list_members(principal, organization_id)
    return [MemberResponse(**row) for row in rows]


@router.post("/{organization_id}/members", response_model=MemberResponse, status_code=201)
async def add_member(
    organization_id: int,
    payload: MemberCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    row = await service.add_member(
        principal,
        organization_id=organization_id,
        user_id=payload.user_id,
        role=payload.role,
    )
    return MemberResponse(**row)


@router.patch("/{organization_id}/members/{member_id}", response_model=MemberResponse)
async def update_member_role(
    organization_id: int,
    member_id: int,
    payload: MemberRoleUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    row = await service.update_member_role(
        principal,
        organization_id=organization_id,
        member_id=member_id,
        role=payload.role,
    )
    return MemberResponse(**row)


@router.delete("/{organization_id}/members/{member_id}", response_model=OperationResponse)
async def remove_member(
    organization_id: int,
    member_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    await service.remove_member(principal, organization_id=organization_id, member_id=member_id)
    return OperationResponse(ok=True, message="Member removed")


# Invitations


@router.get("/{organization_id}/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    organization_id: int,
    status: str | None = Query(
        default=None,
        pattern="^(PENDING|ACCEPTED|REJECTED|CANCELLED|EXPIRED)$",
    ),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    rows = await service.list_invitations(principal, organization_id=organization_id, status=status)
    return [InvitationResponse(**row) for row in rows]


@router.post(
    "/{organization_id}/invitations",
    response_model=InvitationResponse,
    status_code=201,
)
async def create_invitation(
    organization_id: int,
    payload: InvitationCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    row = await service.create_invitation(
        principal,
        organization_id=organization_id,
        email=str(payload.email),
        role=payload.role,
    )
    return InvitationResponse(**row)


@router.get(
    "/{organization_id}/invitations/{invitation_id}",
    response_model=InvitationResponse,
)
async def get_invitation(
    organization_id: int,
    invitation_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    row = await service.get_invitation(
        principal,
        organization_id=organization_id,
        invitation_id=invitation_id,
    )
    return InvitationResponse(**row)


@router.patch(
    "/{organization_id}/invitations/{invitation_id}",
    response_model=InvitationResponse,
)
async def update_invitation_status(
    organization_id: int,
    invitation_id: int,
    payload: InvitationStatusUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
):
    row = await service.update_invitation_status(
        principal,
        organization_id=organization_id,
        invitation_id=invitation_id,
        status=payload.status,
    )
    return InvitationResponse(**row)
