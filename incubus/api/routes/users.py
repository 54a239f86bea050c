from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from incubus.api.deps.auth import get_current_principal, require_admin
from incubus.api.deps.pagination import get_page_params
from incubus.api.schemas.common import OperationResponse, Page
from incubus.api.schemas.users import (
    AccountKindResponse,
    ProfileUpdateRequest,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
)
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.user_service import UserService
from incubus.domain.pagination import PageParams, paginated, resolve_sort
from incubus.domain.roles import account_kind

router = APIRouter()

USER_SORT_FIELDS = ("name", "email", "createdAt", "updatedAt", "role")


def get_user_service() -> UserService:
    return UserService()


@router.get("/me/profile", response_model=UserResponse)
async def get_my_profile(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: UserService = Depends(get_user_service),
):
    return UserResponse(**await service.get_user(principal.user_id))


@router.patch("/me/profile", response_model=UserResponse)
async def update_my_profile(
    payload: ProfileUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: UserService = Depends(get_user_service),
):
    row = await service.update_profile(
        user_id=principal.user_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return UserResponse(**row)


@router.get("/me/role", response_model=AccountKindResponse)
async def get_my_role(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
):
    return AccountKindResponse(
        kind=account_kind(
            platform_role=principal.platform_role,
            publisher_role=principal.publisher_role,
            is_player=principal.is_player,
        ),
        roles=list(principal.roles),
    )


@router.get("", response_model=Page[UserResponse])
async def list_users(
    search: str | None = Query(default=None, max_length=255),
    role: str | None = Query(default=None, max_length=32),
    banned: bool | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    params: PageParams = Depends(get_page_params),
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    sort = resolve_sort(
        sort_by,
        sort_order,
        default_field="createdAt",
        allowed_fields=USER_SORT_FIELDS,
    )
    rows, total = await service.list_users(
        params=params,
        sort=sort,
        search=search,
        role=role,
        banned=banned,
    )
    return paginated([UserResponse(**row) for row in rows], params, total)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    payload: UserCreateRequest,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    row = await service.create_user(
        email=str(payload.email),
        password=payload.password,
        name=payload.name,
        role=payload.role,
        image=payload.image,
    )
    return UserResponse(**row)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    return UserResponse(**await service.get_user(user_id))


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    payload: UserUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: UserService = Depends(get_user_service),
):
    changes = payload.model_dump(exclude_unset=True)
    if "email" in changes and changes["email"] is not None:
        changes["email"] = str(changes["email"])
    row = await service.update_user(principal=principal, user_id=user_id, changes=changes)
    return UserResponse(**row)


@router.delete("/{user_id}", response_model=OperationResponse)
async def delete_user(
    user_id: int,
    _: AuthenticatedPrincipal = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    await service.delete_user(user_id)
    return OperationResponse(ok=True, message="User deleted")
