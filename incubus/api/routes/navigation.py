from __future__ import annotations

from fastapi import APIRouter, Depends

from incubus.api.deps.auth import get_current_principal
from incubus.api.schemas.navigation import NavigationResponse, NavItemResponse
from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.domain.navigation import visible_nav_items

router = APIRouter()


@router.get("/admin", response_model=NavigationResponse)
async def admin_navigation(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
):
    return NavigationResponse(
        role=principal.role,
        roles=list(principal.roles),
        items=[NavItemResponse(**item.as_dict()) for item in visible_nav_items(principal.role)],
    )
