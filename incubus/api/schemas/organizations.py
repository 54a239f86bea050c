from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field, HttpUrl

OrganizationRoleName = Literal["owner", "admin", "member", "publisher"]


class OrganizationResponse(BaseModel):
    id: int
    name: str
    slug: str
    logo: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    role: str | None = None
    publisher_id: int | None = None
    created_at: datetime
    updated_at: datetime


class OrganizationDetailResponse(OrganizationResponse):
    member_count: int = 0


class OrganizationCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    logo: HttpUrl | None = None
    metadata: dict[str, Any] | None = None


class OrganizationUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    logo: HttpUrl | None = None
    metadata: dict[str, Any] | None = None


class MemberResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    role: str
    name: str | None = None
    email: str | None = None
    image: str | None = None
    created_at: datetime


class MemberCreateRequest(BaseModel):
    user_id: int = Field(ge=1)
    role: OrganizationRoleName = "member"


class MemberRoleUpdateRequest(BaseModel):
    role: OrganizationRoleName


class InvitationResponse(BaseModel):
    id: int
    organization_id: int
    organization_name: str | None = None
    email: str
    role: str
    status: str
    expires_at: datetime
    inviter_id: int | None = None
    created_at: datetime
    updated_at: datetime


class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: OrganizationRoleName = "member"


class InvitationStatusUpdateRequest(BaseModel):
    status: Literal["ACCEPTED", "REJECTED", "CANCELLED"]
