from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from incubus.api.schemas.users import UserResponse


class AdminUserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    limit: int
    offset: int


class SetRoleRequest(BaseModel):
    role: Literal["admin", "user"]


class BanUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=1000)
    expires_in: int | None = Field(default=None, ge=60)


class ImpersonateRequest(BaseModel):
    user_id: int


class DashboardResponse(BaseModel):
    generated_at: datetime
    total_users: int
    banned_users: int
    total_players: int
    total_games: int
    total_publishers: int
    active_listings: int
    transactions_today: int


class SeriesPointResponse(BaseModel):
    time: datetime
    value: float


class SeriesResponse(BaseModel):
    id: str
    color: str
    points: list[SeriesPointResponse]
    total: float


class AnalyticsResponse(BaseModel):
    start: datetime
    end: datetime
    series: list[SeriesResponse]
    layout: dict[str, Any]


class RouteMetricsResponse(BaseModel):
    method: str
    path: str
    requests: int
    errors: int
    avg_duration_ms: float


class AuditLogResponse(BaseModel):
    id: int
    user_id: int | None = None
    user_name: str | None = None
    action: str
    entity_type: str
    entity_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    status_code: int | None = None
    timestamp: datetime


class AuditFacetsResponse(BaseModel):
    actions: dict[str, int]
    entity_types: dict[str, int]


class MonitoringResponse(BaseModel):
    generated_at: datetime
    http: list[RouteMetricsResponse]
    error_count: int
    recent_errors: list[AuditLogResponse]
    series: list[SeriesResponse]
    layout: dict[str, Any]
