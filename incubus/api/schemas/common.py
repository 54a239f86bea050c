from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import AnyUrl, BaseModel, ConfigDict, Field

T = TypeVar("T")


class HealthResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: datetime


class DeepHealthResponse(HealthResponse):
    checks: dict[str, dict[str, Any]]


class OperationResponse(BaseModel):
    ok: bool
    message: str
    details: dict[str, Any] | None = None


class PaginationMetaResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PageMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    pagination: PaginationMetaResponse
    page_window: list[int | str] = Field(default_factory=list)


class Page(BaseModel, Generic[T]):
    data: list[T]
    meta: PageMeta


def payload_values(payload: BaseModel, *, exclude_unset: bool = True) -> dict[str, Any]:
    """Request fields as plain column values; URLs are stored as strings."""
    values = payload.model_dump(exclude_unset=exclude_unset)
    return {key: str(value) if isinstance(value, AnyUrl) else value for key, value in values.items()}
