from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

NotificationKind = Literal["info", "success", "warning", "error"]


class NotificationBase(BaseModel):
    id: int
    kind: NotificationKind
    event_type: str
    category: str
    title: str
    message: str
    link: str | None = None
    entity_type: str | None = None
    entity_id: int | None = None
    sender_id: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class NotificationResponse(NotificationBase):
    is_read: bool
    read_at: datetime | None = None


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int


class BroadcastRequest(BaseModel):
    title: str = Field(min_length=2, max_length=255)
    message: str = Field(min_length=2, max_length=5000)
    kind: NotificationKind = "info"
    role: Literal["admin", "user"] | None = None
    link: str | None = Field(default=None, max_length=512)


class BroadcastResponse(NotificationBase):
    recipient_count: int
