from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from incubus.core.database import after_commit, get_session
from incubus.core.errors import ApiException, not_found
from incubus.domain.pagination import PageParams
from incubus.infrastructure.cache.redis_cache import cache
from incubus.infrastructure.db.models.notifications import InboxEntry, Notification
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)

NOTIFICATION_KINDS = ("info", "success", "warning", "error")


def notification_to_dict(notification: Notification, entry: InboxEntry | None = None) -> dict:
    data = {
        "id": notification.id,
        "kind": notification.kind,
        "event_type": notification.event_type,
        "category": notification.category,
        "title": notification.title,
        "message": notification.message,
        "link": notification.link,
        "entity_type": notification.entity_type,
        "entity_id": notification.entity_id,
        "sender_id": notification.sender_id,
        "data": notification.data or {},
        "created_at": notification.created_at,
    }
    if entry is not None:
        data["read_at"] = entry.read_at
        data["is_read"] = entry.read_at is not None
    return data


class NotificationService:
    """In-app inbox: one ``Notification`` per event, one ``InboxEntry`` per recipient."""

    async def list_inbox(
        self,
        *,
        user_id: int,
        unread_only: bool,
        category: str | None,
        params: PageParams,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await NotificationRepository(session).list_inbox(
                user_id=user_id,
                unread_only=unread_only,
                category=category,
                limit=params.limit,
                offset=params.offset,
            )
            return [notification_to_dict(notification, entry) for entry, notification in rows], total

    async def unread_count(self, *, user_id: int) -> int:
        async with get_session() as session:
            return await NotificationRepository(session).unread_count(user_id=user_id)

    async def mark_read(self, *, user_id: int, notification_id: int) -> dict:
        async with get_session() as session:
            repo = NotificationRepository(session)
            row = await repo.get_inbox_row(user_id=user_id, notification_id=notification_id)
            if row is None:
                raise not_found("Notification")
            entry, notification = row
            await repo.mark_read(entry)
            return notification_to_dict(notification, entry)

    async def mark_all_read(self, *, user_id: int) -> int:
        async with get_session() as session:
            return await NotificationRepository(session).mark_all_read(user_id=user_id)

    async def remove(self, *, user_id: int, notification_id: int) -> None:
        async with get_session() as session:
            removed = await NotificationRepository(session).remove_entry(
                user_id=user_id,
                notification_id=notification_id,
            )
            if not removed:
                raise not_found("Notification")

    async def broadcast(
        self,
        *,
        sender_id: int,
        title: str,
        message: str,
        kind: str = "info",
        role: str | None = None,
        link: str | None = None,
    ) -> dict:
        async with get_session() as session:
            user_ids = await AuthRepository(session).list_user_ids(role=role)
            if not user_ids:
                raise ApiException(
                    status_code=400,
                    error_code="NO_RECIPIENTS",
                    message="No users match the broadcast audience",
                    details={"role": role},
                )
            return await self.notify(
                session,
                user_ids=user_ids,
                sender_id=sender_id,
                event_type="admin.broadcast",
                category="announcements",
                kind=kind,
                title=title,
                message=message,
                link=link,
                data={"audience": role or "all"},
            )

    async def notify(
        self,
        session: AsyncSession,
        *,
        user_ids: Iterable[int],
        event_type: str,
        category: str,
        title: str,
        message: str,
        kind: str = "info",
        sender_id: int | None = None,
        link: str | None = None,
        entity_type: str | None = None,
        entity_id: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> dict:
        """Publish within ``session``; rows commit with the caller's transaction."""
        recipients = sorted(set(user_ids))
        notification = await NotificationRepository(session).publish(
            user_ids=recipients,
            kind=kind if kind in NOTIFICATION_KINDS else "info",
            event_type=event_type,
            category=category,
            title=title.strip(),
            message=message.strip(),
            link=link,
            entity_type=entity_type,
            entity_id=entity_id,
            sender_id=sender_id,
            data=data,
        )
        tags = [cache.notifications_tag(user_id) for user_id in recipients]
        after_commit(session, lambda: cache.invalidate_tags(*tags))
        logger.info(
            "Notification id=%s event_type=%s sent to %s user(s)",
            notification.id,
            event_type,
            len(recipients),
        )
        return {**notification_to_dict(notification), "recipient_count": len(recipients)}
