from __future__ import annotations

from typing import Sequence

from sqlalchemy import delete, func, insert, select, update

from incubus.core.security import utc_now
from incubus.infrastructure.db.models.notifications import InboxEntry, Notification
from incubus.infrastructure.repositories.base import BaseRepository

InboxRow = tuple[InboxEntry, Notification]


class NotificationRepository(BaseRepository[Notification]):
    model = Notification

    async def publish(self, *, user_ids: Sequence[int], **values) -> Notification:
        notification = await self.create(**values)
        if user_ids:
            await self.session.execute(
                insert(InboxEntry),
                [{"notification_id": notification.id, "user_id": user_id} for user_id in user_ids],
            )
        return notification

    def _inbox(self, user_id: int):
        return (
            select(InboxEntry, Notification)
            .join(Notification, Notification.id == InboxEntry.notification_id)
            .where(InboxEntry.user_id == user_id)
        )

    async def list_inbox(
        self,
        *,
        user_id: int,
        unread_only: bool,
        category: str | None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[InboxRow], int]:
        stmt = self._inbox(user_id).order_by(Notification.created_at.desc(), Notification.id.desc())
        if unread_only:
            stmt = stmt.where(InboxEntry.read_at.is_(None))
        if category:
            stmt = stmt.where(Notification.category == category)
        return await self.fetch_page(stmt, limit=limit, offset=offset, scalars=False)

    async def get_inbox_row(self, *, user_id: int, notification_id: int) -> InboxRow | None:
        stmt = self._inbox(user_id).where(InboxEntry.notification_id == notification_id)
        return (await self.session.execute(stmt)).first()

    async def mark_read(self, entry: InboxEntry) -> InboxEntry:
        if entry.read_at is None:
            entry.read_at = utc_now()
            await self.session.flush()
        return entry

    async def mark_all_read(self, *, user_id: int) -> int:
        stmt = (
            update(InboxEntry)
            .where(InboxEntry.user_id == user_id, InboxEntry.read_at.is_(None))
            .values(read_at=utc_now())
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def unread_count(self, *, user_id: int) -> int:
        stmt = select(func.count(InboxEntry.id)).where(
            InboxEntry.user_id == user_id,
            InboxEntry.read_at.is_(None),
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def remove_entry(self, *, user_id: int, notification_id: int) -> bool:
        stmt = delete(InboxEntry).where(
            InboxEntry.user_id == user_id,
            InboxEntry.notification_id == notification_id,
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)
