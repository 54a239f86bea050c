from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import func, or_, select

from incubus.infrastructure.db.models.audit import AuditLog
from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.repositories.base import BaseRepository, bucket_start


class AuditRepository(BaseRepository[AuditLog]):
    model = AuditLog

    def _filtered(
        self,
        stmt,
        *,
        action: str | None,
        entity_type: str | None,
        user_id: int | None,
        start: datetime | None,
        end: datetime | None,
        query: str | None,
        errors_only: bool,
    ):
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if entity_type:
            stmt = stmt.where(AuditLog.entity_type == entity_type)
        if user_id is not None:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if start is not None:
            stmt = stmt.where(AuditLog.timestamp >= start)
        if end is not None:
            stmt = stmt.where(AuditLog.timestamp <= end)
        if errors_only:
            stmt = stmt.where(AuditLog.status_code >= 400)
        pattern = self.search_pattern(query)
        if pattern:
            stmt = stmt.where(
                or_(
                    AuditLog.action.ilike(pattern),
                    AuditLog.entity_type.ilike(pattern),
                    AuditLog.entity_id.ilike(pattern),
                )
            )
        return stmt

    async def search(
        self,
        *,
        limit: int,
        offset: int,
        action: str | None = None,
        entity_type: str | None = None,
        user_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        query: str | None = None,
        errors_only: bool = False,
    ) -> tuple[Sequence[tuple[AuditLog, str | None]], int]:
        stmt = (
            select(AuditLog, User.name)
            .outerjoin(User, User.id == AuditLog.user_id)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        )
        stmt = self._filtered(
            stmt,
            action=action,
            entity_type=entity_type,
            user_id=user_id,
            start=start,
            end=end,
            query=query,
            errors_only=errors_only,
        )
        return await self.fetch_page(stmt, limit=limit, offset=offset, scalars=False)

    async def facet_counts(self, column_name: str) -> dict[str, int]:
        column = getattr(AuditLog, column_name)
        stmt = select(column, func.count(AuditLog.id)).group_by(column).order_by(column)
        rows = (await self.session.execute(stmt)).all()
        return {str(value): int(count) for value, count in rows}

    async def errors_per_hour(self, *, start: datetime) -> dict[datetime, int]:
        hour = self.truncate_time(AuditLog.timestamp, "hour")
        stmt = (
            select(hour.label("hour"), func.count(AuditLog.id))
            .where(AuditLog.timestamp >= start, AuditLog.status_code >= 400)
            .group_by(hour)
            .order_by(hour)
        )
        rows = (await self.session.execute(stmt)).all()
        return {bucket_start(value): int(count) for value, count in rows}
