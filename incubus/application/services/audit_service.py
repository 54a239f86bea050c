from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from incubus.core.database import get_session
from incubus.core.request_context import request_id_ctx
from incubus.domain.pagination import PageParams
from incubus.infrastructure.db.models.audit import AuditLog
from incubus.infrastructure.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)


def audit_log_to_dict(row: AuditLog, user_name: str | None = None) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "user_name": user_name,
        "action": row.action,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "details": row.details or {},
        "ip_address": row.ip_address,
        "user_agent": row.user_agent,
        "request_id": row.request_id,
        "status_code": row.status_code,
        "timestamp": row.timestamp,
    }


class AuditService:
    @staticmethod
    async def record_in_session(
        session: AsyncSession,
        *,
        action: str,
        entity_type: str,
        entity_id: str | int | None,
        user_id: int | None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Write an audit entry that commits or rolls back with ``session``."""
        row = await AuditRepository(session).create(
            action=action,
            entity_type=entity_type,
            entity_id=None if entity_id is None else str(entity_id),
            user_id=user_id,
            details=details,
            request_id=request_id_ctx.get(),
        )
        logger.info("Audit %s on %s:%s by user=%s", action, entity_type, entity_id, user_id)
        return row

    async def search(
        self,
        *,
        params: PageParams,
        action: str | None = None,
        entity_type: str | None = None,
        user_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        query: str | None = None,
    ) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await AuditRepository(session).search(
                limit=params.limit,
                offset=params.offset,
                action=action,
                entity_type=entity_type,
                user_id=user_id,
                start=start,
                end=end,
                query=query,
            )
            return [audit_log_to_dict(row, user_name) for row, user_name in rows], total

    async def facets(self) -> dict[str, dict[str, int]]:
        async with get_session() as session:
            repo = AuditRepository(session)
            return {
                "actions": await repo.facet_counts("action"),
                "entity_types": await repo.facet_counts("entity_type"),
            }
