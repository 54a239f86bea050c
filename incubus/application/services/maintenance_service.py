from __future__ import annotations

import logging
from datetime import timedelta

from incubus.core.config import get_settings
from incubus.core.database import get_session
from incubus.core.security import utc_now
from incubus.infrastructure.cache.redis_cache import cache
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.marketplace_repository import MarketplaceRepository
from incubus.infrastructure.repositories.organization_repository import OrganizationRepository

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Periodic clean-up run by the Celery beat schedule."""

    async def expire_listings(self) -> dict:
        async with get_session() as session:
            expired = await MarketplaceRepository(session).expire_listings(now=utc_now())
        if expired:
            await cache.invalidate_tags("marketplace")
            logger.info("Expired marketplace listings count=%s", expired)
        return {"expired": expired}

    async def expire_invitations(self) -> dict:
        async with get_session() as session:
            expired = await OrganizationRepository(session).expire_invitations(now=utc_now())
        if expired:
            logger.info("Expired organization invitations count=%s", expired)
        return {"expired": expired}

    async def prune_sessions(self) -> dict:
        retention = timedelta(days=get_settings().INCUBUS_SESSION_RETENTION_DAYS)
        async with get_session() as session:
            pruned = await AuthRepository(session).prune_sessions(older_than=utc_now() - retention)
        logger.info("Pruned auth sessions count=%s", pruned)
        return {"pruned": pruned}
