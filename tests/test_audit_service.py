from datetime import timedelta

import pytest

from incubus.application.services.audit_service import AuditService
from incubus.core.database import get_session
from incubus.core.security import utc_now
from incubus.domain.pagination import PageParams
from incubus.infrastructure.db.models import User

pytestmark = pytest.mark.usefixtures("database")


async def _seed() -> int:
    async with get_session() as session:
        admin = User(email="root@example.com", name="Root", role="admin")
        session.add(admin)
        await session.flush()
        await AuditService.record_in_session(
            session,
            action="user.ban",
            entity_type="user",
            entity_id=7,
            user_id=admin.id,
            details={"reason": "spam"},
        )
        await AuditService.record_in_session(
            session,
            action="listing.purchase",
            entity_type="listing",
            entity_id=12,
            user_id=admin.id,
        )
        await AuditService.record_in_session(
            session,
            action="user.unban",
            entity_type="user",
            entity_id=7,
            user_id=None,
        )
        return admin.id


async def test_search_filters_and_joins_user_name():
    admin_id = await _seed()
    service = AuditService()
    params = PageParams.build(1, 20)

    rows, total = await service.search(params=params)
    assert total == 3
    assert {row["action"] for row in rows} == {"user.ban", "listing.purchase", "user.unban"}

    bans, total = await service.search(params=params, action="user.ban")
    assert total == 1
    assert bans[0]["user_name"] == "Root"
    assert bans[0]["entity_id"] == "7"
    assert bans[0]["details"] == {"reason": "spam"}

    by_user, total = await service.search(params=params, user_id=admin_id)
    assert total == 2

    matched, total = await service.search(params=params, query="LISTING")
    assert total == 1
    assert matched[0]["entity_type"] == "listing"

    anonymous, _ = await service.search(params=params, action="user.unban")
    assert anonymous[0]["user_name"] is None
    assert anonymous[0]["details"] == {}


async def test_search_date_window_and_facets():
    await _seed()
    service = AuditService()
    params = PageParams.build(1, 20)

    _, total = await service.search(params=params, start=utc_now() + timedelta(hours=1))
    assert total == 0
    _, total = await service.search(params=params, end=utc_now() + timedelta(hours=1))
    assert total == 3

    facets = await service.facets()
    assert facets["actions"] == {"listing.purchase": 1, "user.ban": 1, "user.unban": 1}
    assert facets["entity_types"] == {"listing": 1, "user": 2}
