import pytest

from incubus.application.services.notification_service import NotificationService
from incubus.core.database import get_session
from incubus.core.errors import ApiException
from incubus.domain.pagination import PageParams
from incubus.infrastructure.cache.redis_cache import cache
from incubus.infrastructure.db.models import User

pytestmark = pytest.mark.usefixtures("database")


async def _user_ids() -> tuple[int, int]:
    async with get_session() as session:
        admin = User(email="admin@example.com", name="Admin", role="admin")
        player = User(email="player@example.com", name="Player")
        session.add_all([admin, player])
        await session.flush()
        return admin.id, player.id


async def _notify(service: NotificationService, user_ids, **overrides) -> dict:
    values = {
        "event_type": "marketplace.sale",
        "category": "marketplace",
        "title": " Listing sold ",
        "message": "Listing #4 sold.",
        "kind": "success",
        "link": "/marketplace/listings/4",
        "entity_type": "listing",
        "entity_id": 4,
    }
    values.update(overrides)
    async with get_session() as session:
        return await service.notify(session, user_ids=user_ids, **values)


async def test_inbox_read_flow():
    admin_id, player_id = await _user_ids()
    service = NotificationService()

    sent = await _notify(service, [player_id, player_id, admin_id])
    assert sent["recipient_count"] == 2
    assert sent["title"] == "Listing sold"
    await _notify(service, [player_id], category="organizations", kind="bogus")

    rows, total = await service.list_inbox(
        user_id=player_id,
        unread_only=False,
        category=None,
        params=PageParams.build(1, 10),
    )
    assert total == 2
    assert rows[0]["category"] == "organizations"
    assert rows[0]["kind"] == "info"
    assert not any(row["is_read"] for row in rows)
    assert await service.unread_count(user_id=player_id) == 2

    marked = await service.mark_read(user_id=player_id, notification_id=sent["id"])
    assert marked["is_read"] is True
    assert marked["link"] == "/marketplace/listings/4"
    assert await service.unread_count(user_id=player_id) == 1
    assert await service.unread_count(user_id=admin_id) == 1

    assert await service.mark_all_read(user_id=player_id) == 1
    assert await service.unread_count(user_id=player_id) == 0

    marketplace_only, total = await service.list_inbox(
        user_id=player_id,
        unread_only=False,
        category="marketplace",
        params=PageParams.build(1, 10),
    )
    assert total == 1
    assert marketplace_only[0]["id"] == sent["id"]


async def test_remove_only_touches_own_inbox():
    admin_id, player_id = await _user_ids()
    service = NotificationService()
    sent = await _notify(service, [player_id])

    with pytest.raises(ApiException) as foreign:
        await service.mark_read(user_id=admin_id, notification_id=sent["id"])
    assert foreign.value.status_code == 404

    await service.remove(user_id=player_id, notification_id=sent["id"])
    with pytest.raises(ApiException) as again:
        await service.remove(user_id=player_id, notification_id=sent["id"])
    assert again.value.status_code == 404


async def test_broadcast_by_role():
    admin_id, player_id = await _user_ids()
    service = NotificationService()

    everyone = await service.broadcast(sender_id=admin_id, title="Maintenance", message="Back soon.")
    assert everyone["recipient_count"] == 2
    assert everyone["data"] == {"audience": "all"}

    admins = await service.broadcast(
        sender_id=admin_id,
        title="Heads up",
        message="Admins only.",
        role="admin",
        kind="warning",
    )
    assert admins["recipient_count"] == 1
    assert await service.unread_count(user_id=player_id) == 1
    assert await service.unread_count(user_id=admin_id) == 2


async def test_inbox_cache_is_invalidated_only_after_commit(monkeypatch):
    admin_id, player_id = await _user_ids()
    service = NotificationService()
    invalidated: list[tuple[str, ...]] = []

    async def record(*tags):
        invalidated.append(tags)

    monkeypatch.setattr(cache, "invalidate_tags", record)

    async with get_session() as session:
        await service.notify(
            session,
            user_ids=[player_id, admin_id],
            event_type="system.notice",
            category="system",
            title="Maintenance",
            message="Back soon.",
        )
        assert invalidated == []
    assert invalidated == [(f"notifications:{admin_id}", f"notifications:{player_id}")]

    invalidated.clear()
    with pytest.raises(RuntimeError):
        async with get_session() as session:
            await service.notify(
                session,
                user_ids=[player_id],
                event_type="system.notice",
                category="system",
                title="Maintenance",
                message="Back soon.",
            )
            raise RuntimeError("rolled back")
    assert invalidated == []
    assert await service.unread_count(user_id=player_id) == 1
