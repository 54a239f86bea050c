from dataclasses import replace
from datetime import timedelta

import pytest

from incubus.application.services.admin_service import RECENT_ERROR_LIMIT, AdminService
from incubus.application.services.auth_service import AuthService
from incubus.core.database import get_session
from incubus.core.errors import ApiException
from incubus.core.security import utc_now
from incubus.domain.charts import ChartBox
from incubus.infrastructure.repositories.audit_repository import AuditRepository
from incubus.infrastructure.repositories.auth_repository import AuthRepository

pytestmark = pytest.mark.usefixtures("database")


async def _account(email: str, *, role: str = "user"):
    issued, principal = await AuthService().register(
        email=email,
        password="ember-and-ash-42",
        name=email.split("@")[0].title(),
        user_agent="pytest",
        ip_address="127.0.0.1",
    )
    if role != "user":
        async with get_session() as session:
            repo = AuthRepository(session)
            await repo.update(await repo.get_user_by_id(principal.user_id), role=role)
        principal = replace(principal, role=role, roles=(role,))
    return issued, principal


async def _active_sessions(user_id: int) -> list:
    async with get_session() as session:
        return list(await AuthRepository(session).list_sessions(user_id=user_id))


async def test_admins_cannot_be_impersonated():
    _, admin = await _account("warden@example.com", role="admin")
    _, other_admin = await _account("keeper@example.com", role="admin")

    with pytest.raises(ApiException) as exc:
        await AdminService().impersonate(
            actor=admin,
            user_id=other_admin.user_id,
            user_agent=None,
            ip_address=None,
        )
    assert exc.value.status_code == 403


async def test_stop_impersonating_restores_admin_session():
    _, admin = await _account("warden@example.com", role="admin")
    _, player = await _account("nyx@example.com")
    service = AdminService()

    issued, impersonated = await service.impersonate(
        actor=admin,
        user_id=player.user_id,
        user_agent="pytest",
        ip_address=None,
    )
    assert impersonated.user_id == player.user_id
    assert impersonated.impersonated_by == admin.user_id

    with pytest.raises(ApiException) as nested:
        await service.impersonate(actor=impersonated, user_id=admin.user_id, user_agent=None, ip_address=None)
    assert nested.value.error_code == "ALREADY_IMPERSONATING"

    restored_token, restored = await service.stop_impersonating(
        principal=impersonated,
        access_token=issued.access_token,
    )
    assert restored.user_id == admin.user_id
    assert restored.token_jti == admin.token_jti
    assert restored.impersonated_by is None
    assert restored_token.token_jti == admin.token_jti

    active = {row.token_jti for row in await _active_sessions(player.user_id)}
    assert impersonated.token_jti not in active


async def test_stop_impersonating_requires_an_impersonation():
    issued, player = await _account("nyx@example.com")

    with pytest.raises(ApiException) as exc:
        await AdminService().stop_impersonating(principal=player, access_token=issued.access_token)
    assert exc.value.error_code == "NOT_IMPERSONATING"


async def test_ban_revokes_sessions_and_unban_restores_access():
    _, admin = await _account("warden@example.com", role="admin")
    _, player = await _account("nyx@example.com")
    assert len(await _active_sessions(player.user_id)) == 1
    service = AdminService()

    with pytest.raises(ApiException) as self_ban:
        await service.ban_user(actor=admin, user_id=admin.user_id, reason=None, expires_in=None)
    assert self_ban.value.error_code == "CANNOT_BAN_SELF"

    banned = await service.ban_user(actor=admin, user_id=player.user_id, reason="bots", expires_in=3600)
    assert banned["banned"] is True
    assert await _active_sessions(player.user_id) == []

    with pytest.raises(ApiException) as exc:
        await AuthService().sign_in(
            email="nyx@example.com",
            password="ember-and-ash-42",
            user_agent=None,
            ip_address=None,
        )
    assert exc.value.error_code == "USER_BANNED"

    await service.unban_user(actor=admin, user_id=player.user_id)
    _, signed_in = await AuthService().sign_in(
        email="nyx@example.com",
        password="ember-and-ash-42",
        user_agent=None,
        ip_address=None,
    )
    assert signed_in.user_id == player.user_id


async def test_monitoring_counts_every_error_per_hour():
    now = utc_now()
    busy_hour = now - timedelta(hours=1)
    async with get_session() as session:
        repo = AuditRepository(session)
        for index in range(RECENT_ERROR_LIMIT + 5):
            await repo.create(
                action="request.failed",
                entity_type="http",
                entity_id=str(index),
                status_code=500,
                timestamp=busy_hour,
            )
        for status_code, timestamp in (
            (404, now - timedelta(hours=3)),
            (200, busy_hour),
            (502, now - timedelta(days=2)),
        ):
            await repo.create(
                action="request.finished",
                entity_type="http",
                status_code=status_code,
                timestamp=timestamp,
            )

    result = await AdminService().get_monitoring(hours=6, box=ChartBox(width=600, height=240))

    assert result["error_count"] == RECENT_ERROR_LIMIT + 6
    assert len(result["recent_errors"]) == RECENT_ERROR_LIMIT
    (errors,) = result["series"]
    assert errors["total"] == RECENT_ERROR_LIMIT + 6
    points = {point["time"]: point["value"] for point in errors["points"]}
    assert points[busy_hour.replace(minute=0, second=0, microsecond=0)] == RECENT_ERROR_LIMIT + 5
    assert len(errors["points"]) == 7
