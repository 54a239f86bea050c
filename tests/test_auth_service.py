from datetime import timedelta

import pytest

from incubus.application.services.auth_service import AuthService
from incubus.core.database import get_session
from incubus.core.errors import ApiException
from incubus.core.security import utc_now
from incubus.infrastructure.repositories.auth_repository import AuthRepository

pytestmark = pytest.mark.usefixtures("database")

PASSWORD = "ember-and-ash-42"


async def _register(email: str = "nyx@example.com"):
    return await AuthService().register(
        email=email,
        password=PASSWORD,
        name="Nyx",
        user_agent="pytest",
        ip_address="127.0.0.1",
    )


async def _sign_in(email: str = "nyx@example.com", password: str = PASSWORD):
    return await AuthService().sign_in(
        email=email,
        password=password,
        user_agent="pytest",
        ip_address="127.0.0.1",
    )


async def _ban(user_id: int, *, expires_in: timedelta | None) -> None:
    async with get_session() as session:
        repo = AuthRepository(session)
        user = await repo.get_user_by_id(user_id)
        await repo.update(
            user,
            banned=True,
            ban_reason="chargebacks",
            ban_expires=utc_now() + expires_in if expires_in else None,
        )


async def test_register_then_sign_in_issues_a_session():
    issued, principal = await _register()
    assert principal.email == "nyx@example.com"
    assert principal.role == "user"
    assert principal.token_jti == issued.token_jti

    _, again = await _sign_in(email="  NYX@example.com ")
    assert again.user_id == principal.user_id
    assert again.token_jti != principal.token_jti


async def test_duplicate_email_is_rejected():
    await _register()

    with pytest.raises(ApiException) as exc:
        await _register(email="Nyx@Example.com")
    assert exc.value.status_code == 409
    assert exc.value.error_code == "EMAIL_ALREADY_EXISTS"


@pytest.mark.parametrize(
    "email, password",
    [("nyx@example.com", "wrong-password"), ("nobody@example.com", PASSWORD)],
)
async def test_bad_credentials_share_one_error(email, password):
    await _register()

    with pytest.raises(ApiException) as exc:
        await _sign_in(email=email, password=password)
    assert exc.value.status_code == 401
    assert exc.value.error_code == "INVALID_CREDENTIALS"


async def test_banned_user_cannot_sign_in():
    _, principal = await _register()
    await _ban(principal.user_id, expires_in=timedelta(days=1))

    with pytest.raises(ApiException) as exc:
        await _sign_in()
    assert exc.value.status_code == 403
    assert exc.value.error_code == "USER_BANNED"
    assert exc.value.details["reason"] == "chargebacks"


async def test_expired_ban_is_lifted_on_sign_in():
    _, principal = await _register()
    await _ban(principal.user_id, expires_in=timedelta(minutes=-5))

    _, signed_in = await _sign_in()
    assert signed_in.user_id == principal.user_id

    async with get_session() as session:
        user = await AuthRepository(session).get_user_by_id(principal.user_id)
        assert user.banned is False
        assert user.ban_reason is None
        assert user.ban_expires is None
