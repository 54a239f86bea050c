from datetime import datetime, timezone

import pytest

from incubus.core.config import IncubusSettings
from incubus.core.errors import ApiException
from incubus.core.metrics import MetricsRegistry
from incubus.core.observability import AuditTrailMiddleware, SecurityHardeningMiddleware
from incubus.core.rate_limit import RequestRateLimiter
from incubus.core.security import (
    as_utc,
    create_signed_token,
    decode_signed_token,
    hash_password,
    verify_password,
)
from incubus.infrastructure.cache.redis_cache import RedisCache

SECRET = "unit-test-secret-that-is-long-enough-for-hs256"


def _settings(**overrides) -> IncubusSettings:
    return IncubusSettings(JWT_SECRET=SECRET, **overrides)


def test_settings_split_lists_and_admin_emails():
    settings = _settings(
        INCUBUS_ADMIN_EMAILS=" Root@Example.com, ops@example.com ,",
        INCUBUS_CORS_ALLOW_ORIGINS="https://a.test, https://b.test",
    )
    assert settings.admin_emails == {"root@example.com", "ops@example.com"}
    assert settings.cors_allow_origins == ["https://a.test", "https://b.test"]


def test_settings_database_url_fallback():
    settings = _settings(INCUBUS_DATABASE_URL="", POSTGRES_HOST="db", POSTGRES_DB="shop")
    assert settings.database_url.startswith("postgresql+asyncpg://")
    assert settings.database_url.endswith("@db:5432/shop")
    assert _settings(INCUBUS_DATABASE_URL="sqlite+aiosqlite:///x.db").database_url == (
        "sqlite+aiosqlite:///x.db"
    )


def test_cookie_samesite_none_requires_secure():
    assert _settings(INCUBUS_AUTH_COOKIE_SAMESITE="None").auth_cookie_samesite == "lax"
    assert (
        _settings(
            INCUBUS_AUTH_COOKIE_SAMESITE="none",
            INCUBUS_AUTH_COOKIE_SECURE=True,
        ).auth_cookie_samesite
        == "none"
    )
    assert _settings(INCUBUS_AUTH_COOKIE_SAMESITE="bogus").auth_cookie_samesite == "lax"


def test_password_hash_and_verify():
    hashed = hash_password("correct horse battery staple")
    verified, rehashed = verify_password("correct horse battery staple", hashed)
    assert verified
    assert rehashed is None
    assert verify_password("wrong", hashed)[0] is False
    assert verify_password("anything", None) == (False, None)


def test_signed_token_round_trip():
    settings = _settings()
    token, expires_at = create_signed_token(
        settings=settings,
        token_type="access",
        claims={"sub": "7", "jti": "abc"},
        ttl_seconds=300,
    )
    payload = decode_signed_token(settings=settings, token=token, expected_type="access")
    assert payload["sub"] == "7"
    assert payload["exp"] == int(expires_at.timestamp())


def test_signed_token_rejects_wrong_type_and_expiry():
    settings = _settings()
    token, _ = create_signed_token(settings=settings, token_type="state", claims={}, ttl_seconds=300)
    with pytest.raises(ApiException) as exc_info:
        decode_signed_token(settings=settings, token=token, expected_type="access")
    assert exc_info.value.error_code == "TOKEN_TYPE_INVALID"

    expired, _ = create_signed_token(settings=settings, token_type="access", claims={}, ttl_seconds=-600)
    with pytest.raises(ApiException) as exc_info:
        decode_signed_token(settings=settings, token=expired, expected_type="access")
    assert exc_info.value.status_code == 401
    assert exc_info.value.error_code == "TOKEN_EXPIRED"

    with pytest.raises(ApiException) as exc_info:
        decode_signed_token(settings=settings, token="not-a-token", expected_type="access")
    assert exc_info.value.error_code == "TOKEN_INVALID"


def test_as_utc_marks_naive_values():
    naive = datetime(2026, 1, 1, 12, 0)
    assert as_utc(naive).tzinfo is timezone.utc
    assert as_utc(None) is None


def test_cache_key_is_stable_and_prefixed():
    cache = RedisCache()
    prefix = cache.settings.INCUBUS_CACHE_PREFIX
    assert cache.build_key("games_list") == f"{prefix}:games_list"
    key = cache.build_key(
        "games_list",
        {"search": None, "page": 2, "featured": True, "tags": [3, 1]},
    )
    assert key == f"{prefix}:games_list:featured=1&page=2&search=null&tags=1,3"
    assert RedisCache.notifications_tag(9) == "notifications:9"


async def test_disabled_cache_is_a_no_op():
    cache = RedisCache()
    assert not cache.enabled
    await cache.set_json(key="k", value={"a": 1}, ttl_seconds=10, tags={"games"})
    assert await cache.get_json("k") is None
    await cache.invalidate_tags("games")

    calls = []

    async def load():
        calls.append(1)
        return {"n": len(calls)}

    assert await cache.remember("k", ttl_seconds=5, tags={"games"}, loader=load) == {"n": 1}
    assert await cache.remember("k", ttl_seconds=5, tags={"games"}, loader=load) == {"n": 2}


def test_rate_limit_scopes():
    middleware = SecurityHardeningMiddleware(app=None, settings=_settings())
    assert middleware.resolve_scope(method="POST", path="/api/v1/auth/sign-in")[0] == "auth"
    assert middleware.resolve_scope(method="POST", path="/api/v1/admin/users/3/ban")[0] == "privileged"
    assert (
        middleware.resolve_scope(method="POST", path="/api/v1/marketplace/listings/4/purchase")[0]
        == "privileged"
    )
    assert middleware.resolve_scope(method="GET", path="/api/v1/admin/users")[0] == "general"
    assert middleware.resolve_scope(method="GET", path="/docs")[0] == "external"


def test_audit_request_description():
    middleware = AuditTrailMiddleware(app=None, settings=_settings())
    describe = middleware.describe_request
    assert describe("/api/v1/marketplace/listings/12/purchase", "POST") == ("listings", "12", "purchase")
    assert describe("/api/v1/games/5", "PATCH") == ("games", "5", "patch")
    assert describe("/api/v1/games/5/reviews", "POST") == ("reviews", None, "post")
    assert describe("/api/v1/admin/stop-impersonating", "POST") == ("admin", None, "stop_impersonating")
    assert describe("/api/v1/wishlist/5", "POST")[0] is None
    assert describe("/other/5", "POST")[0] is None


async def test_local_rate_window_counts_per_key():
    limiter = RequestRateLimiter(_settings())
    assert [await limiter._hit_local("rl:auth:1.2.3.4", 60) for _ in range(3)] == [1, 2, 3]
    assert await limiter._hit_local("rl:auth:5.6.7.8", 60) == 1


def test_metrics_snapshot_and_exposition():
    registry = MetricsRegistry()
    registry.record_http_request(method="get", route_path="/games", status_code=200, duration_seconds=0.02)
    registry.record_http_request(method="GET", route_path="/games", status_code=503, duration_seconds=0.04)
    registry.record_purchase(listing_type="GAME_ITEM", result="ok")

    snapshot = registry.http_snapshot()
    assert snapshot == [
        {"method": "GET", "path": "/games", "requests": 2, "errors": 1, "avg_duration_ms": 30.0}
    ]
    text = registry.render_prometheus()
    assert 'incubus_http_requests_total{method="GET",path="/games",status="200"} 1' in text
    assert 'incubus_http_request_duration_seconds_bucket{method="GET",path="/games",le="0.05"} 2' in text
    assert 'incubus_marketplace_purchases_total{listing_type="GAME_ITEM",result="ok"} 1' in text


def test_metrics_render_every_recorded_series():
    registry = MetricsRegistry()
    registry.record_rpc_duration(chain="Ethereum", duration_seconds=0.3)
    registry.record_wallet_sync(result="skipped")
    registry.record_rate_limit_rejection(scope="auth")
    registry.record_authz_failure(scope="admin", status_code=403)

    lines = registry.render_prometheus().splitlines()
    assert 'incubus_rpc_duration_seconds_bucket{chain="Ethereum",le="0.25"} 1' not in lines
    assert 'incubus_rpc_duration_seconds_bucket{chain="Ethereum",le="0.5"} 1' in lines
    assert 'incubus_rpc_duration_seconds_bucket{chain="Ethereum",le="+Inf"} 1' in lines
    assert 'incubus_rpc_duration_seconds_count{chain="Ethereum"} 1' in lines
    assert 'incubus_wallet_syncs_total{result="skipped"} 1' in lines
    assert 'incubus_rate_limit_rejections_total{scope="auth"} 1' in lines
    assert 'incubus_authz_failures_total{scope="admin",status="403"} 1' in lines
    assert "# TYPE incubus_rpc_duration_seconds histogram" in lines
    assert sum(line.startswith("# TYPE ") for line in lines) == 7
