import asyncio
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

from incubus.api.deps.auth import require_admin
from incubus.api.schemas.common import DeepHealthResponse, HealthResponse
from incubus.core.celery_app import celery_app
from incubus.core.config import get_settings
from incubus.core.database import get_session
from incubus.core.metrics import metrics_registry
from incubus.infrastructure.chain.rpc_client import ChainRpcError, JsonRpcClient
from incubus.infrastructure.db.models import Blockchain

router = APIRouter()

STATUS_RANK = {"ok": 0, "degraded": 1, "fail": 2}


def _service_fields() -> dict[str, Any]:
    settings = get_settings()
    return {
        "service": settings.INCUBUS_APP_NAME,
        "environment": settings.INCUBUS_ENV,
        "version": settings.INCUBUS_APP_VERSION,
        "timestamp": datetime.now(timezone.utc),
    }


async def _run_check(
    check: Callable[[], Awaitable[dict[str, Any] | None]],
    *,
    errors: tuple[type[BaseException], ...],
    failure_status: str,
) -> dict[str, Any]:
    started = perf_counter()
    try:
        extra = await check() or {}
    except errors as exc:
        return {"status": failure_status, "error": exc.__class__.__name__}
    return {
        "status": extra.pop("status", "ok"),
        "latency_ms": round((perf_counter() - started) * 1000.0, 3),
        **extra,
    }


async def _check_database() -> None:
    async with get_session() as session:
        await session.execute(text("SELECT 1"))


async def _check_redis() -> None:
    redis = Redis.from_url(get_settings().REDIS_URL, decode_responses=True)
    try:
        await redis.ping()
    finally:
        await redis.aclose()


async def _check_workers() -> dict[str, Any]:
    replies = await asyncio.to_thread(lambda: celery_app.control.inspect(timeout=1.5).ping())
    if not replies:
        return {"status": "degraded", "worker_count": 0}
    return {"worker_count": len(replies)}


async def _check_default_chain() -> dict[str, Any]:
    async with get_session() as session:
        chain = await session.scalar(
            select(Blockchain).where(Blockchain.is_default == True)  # noqa: E712
        )
    if chain is None:
        return {"status": "degraded", "detail": "No default blockchain"}
    client = JsonRpcClient(rpc_url=chain.rpc_url, chain_label=chain.name, timeout_seconds=3.0)
    block = await client.call("eth_blockNumber", [])
    return {"chain": chain.name, "block": int(str(block), 16)}


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", **_service_fields())


@router.get("/health/deep", response_model=DeepHealthResponse)
async def deep_health(request: Request, _: object = Depends(require_admin)):
    checks = {
        "database": await _run_check(
            _check_database,
            errors=(SQLAlchemyError, OSError),
            failure_status="fail",
        ),
        "redis": await _run_check(_check_redis, errors=(RedisError, OSError), failure_status="degraded"),
        "celery": await _run_check(_check_workers, errors=(Exception,), failure_status="degraded"),
        "chain": await _run_check(
            _check_default_chain,
            errors=(ChainRpcError, SQLAlchemyError, ValueError),
            failure_status="degraded",
        ),
        "bootstrap": {
            "status": "ok" if getattr(request.app.state, "bootstrap_ready", False) else "degraded",
            "last_error": getattr(request.app.state, "bootstrap_last_error", None),
        },
    }
    overall = max((check["status"] for check in checks.values()), key=STATUS_RANK.__getitem__)
    return DeepHealthResponse(status=overall, checks=checks, **_service_fields())


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(_: object = Depends(require_admin)):
    if not get_settings().INCUBUS_ENABLE_METRICS:
        return PlainTextResponse("metrics disabled\n", status_code=503)
    return PlainTextResponse(
        metrics_registry.render_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
