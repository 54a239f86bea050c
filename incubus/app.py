import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from incubus.api.router import api_router
from incubus.application.services.bootstrap_service import BootstrapService
from incubus.core.config import get_settings
from incubus.core.database import DatabaseManager
from incubus.core.errors import register_exception_handlers
from incubus.core.logging import configure_logging
from incubus.core.observability import (
    AccessLogMetricsMiddleware,
    AuditTrailMiddleware,
    SecurityHardeningMiddleware,
)
from incubus.core.rate_limit import rate_limiter
from incubus.core.request_context import RequestContextMiddleware
from incubus.infrastructure.cache.redis_cache import cache

logger = logging.getLogger(__name__)


async def _run_bootstrap(app: FastAPI, *, blocking: bool) -> None:
    settings = get_settings()
    attempts = max(1, int(settings.INCUBUS_BOOTSTRAP_RETRY_ATTEMPTS))
    retry_delay_seconds = max(1, int(settings.INCUBUS_BOOTSTRAP_RETRY_DELAY_SECONDS))
    last_exc: Exception | None = None

    app.state.bootstrap_ready = False
    app.state.bootstrap_last_error = None

    for attempt in range(1, attempts + 1):
        try:
            await BootstrapService().run()
            app.state.bootstrap_ready = True
            app.state.bootstrap_last_error = None
            return
        except asyncio.CancelledError:
            logger.info("Bootstrap task cancelled")
            raise
        except Exception as exc:  # pragma: no cover
            last_exc = exc
            app.state.bootstrap_ready = False
            app.state.bootstrap_last_error = str(exc)
            logger.exception("Bootstrap failed (attempt=%s/%s)", attempt, attempts)
            if attempt < attempts:
                await asyncio.sleep(retry_delay_seconds)

    if blocking and last_exc is not None:
        raise RuntimeError(f"Bootstrap failed after {attempts} attempts") from last_exc


def create_app() -> FastAPI:
    """Build the Incubus API application."""
    settings = get_settings()
    configure_logging(settings.INCUBUS_LOG_LEVEL, settings.INCUBUS_LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await DatabaseManager.initialize()
        app.state.bootstrap_task = None
        app.state.bootstrap_ready = False
        app.state.bootstrap_last_error = None

        if settings.INCUBUS_BOOTSTRAP_BLOCKING:
            await _run_bootstrap(app, blocking=True)
        else:
            app.state.bootstrap_task = asyncio.create_task(_run_bootstrap(app, blocking=False))
        try:
            yield
        finally:
            task = app.state.bootstrap_task
            if task is not None and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
            await rate_limiter.close()
            await cache.close()
            await DatabaseManager.close()

    app = FastAPI(
        title=settings.INCUBUS_APP_NAME,
        version=settings.INCUBUS_APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(SecurityHardeningMiddleware, settings=settings)
    app.add_middleware(AuditTrailMiddleware, settings=settings)
    app.add_middleware(AccessLogMetricsMiddleware, settings=settings)
    app.add_middleware(RequestContextMiddleware)
    if settings.INCUBUS_CORS_ENABLED:
        # Added last: outermost layer.
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=settings.INCUBUS_CORS_ALLOW_CREDENTIALS,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
            expose_headers=settings.cors_expose_headers,
            max_age=settings.INCUBUS_CORS_MAX_AGE_SECONDS,
        )
    app.include_router(api_router, prefix=settings.INCUBUS_API_PREFIX)
    register_exception_handlers(app)

    return app
