from __future__ import annotations

import logging
from time import perf_counter

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from incubus.core.config import IncubusSettings, get_settings
from incubus.core.database import get_session
from incubus.core.errors import ErrorResponse
from incubus.core.metrics import metrics_registry
from incubus.core.rate_limit import rate_limiter
from incubus.core.request_context import request_id_ctx
from incubus.infrastructure.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class AccessLogMetricsMiddleware(BaseHTTPMiddleware):
    """Times every request, feeds ``metrics_registry`` and writes one access line."""

    def __init__(self, app, settings: IncubusSettings | None = None):
        super().__init__(app)
        self.settings = settings or get_settings()

    async def dispatch(self, request: Request, call_next):
        started = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            elapsed = max(0.0, perf_counter() - started)
            route = _route_path(request)
            if self.settings.INCUBUS_ENABLE_METRICS:
                metrics_registry.record_http_request(
                    method=request.method,
                    route_path=route,
                    status_code=status_code,
                    duration_seconds=elapsed,
                )
            if self.settings.INCUBUS_ENABLE_ACCESS_LOG:
                principal = getattr(request.state, "authenticated_principal", None)
                logger.log(
                    logging.WARNING if status_code >= 500 else logging.INFO,
                    "%s %s -> %s in %.1fms route=%s user=%s ip=%s",
                    request.method,
                    request.url.path,
                    status_code,
                    elapsed * 1000.0,
                    route,
                    getattr(principal, "user_id", "-"),
                    client_identity(request),
                )


class SecurityHardeningMiddleware(BaseHTTPMiddleware):
    """Per-scope request budgets plus a warning when 401/403s pile up for one client.

    Scopes: ``auth`` for sign-in and sign-up, ``privileged`` for writes to
    admin-ish roots or money/role-changing actions, ``general`` for the rest
    of the API and ``external`` outside it.
    """

    PRIVILEGED_PREFIXES = ("/admin", "/users", "/platform-staff", "/blockchains")
    PRIVILEGED_MARKERS = ("/purchase", "/ban", "/impersonate", "/role", "/sync", "/invitations")
    WATCHED_SCOPES = frozenset({"auth", "privileged"})

    def __init__(self, app, settings: IncubusSettings | None = None):
        super().__init__(app)
        self.settings = settings or get_settings()

    async def dispatch(self, request: Request, call_next):
        method = request.method.upper()
        scope, limit, window = self.resolve_scope(method=method, path=request.url.path)
        identity = client_identity(request)

        if self.settings.INCUBUS_RATE_LIMIT_ENABLED and method != "OPTIONS":
            allowed, count = await rate_limiter.check_limit(
                scope=scope,
                identity=identity,
                limit=limit,
                window_seconds=window,
            )
            if not allowed:
                metrics_registry.record_rate_limit_rejection(scope=scope)
                return self._too_many_requests(scope=scope, limit=limit, window=window, count=count)

        response = await call_next(request)
        if response.status_code in (401, 403) and scope in self.WATCHED_SCOPES:
            await self._track_denial(scope=scope, identity=identity, status_code=response.status_code)
        return response

    def resolve_scope(self, *, method: str, path: str) -> tuple[str, int, int]:
        settings = self.settings
        prefix = settings.INCUBUS_API_PREFIX.rstrip("/")
        relative = path[len(prefix) :] if path.startswith(prefix + "/") else None

        if relative is None:
            scope, limit = "external", settings.INCUBUS_RATE_LIMIT_MAX_REQUESTS
        elif relative.startswith("/auth"):
            scope, limit = "auth", settings.INCUBUS_RATE_LIMIT_AUTH_MAX_REQUESTS
        elif method in WRITE_METHODS and (
            relative.startswith(self.PRIVILEGED_PREFIXES)
            or any(marker in relative for marker in self.PRIVILEGED_MARKERS)
        ):
            scope, limit = "privileged", settings.INCUBUS_RATE_LIMIT_PRIVILEGED_MAX_REQUESTS
        else:
            scope, limit = "general", settings.INCUBUS_RATE_LIMIT_MAX_REQUESTS
        return scope, max(1, limit), max(1, settings.INCUBUS_RATE_LIMIT_WINDOW_SECONDS)

    @staticmethod
    def _too_many_requests(*, scope: str, limit: int, window: int, count: int) -> JSONResponse:
        body = ErrorResponse(
            error_code="RATE_LIMITED",
            message="Too many requests for this endpoint scope",
            request_id=request_id_ctx.get(),
            details={
                "scope": scope,
                "limit": limit,
                "window_seconds": window,
                "observed_count": count,
            },
        )
        return JSONResponse(
            status_code=429,
            content=body.model_dump(),
            headers={"Retry-After": str(window)},
        )

    async def _track_denial(self, *, scope: str, identity: str, status_code: int) -> None:
        threshold = self.settings.INCUBUS_ANOMALY_THRESHOLD
        if threshold <= 0:
            return
        metrics_registry.record_authz_failure(scope=scope, status_code=status_code)
        window = max(1, self.settings.INCUBUS_ANOMALY_WINDOW_SECONDS)
        failures = await rate_limiter.record_authz_failure(
            scope=scope,
            identity=identity,
            window_seconds=window,
        )
        # Warn once per threshold crossed, not on every denial.
        if failures % threshold == 0:
            logger.warning(
                "Repeated %s denials scope=%s ip=%s failures=%s window=%ss",
                status_code,
                scope,
                identity,
                failures,
                window,
            )


class AuditTrailMiddleware(BaseHTTPMiddleware):
    SKIP_PREFIXES = {"/auth", "/wishlist", "/notifications"}
    VERB_SEGMENTS = frozenset(
        {
            "ban",
            "broadcast",
            "impersonate",
            "purchase",
            "register",
            "role",
            "stop-impersonating",
            "unban",
            "vote",
        }
    )

    def __init__(self, app, settings: IncubusSettings | None = None):
        super().__init__(app)
        self.settings = settings or get_settings()

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if not self.settings.INCUBUS_AUDIT_ENABLED:
            return response
        method = request.method.upper()
        if method not in WRITE_METHODS:
            return response

        entity_type, entity_id, verb = self.describe_request(request.url.path, method)
        if entity_type is None:
            return response

        principal = getattr(request.state, "authenticated_principal", None)
        action = f"{entity_type}.{verb}"
        try:
            async with get_session() as session:
                await AuditRepository(session).create(
                    user_id=getattr(principal, "user_id", None),
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details={
                        "method": method,
                        "path": request.url.path,
                        "query": request.url.query or None,
                    },
                    ip_address=client_identity(request),
                    user_agent=(request.headers.get("user-agent") or "")[:512] or None,
                    request_id=request_id_ctx.get(),
                    status_code=response.status_code,
                )
        except Exception:
            logger.exception("Audit write failed action=%s path=%s", action, request.url.path)

        return response

    def describe_request(self, path: str, method: str) -> tuple[str | None, str | None, str]:
        """Map a write to ``(entity_type, entity_id, verb)``; entity_type is None if untracked.

        The entity is the last collection segment, and its id the numeric
        segment right after it: ``/marketplace/listings/12/purchase`` is
        ``("listings", "12", "purchase")``.
        """
        verb = method.lower()
        prefix = self.settings.INCUBUS_API_PREFIX.rstrip("/") + "/"
        if not path.startswith(prefix):
            return None, None, verb
        segments = [segment for segment in path[len(prefix) :].split("/") if segment]
        if not segments or f"/{segments[0]}" in self.SKIP_PREFIXES:
            return None, None, verb
        if len(segments) > 1 and segments[-1] in self.VERB_SEGMENTS:
            verb = segments.pop().replace("-", "_")

        entity_type, entity_id = segments[0], None
        for segment in segments[1:]:
            if segment.isdigit():
                entity_id = segment
            else:
                entity_type, entity_id = segment, None
        return entity_type, entity_id, verb


def client_identity(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    route_path = getattr(route, "path", None)
    if isinstance(route_path, str) and route_path:
        return route_path
    return request.url.path
