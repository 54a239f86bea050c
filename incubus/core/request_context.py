import contextvars
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from incubus.domain.roles import encode_roles_header

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
# "<user_id>" or "<user_id>/as:<admin_id>" while impersonating.
actor_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("actor", default="-")


def bind_actor(user_id: int, impersonated_by: int | None = None) -> None:
    actor = str(user_id) if impersonated_by is None else f"{user_id}/as:{impersonated_by}"
    actor_ctx.set(actor)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id, reusing the caller's ``X-Request-ID``.

    Responses to authenticated requests also carry ``X-User-Roles`` so
    frontends can gate navigation without another call.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request_token = request_id_ctx.set(request_id)
        actor_token = actor_ctx.set("-")
        try:
            response = await call_next(request)
        finally:
            actor_ctx.reset(actor_token)
            request_id_ctx.reset(request_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        principal = getattr(request.state, "authenticated_principal", None)
        if principal is not None:
            response.headers["X-User-Roles"] = encode_roles_header(principal.roles)
        return response
