import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from incubus.core.request_context import request_id_ctx

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    error_code: str
    message: str
    request_id: str
    details: dict[str, Any] | None = None


class ApiException(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details


def not_found(resource: str, error_code: str | None = None) -> ApiException:
    code = error_code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND"
    return ApiException(status_code=404, error_code=code, message=f"{resource} not found")


def forbidden(message: str = "Insufficient permissions", **details: Any) -> ApiException:
    return ApiException(
        status_code=403,
        error_code="PERMISSION_DENIED",
        message=message,
        details=details or None,
    )


def conflict(error_code: str, message: str) -> ApiException:
    return ApiException(status_code=409, error_code=error_code, message=message)


def bad_request(error_code: str, message: str, **details: Any) -> ApiException:
    return ApiException(
        status_code=400,
        error_code=error_code,
        message=message,
        details=details or None,
    )


def validation_error_details(exc: RequestValidationError) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(location) or "__root__"
        grouped.setdefault(field, []).append(str(error.get("msg", "invalid value")))
    return grouped


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiException)
    async def handle_api_exception(_: Request, exc: ApiException):
        payload = ErrorResponse(
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details,
            request_id=request_id_ctx.get(),
        )
        return JSONResponse(status_code=exc.status_code, content=payload.model_dump())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        payload = ErrorResponse(
            error_code="VALIDATION_FAILED",
            message="Validation failed",
            details={"validation_errors": validation_error_details(exc)},
            request_id=request_id_ctx.get(),
        )
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(_: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc.__class__.__name__)
        payload = ErrorResponse(
            error_code="INTERNAL_SERVER_ERROR",
            message="Unexpected server error",
            request_id=request_id_ctx.get(),
        )
        return JSONResponse(status_code=500, content=payload.model_dump())
