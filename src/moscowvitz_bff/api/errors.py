"""Error taxonomy and the uniform JSON response envelope."""

from __future__ import annotations

import logging
import traceback
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Application error carrying its own HTTP status and machine code."""

    status_code = 500
    default_code = "APP_ERROR"

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    default_code = "AUTH_REQUIRED"


class AuthorizationError(AppError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class MethodNotAllowedError(AppError):
    status_code = 405
    default_code = "METHOD_NOT_ALLOWED"


class UpstreamError(AppError):
    status_code = 500
    default_code = "UPSTREAM_ERROR"


def error_body(
    *,
    message: str,
    code: str,
    path: str,
    stack: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "timestamp": datetime.now(UTC).isoformat(),
        "path": path,
    }
    if stack is not None:
        body["stack"] = stack
    return body


def _request_path(request: Request) -> str:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return path


def install_error_handlers(app: FastAPI, *, include_stack: bool) -> None:
    """Route every failure through the same envelope."""

    def respond(request: Request, error: AppError, exc: BaseException) -> JSONResponse:
        stack = None
        if include_stack:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(
            status_code=error.status_code,
            content=error_body(
                message=error.message,
                code=error.code,
                path=_request_path(request),
                stack=stack,
            ),
        )

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request.failed path=%s code=%s error=%s", request.url.path, exc.code, exc)
        return respond(request, exc, exc)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        error: AppError
        if exc.status_code == 404:
            error = NotFoundError("Route not found", code="ROUTE_NOT_FOUND")
        elif exc.status_code == 405:
            error = MethodNotAllowedError(
                f"Method {request.method} not allowed on {request.url.path}"
            )
        else:
            error = AppError(str(exc.detail), status_code=exc.status_code, code="HTTP_ERROR")
        return respond(request, error, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return respond(request, ValidationError(describe_validation_errors(exc.errors())), exc)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request.unhandled path=%s", request.url.path)
        return respond(
            request,
            AppError("Internal server error", code="INTERNAL_ERROR"),
            exc,
        )


def describe_validation_errors(errors: Any) -> str:
    """Flatten pydantic error entries into one readable sentence."""
    messages: list[str] = []
    for entry in errors or []:
        if not isinstance(entry, dict):
            continue
        location = ".".join(
            str(part) for part in entry.get("loc", ()) if part not in {"body", "query", "path"}
        )
        message = str(entry.get("msg", "Invalid value"))
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"
