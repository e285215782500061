"""
Application error taxonomy and the FastAPI handlers that turn every failure
into the ``{"success": false, "message": ...}`` envelope.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

from core.config import IS_PRODUCTION

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Not authorized, please log in"


class PermissionDeniedError(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFoundError(AppError):
    status_code = 404
    default_message = "The requested resource was not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource already exists"


class RateLimitError(AppError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."


class UpstreamServiceError(AppError):
    status_code = 502
    default_message = "Upstream service failed"


def error_body(message: str, exc: Optional[BaseException] = None) -> dict:
    body = {"success": False, "message": message}
    if exc is not None and not IS_PRODUCTION:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _log(request: Request, status_code: int, message: str):
    level = logging.ERROR if status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "%s %s from %s failed with %s: %s",
        request.method,
        request.url.path,
        _client_ip(request),
        status_code,
        message,
    )


def validation_message(exc) -> str:
    """Join pydantic or FastAPI validation errors into one readable line."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        text = error.get("msg", "Invalid value")
        messages.append(f"{location}: {text}" if location else text)
    return ", ".join(messages) or "Validation failed"


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        _log(request, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc))

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        _log(request, exc.status_code, message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = validation_message(exc)
        _log(request, 400, message)
        return JSONResponse(status_code=400, content=error_body(message))

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        _log(request, 409, str(exc.orig))
        return JSONResponse(status_code=409, content=error_body("Duplicate field value entered", exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body("Internal server error", exc))
