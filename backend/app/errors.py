"""
Application errors and the handlers that turn them into the response envelope.
"""
import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for all application errors."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(AppError):
    status_code = HTTPStatus.NOT_FOUND


class InvalidStateError(AppError):
    """Entity is in a status that does not allow the requested action."""
    status_code = HTTPStatus.BAD_REQUEST


class ValidationError(AppError):
    status_code = HTTPStatus.BAD_REQUEST


class ConflictError(AppError):
    status_code = HTTPStatus.CONFLICT


class UpstreamError(AppError):
    """A call to the payment gateway or email provider failed."""
    status_code = HTTPStatus.BAD_GATEWAY


def error_body(message: str) -> dict:
    return {"success": False, "message": message, "data": None}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=int(exc.status_code), content=error_body(exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", []) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else "Invalid request"
        return JSONResponse(status_code=HTTPStatus.BAD_REQUEST, content=error_body(message))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content=error_body(str(exc) or "Internal server error"),
        )
