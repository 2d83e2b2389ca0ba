"""Error taxonomy shared by every router and the handlers that render it.

Every error leaves the API as ``{"error": {"message": ...}}``; subclasses may
attach extra fields (a scheduling conflict carries the clashing events).
"""

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.config import IS_DEVELOPMENT_ENVIRONMENT

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"message": self.message, **self.extra}


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicts: list):
        super().__init__(message, conflicts=conflicts)
        self.conflicts = conflicts


class InfrastructureFault(ApiError):
    """Store or cache failure. The message is safe to show to callers."""


def error_response(status_code: int, error: dict, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": jsonable_encoder(error)},
        headers=headers,
    )


async def api_error_handler(request: Request, exc: ApiError):
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return error_response(exc.status_code, exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return error_response(
        status.HTTP_400_BAD_REQUEST, {"message": "; ".join(messages) or "Invalid request"}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(
        exc.status_code, {"message": str(exc.detail)}, headers=getattr(exc, "headers", None)
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = {"message": "Internal Server Error"}
    if IS_DEVELOPMENT_ENVIRONMENT:
        error["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
