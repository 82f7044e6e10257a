"""Domain error taxonomy and its HTTP rendering.

Every error leaves the API as ``{"error": {"code", "message", "context"}}``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base for rejections the caller can act on.

    ``context`` carries machine-readable details of a rejected operation,
    typically ``current_state`` and the ``guard`` that failed, so callers can
    tell a retryable race from a permanent rule violation.
    """

    status_code = 400
    code = "app_error"

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class NotFoundException(AppException):
    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    """Illegal state transition, duplicate, or a lost race."""

    status_code = 409
    code = "conflict"


class ForbiddenException(AppException):
    """The actor is known but lacks the role or relationship required."""

    status_code = 403
    code = "forbidden"


class UnauthenticatedException(AppException):
    """No usable actor identity on the request."""

    status_code = 401
    code = "unauthenticated"


class ValidationFailedException(AppException):
    status_code = 422
    code = "validation_failed"


class TooSoonException(AppException):
    """A minimum notice window is violated."""

    status_code = 422
    code = "too_soon"


class GoneException(AppException):
    """A time window has already closed."""

    status_code = 410
    code = "gone"


class InsufficientBalanceException(AppException):
    status_code = 422
    code = "insufficient_balance"


class BelowMinimumException(AppException):
    status_code = 422
    code = "below_minimum"


class PaymentFailedException(AppException):
    """The payment provider did not capture funds."""

    status_code = 402
    code = "payment_failed"


def error_response(status_code: int, code: str, message: str, context: dict[str, Any] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "context": context or {}}},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code == 409:
        logger.info("%s %s rejected: %s %s", request.method, request.url.path, exc.message, exc.context)
    return error_response(exc.status_code, exc.code, exc.message, exc.context)


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return error_response(exc.status_code, "http_error", str(exc.detail))


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {"loc": [str(part) for part in error["loc"]], "message": error["msg"]}
        for error in exc.errors()
    ]
    return error_response(
        ValidationFailedException.status_code,
        ValidationFailedException.code,
        "Request payload is invalid",
        {"fields": fields},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return error_response(500, "internal_error", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
