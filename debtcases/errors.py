"""
Error taxonomy shared by services, the security layer and the HTTP surface.

Services raise these; `register_exception_handlers` turns them into JSON
responses. Anything that is not an `AppError` becomes a generic 500.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input or a business-rule violation."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class AuthenticationError(AppError):
    """No identity, or an identity that cannot be trusted (bad token, disabled user)."""

    status_code = 401
    error_code = "AUTHENTICATION_ERROR"
    default_message = "Authentication failed"


class AuthorizationError(AppError):
    """Valid identity, insufficient rights."""

    status_code = 403
    error_code = "AUTHORIZATION_ERROR"
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND_ERROR"
    default_message = "Resource not found"


def _body(error_code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {"success": False, "error_code": error_code, "message": message, "details": details}


def _who(request: Request) -> str:
    identity = getattr(request.state, "identity", None)
    return identity.employee_code if identity is not None else "anonymous"


async def _handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed status=%s code=%s path=%s method=%s user=%s message=%s",
        exc.status_code,
        exc.error_code,
        request.url.path,
        request.method,
        _who(request),
        exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=_body(exc.error_code, exc.message, exc.details))


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Request validation failed path=%s method=%s", request.url.path, request.method)
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=_body(ValidationError.error_code, "Validation failed", details),
    )


async def _handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Constraint violation path=%s method=%s", request.url.path, request.method)
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=_body(ValidationError.error_code, "Record already exists or violates a constraint"),
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error path=%s method=%s user=%s", request.url.path, request.method, _who(request))
    return JSONResponse(status_code=500, content=_body(AppError.error_code, AppError.default_message))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(IntegrityError, _handle_integrity_error)
    app.add_exception_handler(Exception, _handle_unexpected)
