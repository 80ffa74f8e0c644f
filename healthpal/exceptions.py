"""
Domain errors and the JSON error envelope.

Services raise AppError subclasses; main.py registers handlers that render
them as {"error": {"code": ..., "message": ...}}.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class InvalidTransitionError(AppError):
    code = "INVALID_TRANSITION"
    status_code = 400


class BusinessRuleError(AppError):
    code = "BUSINESS_ERROR"
    status_code = 400


class AlreadyPaidError(AppError):
    code = "ALREADY_PAID"
    status_code = 400


class InvalidAppointmentStatusError(AppError):
    code = "INVALID_APPOINTMENT_STATUS"
    status_code = 400


class GatewaySignatureError(AppError):
    code = "GATEWAY_SIGNATURE_INVALID"
    status_code = 400


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = 403


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


def error_body(code: str, message: str, **extra: Any) -> dict:
    error = {"code": code, "message": message}
    error.update(extra)
    return {"error": error}


# Codes for HTTPExceptions raised by FastAPI itself or by dependencies (rate limiter, bearer auth)
HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMITED",
    503: "SERVICE_UNAVAILABLE",
}


async def app_error_handler(request: Request, exc: AppError):
    extra = {"issues": exc.issues} if isinstance(exc, ValidationError) else {}
    if exc.status_code >= 500:
        logger.error(f"❌ {exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message, **extra))


async def http_exception_handler(request: Request, exc: HTTPException):
    code = HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Missing/invalid Authorization header is reported as 401, everything else as VALIDATION_ERROR"""
    errors = exc.errors()
    for error in errors:
        loc = error.get("loc", ())
        if len(loc) >= 2 and loc[0] == "header" and str(loc[1]).lower() == "authorization":
            return JSONResponse(status_code=401, content=error_body("UNAUTHORIZED", "Unauthorized"))

    issues = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in errors
    ]
    logger.warning(f"⚠️ Validation error on {request.method} {request.url.path}: {issues}")
    return JSONResponse(
        status_code=400, content=error_body("VALIDATION_ERROR", "Validation failed", issues=issues)
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=error_body("INTERNAL_ERROR", "Internal server error"))


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
