"""Domain exceptions and the JSON error envelope returned by the API."""

import logging
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, OperationalError

from casewatch.core.config import settings
from casewatch.core.messages import AuthMessages, ErrorCodes

logger = logging.getLogger(__name__)

HTTP_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


class APIError(Exception):
    """Base class for errors that map straight onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str, *, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details


class BadRequestError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCodes.BAD_REQUEST


class AuthenticationError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCodes.INVALID_TOKEN


class ForbiddenError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCodes.INSUFFICIENT_PRIVILEGES


class InsufficientTierError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCodes.INSUFFICIENT_TIER


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCodes.NOT_FOUND


class ConflictError(APIError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCodes.DUPLICATE_ENTRY


class GoneError(APIError):
    status_code = status.HTTP_410_GONE
    code = ErrorCodes.SHARE_EXPIRED


class FileTooLargeError(APIError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    code = ErrorCodes.FILE_TOO_LARGE


class AccountLockedError(APIError):
    status_code = status.HTTP_423_LOCKED
    code = ErrorCodes.ACCOUNT_LOCKED


class UnprocessableError(APIError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = ErrorCodes.ESCALATION_REJECTED


class BlockchainError(APIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = ErrorCodes.BLOCKCHAIN_ERROR


def error_body(message: str, code: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message, "error": code}
    if details is not None:
        body["details"] = details
    return body


def error_response(status_code: int, message: str, code: str, details: Any = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(error_body(message, code, details)),
        headers=headers,
    )


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return value
    # asyncpg errors are wrapped by the SQLAlchemy adapter
    cause = getattr(orig, "__cause__", None)
    return getattr(cause, "sqlstate", None)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return error_response(exc.status_code, exc.message, exc.code, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    details = None
    if isinstance(detail, dict):
        message = str(detail.get("message", "Request failed"))
        code = str(detail.get("error", HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")))
        details = detail.get("details")
    else:
        message = str(detail)
        code = HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    if exc.status_code == status.HTTP_404_NOT_FOUND and message == "Not Found":
        message = f"Route {request.method} {request.url.path} not found"
        code = ErrorCodes.ROUTE_NOT_FOUND
    return error_response(exc.status_code, message, code, details, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", ErrorCodes.VALIDATION_ERROR, errors)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    sqlstate = _sqlstate(exc)
    if sqlstate == "23505":
        return error_response(status.HTTP_409_CONFLICT, "Resource already exists", ErrorCodes.DUPLICATE_ENTRY)
    if sqlstate == "23503":
        return error_response(
            status.HTTP_400_BAD_REQUEST, "Referenced resource does not exist", ErrorCodes.FOREIGN_KEY_VIOLATION
        )
    return error_response(status.HTTP_400_BAD_REQUEST, "Database constraint violated", ErrorCodes.CONSTRAINT_VIOLATION)


async def expired_token_handler(request: Request, exc: ExpiredSignatureError) -> JSONResponse:
    return error_response(status.HTTP_401_UNAUTHORIZED, AuthMessages.TOKEN_EXPIRED, ErrorCodes.TOKEN_EXPIRED)


async def jwt_error_handler(request: Request, exc: JWTError) -> JSONResponse:
    return error_response(status.HTTP_401_UNAUTHORIZED, AuthMessages.INVALID_TOKEN, ErrorCodes.INVALID_TOKEN)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        f"Too many requests, please try again later ({exc.detail})",
        ErrorCodes.RATE_LIMIT_EXCEEDED,
    )


async def service_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Dependency unavailable on %s %s: %s", request.method, request.url.path, exc)
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE, "Service temporarily unavailable", ErrorCodes.SERVICE_UNAVAILABLE
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, ConnectionRefusedError):
        return await service_unavailable_handler(request, exc)
    logger.exception(
        "Unhandled error on %s %s from %s",
        request.method,
        request.url.path,
        _client_ip(request),
    )
    details = str(exc) if settings.DEBUG else None
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", ErrorCodes.INTERNAL_ERROR, details
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(ExpiredSignatureError, expired_token_handler)
    app.add_exception_handler(JWTError, jwt_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(httpx.ConnectError, service_unavailable_handler)
    app.add_exception_handler(OperationalError, service_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
