"""Application exceptions and the handlers that render them.

Every error leaves the API in one envelope:

    {"error": {"code": "PROFILE_INCOMPLETE", "message": "...", "details": {...}}}

Unexpected exceptions are logged with a traceback and returned as a
generic 500 so internals never reach the client.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class LocumException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class BusinessLogicError(LocumException):
    """Exception for business logic violations."""

    def __init__(
        self,
        message: str,
        error_code: str = "BUSINESS_LOGIC_ERROR",
        details: Union[dict, list, None] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            details=details,
        )


class ResourceNotFoundError(LocumException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class PermissionDeniedError(LocumException):
    """Exception for permission denied."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class UploadRejectedError(LocumException):
    """A document was refused before storage (type, size, or category)."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="UPLOAD_REJECTED",
        )


class UploadTimeoutError(LocumException):
    """The storage write did not finish in time."""

    def __init__(self, message: str = "Upload timed out. Please try again."):
        super().__init__(
            message=message,
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            error_code="UPLOAD_TIMEOUT",
        )


class DocumentStorageError(LocumException):
    """The document bucket refused or failed a request."""

    def __init__(self, message: str = "Document storage is unavailable. Please try again."):
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="DOCUMENT_STORAGE_FAILED",
        )


# Unique constraints the API can trip, keyed by the markers that appear in
# the driver message (SQLite names the column, PostgreSQL the index).
DUPLICATE_ERRORS = (
    (("users.email", "ix_users_email"), "EMAIL_TAKEN",
     "An account with this email already exists"),
    (("physician_profiles.user_id", "ix_physician_profiles_user_id"), "PROFILE_EXISTS",
     "This account already has a physician profile"),
)


def error_body(
    error_code: str,
    message: str,
    details: Union[dict, list, None] = None,
) -> dict:
    body = {"code": error_code, "message": message}
    if details:
        body["details"] = details
    return {"error": body}


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(error_code, message, details),
    )


def _request_context(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


async def locum_exception_handler(
    request: Request,
    exc: LocumException,
) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "%s on %s: %s", exc.error_code, request.url.path, exc.message,
        extra={"error_code": exc.error_code, **_request_context(request)},
    )
    return create_error_response(
        exc.status_code, exc.message, exc.error_code, exc.details
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Render framework and router HTTPExceptions (401, 403, 404...)."""
    if exc.status_code >= 500:
        logger.error(
            "HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail,
            extra=_request_context(request),
        )
    response = create_error_response(
        exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}"
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Malformed request bodies; field-level profile errors never get here."""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Rejected request body on %s (%d errors)", request.url.path, len(errors),
        extra=_request_context(request),
    )
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request body is not valid",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    driver_message = str(exc.orig if exc.orig is not None else exc)
    logger.error(
        "Integrity error on %s: %s", request.url.path, driver_message,
        extra=_request_context(request),
    )

    for markers, error_code, message in DUPLICATE_ERRORS:
        if any(marker in driver_message for marker in markers):
            return create_error_response(status.HTTP_409_CONFLICT, message, error_code)

    lowered = driver_message.lower()
    if "unique" in lowered or "duplicate" in lowered:
        return create_error_response(
            status.HTTP_409_CONFLICT, "This record already exists", "DUPLICATE_RECORD"
        )
    if "foreign key" in lowered:
        return create_error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "The account this profile belongs to no longer exists",
            "UNKNOWN_ACCOUNT",
        )
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "The change conflicts with stored data",
        "INTEGRITY_ERROR",
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error(
        "Database unavailable on %s: %s", request.url.path, exc,
        extra=_request_context(request),
    )
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Your profile is temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.exception(
        "Unhandled %s on %s", type(exc).__name__, request.url.path,
        extra=_request_context(request),
    )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Something went wrong on our side. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app) -> None:
    for exc_class, handler in (
        (LocumException, locum_exception_handler),
        (HTTPException, http_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (ValidationError, validation_exception_handler),
        (IntegrityError, database_exception_handler),
        (OperationalError, operational_exception_handler),
        (Exception, general_exception_handler),
    ):
        app.add_exception_handler(exc_class, handler)
