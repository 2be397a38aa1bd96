"""Error envelope and exception handlers.

Every failure leaves the API as

    {"error": {"code": "INSUFFICIENT_STOCK", "message": "...", "details": {...}}}

``details`` appears only for request validation.  Workflow rule failures are
``JobFlowException`` subclasses (see ``services/errors.py``) and are logged at
warning; only unexpected failures reach the error log.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class JobFlowException(Exception):
    """A failure the caller can act on: bad state, bad input or missing record."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


def error_response(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


# Constraint name fragments -> (status, code, message).  CHECK covers stock and
# quantity bounds crossed by a concurrent writer between our read and flush.
_CONSTRAINT_ERRORS = (
    ("unique", status.HTTP_409_CONFLICT, "DUPLICATE_RECORD",
     "A record with this value already exists"),
    ("foreign key", status.HTTP_422_UNPROCESSABLE_ENTITY, "FOREIGN_KEY_VIOLATION",
     "Referenced record does not exist"),
    ("check", status.HTTP_409_CONFLICT, "CONFLICT",
     "The change violates a quantity constraint. Reload and retry."),
)


def classify_integrity_error(exc: IntegrityError) -> tuple[int, str, str]:
    text = str(getattr(exc, "orig", exc)).lower()
    for fragment, status_code, code, message in _CONSTRAINT_ERRORS:
        if fragment in text:
            return status_code, code, message
    return status.HTTP_422_UNPROCESSABLE_ENTITY, "INTEGRITY_ERROR", "Database constraint violation"


async def workflow_error_handler(request: Request, exc: JobFlowException) -> JSONResponse:
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.message)
    return error_response(exc.status_code, exc.error_code, exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Missing caller header (401), unknown route (404), wrong method (405).
    return error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info("Rejected %s %s: %d invalid field(s)", request.method, request.url.path, len(errors))
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Validation error",
        {"errors": errors},
    )


async def stale_version_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    """A versioned row changed under us between read and commit."""
    logger.warning("Version conflict on %s %s: %s", request.method, request.url.path, exc)
    return error_response(
        status.HTTP_409_CONFLICT,
        "CONFLICT",
        "The record was changed by another request. Reload and retry.",
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    status_code, code, message = classify_integrity_error(exc)
    logger.warning("Constraint %s on %s %s: %s", code, request.method, request.url.path, exc.orig)
    return error_response(status_code, code, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app):
    app.add_exception_handler(JobFlowException, workflow_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StaleDataError, stale_version_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
