"""
Exception handlers that map domain exceptions to HTTP responses.

Status codes follow the exception families in raas.core.exceptions, so
callers can tell a missing rollup (404) from a busy one (409), a request
against the wrong lifecycle state (400) and a failed operation (500).
"""
import logging
from typing import Any, Dict

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from raas.core.exceptions import (
    ConflictError,
    DomainException,
    NotFoundError,
    OperationError,
    RollupBusyError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (OperationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_code_for(exc: DomainException) -> int:
    for family, status_code in STATUS_CODES:
        if isinstance(exc, family):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(exc: DomainException) -> Dict[str, Any]:
    """Message, exception name and the exception's details, flattened."""
    body = {"detail": exc.message, "error_type": exc.__class__.__name__, **exc.details}
    if isinstance(exc, RollupBusyError):
        # The in-flight operation will settle; the same request can be retried
        body["retryable"] = True
    return body


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors()), "error_type": "RequestValidationError"},
    )


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", extra={"details": exc.details})
    elif isinstance(exc, RollupBusyError):
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")

    return JSONResponse(status_code=status_code, content=error_body(exc))


def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI app.

    Called from create_app before routers are included.
    """
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
