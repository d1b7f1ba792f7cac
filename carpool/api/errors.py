"""Maps domain error kinds to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from carpool.domain.errors import (
    Conflict,
    DomainError,
    InsufficientFunds,
    InvalidState,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[DomainError], int] = {
    NotFound: 404,
    Unauthorized: 403,
    Conflict: 409,
    InvalidTransition: 409,
    InsufficientFunds: 402,
    InvalidState: 409,
    ValidationError: 422,
}


def status_for(exc: DomainError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 400


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status = status_for(exc)
    logger.info("%s %s -> %d %s: %s", request.method, request.url.path, status, exc.kind, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "error": exc.kind},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
