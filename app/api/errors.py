"""Translate service errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.tickets.errors import (
    AuthenticationError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StoreFailure,
    TicketDeskError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[TicketDeskError], int], ...] = (
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StoreFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: TicketDeskError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def ticketdesk_error_handler(request: Request, exc: TicketDeskError) -> JSONResponse:
    status_code = status_for(exc)
    if isinstance(exc, StoreFailure):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        detail = "The storage backend is unavailable, please retry"
    else:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        detail = str(exc)
    return JSONResponse(status_code=status_code, content={"detail": detail, "error": type(exc).__name__})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TicketDeskError, ticketdesk_error_handler)
