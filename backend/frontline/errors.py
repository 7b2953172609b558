"""
Error taxonomy for the activity engine and its mapping onto HTTP responses.

Services raise these; routes stay thin and let the app-level handler turn them
into responses. Add new rules to ERROR_RULES instead of scattering checks in routes.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Base class for errors surfaced by the activity engine."""

    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotAuthenticated(EngineError):
    """No caller identity. Never falls back to another identity."""


class NotFound(EngineError):
    """Target row missing, or not visible to the caller."""


class Forbidden(EngineError):
    """Caller is known but lacks the role the operation needs (admin moderation)."""


class Conflict(EngineError):
    """The write conflicts with current row state (duplicate request, terminal status)."""


class ValidationFailed(EngineError):
    """Malformed input, e.g. empty message content."""


class TransientError(EngineError):
    """Store or network unavailable. Always safe to retry."""

    retryable = True


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code). First match wins.
# ---------------------------------------------------------------------------

ERROR_RULES: list[tuple[type[EngineError], int]] = [
    (NotAuthenticated, status.HTTP_401_UNAUTHORIZED),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Conflict, status.HTTP_409_CONFLICT),
    (ValidationFailed, 422),
    (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(exc: EngineError) -> int:
    for exc_type, status_code in ERROR_RULES:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """FastAPI exception handler for the engine taxonomy."""
    status_code = status_code_for(exc)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, NotAuthenticated) else None
    if exc.retryable:
        logger.warning("%s %s failed transiently: %s", request.method, request.url.path, exc.message)
        headers = {"Retry-After": "1"}
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "retryable": exc.retryable},
        headers=headers,
    )


def require_user(user_id: str | None) -> str:
    """Every engine operation needs an explicit caller identity."""
    if not user_id:
        raise NotAuthenticated("Not authenticated")
    return user_id


@contextmanager
def translate_db_errors() -> Iterator[None]:
    """Re-raise connectivity failures from the store as TransientError."""
    try:
        yield
    except (OperationalError, InterfaceError, DisconnectionError) as exc:
        raise TransientError(f"Event log unavailable: {exc.__class__.__name__}") from exc
