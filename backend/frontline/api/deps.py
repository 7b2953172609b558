"""Shared API dependencies."""
import logging
from typing import Callable, TypeVar

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from frontline.database import get_db
from frontline.errors import NotAuthenticated, TransientError
from frontline.models.user import User
from frontline.security import decode_access_token
from frontline.services.blob_store import BlobStore
from frontline.services.engine import ActivityEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

bearer_scheme = HTTPBearer(auto_error=False)

__all__ = ["get_db", "get_current_user", "get_engine", "get_blob_store", "user_from_token", "read_or_degrade"]


def user_from_token(db: Session, token: str | None) -> User:
    user_id = decode_access_token(token)
    user = db.get(User, user_id)
    if user is None:
        raise NotAuthenticated("User not found")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user. Never falls back to another identity."""
    token = credentials.credentials if credentials else None
    return user_from_token(db, token)


def get_engine(request: Request) -> ActivityEngine:
    return request.app.state.engine


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def read_or_degrade(read: Callable[[], T], empty: T) -> tuple[T, bool]:
    """Run a read; on a transient store failure return ``empty`` flagged as degraded."""
    try:
        return read(), False
    except TransientError as exc:
        logger.warning("Serving degraded read: %s", exc.message)
        return empty, True
