"""Access-token handling. Tokens are minted by the auth service; we verify them."""
from datetime import timedelta

from jose import JWTError, jwt

from frontline.clock import utcnow
from frontline.config import get_settings
from frontline.errors import NotAuthenticated


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token for ``user_id``."""
    settings = get_settings()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {"sub": user_id, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str | None) -> str:
    """Return the user id in a valid access token, or raise NotAuthenticated."""
    if not token:
        raise NotAuthenticated("Not authenticated")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise NotAuthenticated("Invalid or expired token") from exc

    if payload.get("type") != "access":
        raise NotAuthenticated("Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise NotAuthenticated("Invalid token")
    return user_id
