from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from uuid import UUID

from jose import jwt
from passlib.context import CryptContext

from autoparts.app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
TOKEN_TYPE = "access"


def create_access_token(subject: UUID | str, expires_delta: timedelta | None = None) -> str:
    """Sign a bearer token for user *subject*, valid for a cashier's shift by default."""
    issued = datetime.now(timezone.utc)
    expire = issued + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": str(subject), "type": TOKEN_TYPE, "iat": issued, "exp": expire}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> UUID:
    """Return the user id carried by *token*.

    Raises ``jose.JWTError`` for a bad signature or an expired token and
    ``ValueError`` when the claims are not those of an access token.
    """
    claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    if claims.get("type") != TOKEN_TYPE or not claims.get("sub"):
        raise ValueError("Not an access token")
    return UUID(claims["sub"])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def validate_password_strength(password: str) -> str | None:
    """Return an error message when *password* is too weak, None otherwise."""
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[A-Za-z]", password):
        return "Password must contain at least one letter"
    if not re.search(r"\d", password):
        return "Password must contain at least one digit"
    return None
