from datetime import datetime, timedelta, timezone

import jwt

from reconciler.core.config import settings

ALGORITHM = "HS256"

ROLE_CUSTOMER = "customer"
ROLE_OPS = "ops"


def create_access_token(subject: str, *, role: str = ROLE_CUSTOMER, expires_delta: timedelta | None = None) -> str:
    """Issue a read-path token for a customer id (or an operator)."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject), "role": role}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify a token; raises ``jwt.InvalidTokenError`` on failure."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
