"""Password hashing and JWT helpers."""

from datetime import UTC, datetime, timedelta
from enum import Enum

from jose import JWTError, jwt
from passlib.context import CryptContext

from backoffice.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenScope(str, Enum):
    """Which surface a token was issued for."""

    ADMIN = "admin"
    CUSTOMER = "customer"


class InvalidToken(Exception):
    """Token is malformed, expired, or issued for another scope."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def create_access_token(email: str, scope: TokenScope) -> str:
    """Create a JWT access token for ``email`` on the given surface."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": email, "scope": scope.value, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str, expected_scope: TokenScope) -> str:
    """Return the subject email of ``token``.

    Raises:
        InvalidToken: If the signature, expiry, subject or scope is wrong.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc

    email = payload.get("sub")
    if not email:
        raise InvalidToken("missing subject")
    if payload.get("scope") != expected_scope.value:
        # Admin and portal sessions are kept apart
        raise InvalidToken("wrong scope")
    return str(email)
