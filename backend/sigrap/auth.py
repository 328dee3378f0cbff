"""Authentication: password hashing, JWT access tokens and the current subject."""
from datetime import timedelta
from typing import Optional
import logging
import time
from uuid import UUID
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from .config import settings
from .database import get_db
from .permissions import Action, Resource, Subject
from .security import load_subject, require_permission

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)

# Bearer token scheme
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


# Alias for convenience
hash_password = get_password_hash


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    now = int(time.time())
    if expires_delta:
        exp = now + int(expires_delta.total_seconds())
    else:
        exp = now + int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60
    to_encode.update({"exp": exp, "iat": now, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode JWT token, applying JWT_LEEWAY_SECONDS to exp and iat."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _credentials_error()

    now = int(time.time())
    try:
        exp = int(payload["exp"])
        iat = int(payload.get("iat", now))
    except (KeyError, TypeError, ValueError):
        raise _credentials_error()

    if now > exp + int(settings.JWT_LEEWAY_SECONDS):
        raise _credentials_error("Token expired")
    # Reject tokens issued far in the future (clock skew / forged tokens).
    if iat > now + int(settings.JWT_LEEWAY_SECONDS):
        raise _credentials_error()
    return payload


def _parse_token_subject(payload: dict) -> UUID:
    """Parse and validate JWT subject as UUID."""
    sub = payload.get("sub")
    if not sub:
        raise _credentials_error()
    try:
        return UUID(str(sub))
    except ValueError:
        raise _credentials_error()


def get_current_subject(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Subject:
    """Resolve the bearer token to an active subject with its granted permissions."""
    payload = decode_token(credentials.credentials)
    if payload.get("type") != "access":
        raise _credentials_error("Invalid token type")

    subject = load_subject(db, _parse_token_subject(payload))
    if subject is None:
        raise _credentials_error("User not found or inactive")
    return subject


class PermissionChecker:
    """Route dependency enforcing one (resource, action) pair."""

    def __init__(self, resource: Resource, action: Action):
        self.resource = resource
        self.action = action

    def __call__(self, current_subject: Subject = Depends(get_current_subject)) -> Subject:
        require_permission(current_subject, self.resource, self.action)
        return current_subject
