"""Auth endpoints."""
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session, selectinload

from ..auth import create_access_token, get_current_subject, verify_password
from ..config import settings
from ..database import get_db
from ..models import Role, User
from ..permissions import Subject, authorize, permission_matrix
from ..schemas import (
    AuthCheckRequest,
    AuthCheckResponse,
    LoginRequest,
    PermissionMatrixResponse,
    TokenResponse,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _set_no_store(response: Response) -> None:
    # Tokens must not end up in shared caches.
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"


def _load_user(db: Session, **criteria) -> User | None:
    return db.query(User).options(
        selectinload(User.roles).selectinload(Role.permissions),
    ).filter_by(**criteria).first()


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """Login with email and password."""
    _set_no_store(response)
    email = (payload.email or "").strip().lower()

    user = _load_user(db, email=email, is_active=True)
    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("auth.login_failed email=%s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expires = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token({"sub": str(user.id), "email": user.email}, expires_delta=expires)
    logger.info("auth.login user=%s", user.id)
    return TokenResponse(
        access_token=token,
        expires_in=int(expires.total_seconds()),
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
def me(current_subject: Subject = Depends(get_current_subject), db: Session = Depends(get_db)):
    """Current user and roles."""
    user = _load_user(db, id=current_subject.id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


@router.post("/check", response_model=AuthCheckResponse)
def check(data: AuthCheckRequest, current_subject: Subject = Depends(get_current_subject)):
    """Evaluate one (resource, action) pair for the caller without side effects."""
    return AuthCheckResponse(
        resource=data.resource.strip().upper(),
        action=data.action.strip().upper(),
        allowed=authorize(current_subject, data.resource, data.action),
    )


@router.get("/permissions", response_model=PermissionMatrixResponse)
def permissions(current_subject: Subject = Depends(get_current_subject)):
    return PermissionMatrixResponse(
        roles=sorted(current_subject.roles),
        permissions=permission_matrix(current_subject),
    )
