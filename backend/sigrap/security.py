"""Security helpers: subject resolution, permission enforcement and entity lookup."""

from __future__ import annotations

import logging
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from .domain_errors import NotFoundError, UnauthorizedError
from .models import Role, User
from .permissions import BUILTIN_ROLES, Action, Resource, Subject, authorize

T = TypeVar("T")
logger = logging.getLogger(__name__)


def subject_from_user(user: User) -> Subject:
    """Flatten a user and its custom roles' granted permissions into an immutable Subject.

    Permission rows attached to built-in roles mirror POLICY for display and
    are not read back as grants.
    """
    roles = frozenset(role.name.strip().upper() for role in user.roles)
    granted = frozenset(
        (permission.resource.strip().upper(), permission.action.strip().upper())
        for role in user.roles
        if role.name.strip().upper() not in BUILTIN_ROLES
        for permission in role.permissions
    )
    return Subject(id=user.id, email=user.email, name=user.name, roles=roles, granted=granted)


def load_subject(db: Session, subject_id: UUID | None) -> Subject | None:
    """Resolve a subject by id; unknown or inactive users resolve to None."""
    if subject_id is None:
        return None
    user = db.query(User).options(
        selectinload(User.roles).selectinload(Role.permissions),
    ).filter(
        User.id == subject_id,
        User.is_active.is_(True),
    ).first()
    if user is None:
        return None
    return subject_from_user(user)


def require_permission(subject: Subject | None, resource: Resource | str, action: Action | str) -> None:
    """Enforce the role policy server-side."""
    if authorize(subject, resource, action):
        return
    resource_tag = resource.value if isinstance(resource, Resource) else str(resource).upper()
    action_tag = action.value if isinstance(action, Action) else str(action).upper()
    logger.warning(
        "authorization.denied subject=%s resource=%s action=%s",
        subject.id if subject is not None else None,
        resource_tag,
        action_tag,
    )
    raise UnauthorizedError(resource_tag, action_tag)


def require_entity(db: Session, model: type[T], *, entity_id: UUID, code: str, not_found: str) -> T:
    """Load an entity by id or raise NotFoundError with a stable code."""
    entity = db.query(model).filter(  # type: ignore[arg-type]
        getattr(model, "id") == entity_id,  # noqa: B009
    ).first()
    if not entity:
        raise NotFoundError(not_found, code=code, details={"id": str(entity_id)})
    return entity
