"""Role and permission administration use-cases."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from ..domain_errors import DomainError, NotFoundError, ValidationFailureError
from ..models import Permission, Role, User
from ..permissions import (
    BUILTIN_ROLES,
    POLICY,
    ROLE_DESCRIPTIONS,
    Action,
    Resource,
    Subject,
    permission_name,
    role_permission_pairs,
)
from ..schemas import PermissionCreate, RoleCreate, RoleUpdate
from ..security import require_entity, require_permission
from ..services.audit import record_audit_event

logger = logging.getLogger(__name__)


def _normalize_role_name(name: str) -> str:
    normalized = name.strip().upper()
    if not normalized:
        raise ValidationFailureError("Role name is required", field="name")
    return normalized


def _get_role(db: Session, role_id: UUID) -> Role:
    return require_entity(db, Role, entity_id=role_id, code="ROLE_NOT_FOUND", not_found="Role not found")


def _get_user(db: Session, user_id: UUID) -> User:
    return require_entity(db, User, entity_id=user_id, code="USER_NOT_FOUND", not_found="User not found")


def _ensure_name_available(db: Session, name: str, *, exclude_id: UUID | None = None) -> None:
    query = db.query(Role).filter(Role.name == name)
    if exclude_id is not None:
        query = query.filter(Role.id != exclude_id)
    if query.first():
        raise DomainError(
            code="ROLE_NAME_TAKEN",
            http_status=409,
            message=f"Role {name} already exists",
        )


def _load_permissions(db: Session, permission_ids: list[UUID]) -> list[Permission]:
    if not permission_ids:
        return []
    wanted = set(permission_ids)
    found = db.query(Permission).filter(Permission.id.in_(wanted)).all()
    missing = wanted - {permission.id for permission in found}
    if missing:
        raise NotFoundError(
            "Permission not found",
            code="PERMISSION_NOT_FOUND",
            details={"ids": sorted(str(permission_id) for permission_id in missing)},
        )
    return found


def list_roles_use_case(*, db: Session, current_subject: Subject) -> list[Role]:
    require_permission(current_subject, Resource.ROLE, Action.READ)
    return db.query(Role).options(selectinload(Role.permissions)).order_by(Role.name).all()


def create_role_use_case(*, db: Session, current_subject: Subject, data: RoleCreate) -> Role:
    require_permission(current_subject, Resource.ROLE, Action.CREATE)
    name = _normalize_role_name(data.name)
    _ensure_name_available(db, name)

    role = Role(name=name, description=data.description)
    role.permissions = _load_permissions(db, data.permission_ids)
    db.add(role)
    db.flush()
    record_audit_event(
        db,
        action="role_created",
        entity_type="role",
        entity_id=role.id,
        entity_name=role.name,
        subject=current_subject,
        details={"permissions": sorted(p.name for p in role.permissions)},
    )
    db.commit()
    return role


def update_role_use_case(*, db: Session, role_id: UUID, current_subject: Subject, data: RoleUpdate) -> Role:
    require_permission(current_subject, Resource.ROLE, Action.UPDATE)
    role = _get_role(db, role_id)

    if data.name is not None:
        name = _normalize_role_name(data.name)
        if role.name in BUILTIN_ROLES and name != role.name:
            raise ValidationFailureError(
                f"Built-in role {role.name} cannot be renamed",
                code="ROLE_BUILTIN",
                field="name",
            )
        _ensure_name_available(db, name, exclude_id=role.id)
        role.name = name
    if data.description is not None:
        role.description = data.description

    record_audit_event(
        db,
        action="role_updated",
        entity_type="role",
        entity_id=role.id,
        entity_name=role.name,
        subject=current_subject,
    )
    db.commit()
    return role


def delete_role_use_case(*, db: Session, role_id: UUID, current_subject: Subject) -> None:
    """Delete a role that no user references."""
    require_permission(current_subject, Resource.ROLE, Action.DELETE)
    role = _get_role(db, role_id)
    if role.users:
        raise DomainError(
            code="ROLE_IN_USE",
            http_status=409,
            message=f"Role {role.name} is assigned to {len(role.users)} user(s)",
            details={"users": len(role.users)},
        )
    if role.name in BUILTIN_ROLES:
        raise ValidationFailureError(
            f"Built-in role {role.name} cannot be deleted",
            code="ROLE_BUILTIN",
            field="name",
        )

    record_audit_event(
        db,
        action="role_deleted",
        entity_type="role",
        entity_id=role.id,
        entity_name=role.name,
        subject=current_subject,
    )
    db.delete(role)
    db.commit()


def set_role_permissions_use_case(
    *,
    db: Session,
    role_id: UUID,
    current_subject: Subject,
    permission_ids: list[UUID],
) -> Role:
    require_permission(current_subject, Resource.ROLE, Action.UPDATE)
    role = _get_role(db, role_id)
    # Built-in roles are defined by POLICY; their rows are kept in sync by sync_policy_permissions.
    if role.name in BUILTIN_ROLES:
        raise ValidationFailureError(
            f"Permissions of built-in role {role.name} cannot be changed",
            code="ROLE_BUILTIN",
            field="permission_ids",
        )
    before = sorted(p.name for p in role.permissions)
    role.permissions = _load_permissions(db, permission_ids)
    after = sorted(p.name for p in role.permissions)

    record_audit_event(
        db,
        action="role_permissions_changed",
        entity_type="role",
        entity_id=role.id,
        entity_name=role.name,
        subject=current_subject,
        details={"before": before, "after": after},
    )
    db.commit()
    logger.info("role.permissions_changed role=%s count=%s", role.name, len(after))
    return role


def assign_role_use_case(*, db: Session, role_id: UUID, user_id: UUID, current_subject: Subject) -> User:
    require_permission(current_subject, Resource.ROLE, Action.UPDATE)
    role = _get_role(db, role_id)
    user = _get_user(db, user_id)

    # Idempotent.
    if role in user.roles:
        return user

    user.roles.append(role)
    record_audit_event(
        db,
        action="role_assigned",
        entity_type="user",
        entity_id=user.id,
        entity_name=user.email,
        subject=current_subject,
        details={"role": role.name},
    )
    db.commit()
    return user


def unassign_role_use_case(*, db: Session, role_id: UUID, user_id: UUID, current_subject: Subject) -> User:
    """Remove a role from a user; the user's last role cannot be removed."""
    require_permission(current_subject, Resource.ROLE, Action.UPDATE)
    role = _get_role(db, role_id)
    user = _get_user(db, user_id)

    if role not in user.roles:
        raise NotFoundError(
            f"User does not have role {role.name}",
            code="ROLE_NOT_ASSIGNED",
            details={"role": role.name, "user_id": str(user.id)},
        )
    if len(user.roles) == 1:
        raise ValidationFailureError(
            "A user must keep at least one role",
            code="USER_LAST_ROLE",
            field="roles",
        )

    user.roles.remove(role)
    record_audit_event(
        db,
        action="role_unassigned",
        entity_type="user",
        entity_id=user.id,
        entity_name=user.email,
        subject=current_subject,
        details={"role": role.name},
    )
    db.commit()
    return user


def list_permissions_use_case(*, db: Session, current_subject: Subject) -> list[Permission]:
    require_permission(current_subject, Resource.PERMISSION, Action.READ)
    return db.query(Permission).order_by(Permission.resource, Permission.action).all()


def create_permission_use_case(*, db: Session, current_subject: Subject, data: PermissionCreate) -> Permission:
    require_permission(current_subject, Resource.PERMISSION, Action.CREATE)
    resource = data.resource.value
    action = data.action.value
    existing = db.query(Permission).filter(
        Permission.resource == resource,
        Permission.action == action,
    ).first()
    if existing:
        raise DomainError(
            code="PERMISSION_EXISTS",
            http_status=409,
            message=f"Permission {existing.name} already exists",
            details={"id": str(existing.id)},
        )

    permission = Permission(
        name=(data.name or permission_name(resource, action)).strip().upper(),
        description=data.description,
        resource=resource,
        action=action,
    )
    db.add(permission)
    db.flush()
    record_audit_event(
        db,
        action="permission_created",
        entity_type="permission",
        entity_id=permission.id,
        entity_name=permission.name,
        subject=current_subject,
    )
    db.commit()
    return permission


def sync_policy_permissions(db: Session) -> dict[str, Role]:
    """Materialize the policy table as Permission rows and built-in roles.

    Idempotent; used by seeding and setup scripts.
    """
    permissions: dict[tuple[str, str], Permission] = {
        (permission.resource, permission.action): permission
        for permission in db.query(Permission).all()
    }
    for resource in Resource:
        for action in Action:
            key = (resource.value, action.value)
            if key not in permissions:
                permission = Permission(
                    name=permission_name(resource, action),
                    description=f"{action.value} {resource.value}",
                    resource=resource.value,
                    action=action.value,
                )
                db.add(permission)
                permissions[key] = permission

    roles: dict[str, Role] = {}
    for role_name in POLICY:
        role = db.query(Role).filter(Role.name == role_name).first()
        if role is None:
            role = Role(name=role_name, description=ROLE_DESCRIPTIONS.get(role_name))
            db.add(role)
        role.permissions = [permissions[pair] for pair in sorted(role_permission_pairs(role_name))]
        roles[role_name] = role

    db.flush()
    return roles
