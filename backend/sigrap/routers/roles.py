"""Role and permission administration endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..database import get_db
from ..permissions import Action, Resource, Subject
from ..schemas import (
    PermissionCreate,
    PermissionOut,
    RoleCreate,
    RoleOut,
    RolePermissionsUpdate,
    RoleUpdate,
    UserResponse,
)
from ..use_cases.roles import (
    assign_role_use_case,
    create_permission_use_case,
    create_role_use_case,
    delete_role_use_case,
    list_permissions_use_case,
    list_roles_use_case,
    set_role_permissions_use_case,
    unassign_role_use_case,
    update_role_use_case,
)

router = APIRouter(tags=["roles"])

can_read_roles = PermissionChecker(Resource.ROLE, Action.READ)
can_create_roles = PermissionChecker(Resource.ROLE, Action.CREATE)
can_update_roles = PermissionChecker(Resource.ROLE, Action.UPDATE)
can_delete_roles = PermissionChecker(Resource.ROLE, Action.DELETE)


@router.get("/roles", response_model=list[RoleOut])
def list_roles(current_subject: Subject = Depends(can_read_roles), db: Session = Depends(get_db)):
    return list_roles_use_case(db=db, current_subject=current_subject)


@router.post("/roles", response_model=RoleOut, status_code=201)
def create_role(
    data: RoleCreate,
    current_subject: Subject = Depends(can_create_roles),
    db: Session = Depends(get_db),
):
    return create_role_use_case(db=db, current_subject=current_subject, data=data)


@router.patch("/roles/{role_id}", response_model=RoleOut)
def update_role(
    role_id: UUID,
    data: RoleUpdate,
    current_subject: Subject = Depends(can_update_roles),
    db: Session = Depends(get_db),
):
    return update_role_use_case(db=db, role_id=role_id, current_subject=current_subject, data=data)


@router.delete("/roles/{role_id}", status_code=204)
def delete_role(
    role_id: UUID,
    current_subject: Subject = Depends(can_delete_roles),
    db: Session = Depends(get_db),
):
    delete_role_use_case(db=db, role_id=role_id, current_subject=current_subject)
    return Response(status_code=204)


@router.put("/roles/{role_id}/permissions", response_model=RoleOut)
def set_role_permissions(
    role_id: UUID,
    data: RolePermissionsUpdate,
    current_subject: Subject = Depends(can_update_roles),
    db: Session = Depends(get_db),
):
    """Replace the role's permission set."""
    return set_role_permissions_use_case(
        db=db,
        role_id=role_id,
        current_subject=current_subject,
        permission_ids=data.permission_ids,
    )


@router.post("/roles/{role_id}/users/{user_id}", response_model=UserResponse)
def assign_role(
    role_id: UUID,
    user_id: UUID,
    current_subject: Subject = Depends(can_update_roles),
    db: Session = Depends(get_db),
):
    return assign_role_use_case(db=db, role_id=role_id, user_id=user_id, current_subject=current_subject)


@router.delete("/roles/{role_id}/users/{user_id}", response_model=UserResponse)
def unassign_role(
    role_id: UUID,
    user_id: UUID,
    current_subject: Subject = Depends(can_update_roles),
    db: Session = Depends(get_db),
):
    return unassign_role_use_case(db=db, role_id=role_id, user_id=user_id, current_subject=current_subject)


@router.get("/permissions", response_model=list[PermissionOut])
def list_permissions(
    current_subject: Subject = Depends(PermissionChecker(Resource.PERMISSION, Action.READ)),
    db: Session = Depends(get_db),
):
    return list_permissions_use_case(db=db, current_subject=current_subject)


@router.post("/permissions", response_model=PermissionOut, status_code=201)
def create_permission(
    data: PermissionCreate,
    current_subject: Subject = Depends(PermissionChecker(Resource.PERMISSION, Action.CREATE)),
    db: Session = Depends(get_db),
):
    return create_permission_use_case(db=db, current_subject=current_subject, data=data)
