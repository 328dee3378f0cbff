from __future__ import annotations

from uuid import uuid4

import pytest

from conftest import make_subject
from sigrap.domain_errors import UnauthorizedError
from sigrap.permissions import (
    ADMINISTRATOR,
    EMPLOYEE,
    Action,
    Resource,
    authorize,
    effective_permissions,
    is_owner,
    permission_matrix,
    permission_name,
    role_permission_pairs,
)
from sigrap.security import require_permission

EMPLOYEE_WRITES = {
    (Resource.PRODUCT, Action.CREATE),
    (Resource.PRODUCT, Action.UPDATE),
    (Resource.CATEGORY, Action.CREATE),
    (Resource.CATEGORY, Action.UPDATE),
    (Resource.CUSTOMER, Action.CREATE),
    (Resource.CUSTOMER, Action.UPDATE),
}


def _expected_employee(resource: Resource, action: Action) -> bool:
    return action is Action.READ or (resource, action) in EMPLOYEE_WRITES


@pytest.mark.parametrize("resource", list(Resource))
@pytest.mark.parametrize("action", list(Action))
def test_employee_policy_table(resource: Resource, action: Action) -> None:
    assert authorize(make_subject(EMPLOYEE), resource, action) is _expected_employee(resource, action)


@pytest.mark.parametrize("resource", list(Resource))
@pytest.mark.parametrize("action", list(Action))
def test_administrator_is_allowed_everything(resource: Resource, action: Action) -> None:
    assert authorize(make_subject(ADMINISTRATOR), resource, action) is True


@pytest.mark.parametrize("resource", list(Resource))
@pytest.mark.parametrize("action", list(Action))
def test_unauthenticated_subject_is_denied_everything(resource: Resource, action: Action) -> None:
    assert authorize(None, resource, action) is False


@pytest.mark.parametrize(
    ("resource", "action", "expected"),
    [
        ("PRODUCT", "CREATE", True),
        ("product", "create", True),
        ("PRODUCT", "DELETE", False),
        ("ROLE", "READ", True),
        ("PURCHASE_ORDER", "UPDATE", False),
        ("PAYMENT", "DELETE", False),
    ],
)
def test_string_tags_are_evaluated_case_insensitively(resource: str, action: str, expected: bool) -> None:
    assert authorize(make_subject(EMPLOYEE), resource, action) is expected


def test_unknown_tags_are_denied_except_for_read() -> None:
    employee = make_subject(EMPLOYEE)

    assert authorize(employee, "WAREHOUSE", "CREATE") is False
    assert authorize(employee, "PRODUCT", "ARCHIVE") is False
    assert authorize(employee, None, "READ") is False


def test_persisted_grants_extend_the_baseline() -> None:
    buyer = make_subject(EMPLOYEE, granted={("PURCHASE_ORDER", "UPDATE")})

    assert authorize(buyer, Resource.PURCHASE_ORDER, Action.UPDATE) is True
    assert authorize(buyer, Resource.PURCHASE_ORDER, Action.DELETE) is False


def test_subject_without_roles_still_reads() -> None:
    assert authorize(make_subject(), Resource.SUPPLIER, Action.READ) is True
    assert authorize(make_subject(), Resource.SUPPLIER, Action.CREATE) is False


def test_is_owner_is_independent_of_roles() -> None:
    admin = make_subject(ADMINISTRATOR)

    assert is_owner(admin, admin.id) is True
    assert is_owner(admin, uuid4()) is False
    assert is_owner(None, admin.id) is False
    assert is_owner(admin, None) is False


def test_role_permission_pairs_expand_the_policy() -> None:
    admin_pairs = role_permission_pairs(ADMINISTRATOR)
    employee_pairs = role_permission_pairs(EMPLOYEE)

    assert len(admin_pairs) == len(Resource) * len(Action)
    assert ("PRODUCT", "CREATE") in employee_pairs
    assert ("PRODUCT", "DELETE") not in employee_pairs
    assert {pair for pair in employee_pairs if pair[1] != "READ"} == {
        (resource.value, action.value) for resource, action in EMPLOYEE_WRITES
    }
    assert role_permission_pairs("UNKNOWN") == frozenset()


def test_permission_matrix_has_stable_keys() -> None:
    matrix = permission_matrix(make_subject(EMPLOYEE))

    assert set(matrix) == {resource.value for resource in Resource}
    assert all(set(actions) == {action.value for action in Action} for actions in matrix.values())
    assert matrix["PRODUCT"] == {"READ": True, "CREATE": True, "UPDATE": True, "DELETE": False}
    assert matrix["ROLE"]["UPDATE"] is False


def test_effective_permissions_for_unauthenticated_is_empty() -> None:
    assert effective_permissions(None) == frozenset()
    assert permission_matrix(None)["PRODUCT"]["READ"] is False


def test_permission_name_uses_resource_action() -> None:
    assert permission_name(Resource.PURCHASE_ORDER, Action.UPDATE) == "PURCHASE_ORDER_UPDATE"
    assert permission_name("role", "read") == "ROLE_READ"


def test_require_permission_raises_forbidden_with_details() -> None:
    with pytest.raises(UnauthorizedError) as exc:
        require_permission(make_subject(EMPLOYEE), Resource.PURCHASE_ORDER, Action.DELETE)

    assert exc.value.http_status == 403
    assert exc.value.code == "FORBIDDEN"
    assert exc.value.details == {"resource": "PURCHASE_ORDER", "action": "DELETE"}

    require_permission(make_subject(EMPLOYEE), Resource.PRODUCT, Action.CREATE)
