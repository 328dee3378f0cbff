"""Role policy table and the authorization evaluator.

The policy is a closed table: each built-in role maps to an ordered tuple of
rules, and the first matching rule grants access. Resources and actions are
explicit enums supplied by the caller; string tags are accepted
case-insensitively so HTTP payloads can be evaluated without conversion.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping
from uuid import UUID


class Resource(str, Enum):
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"
    CUSTOMER = "CUSTOMER"
    EMPLOYEE = "EMPLOYEE"
    SUPPLIER = "SUPPLIER"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    PAYMENT = "PAYMENT"
    SALE = "SALE"
    SCHEDULE = "SCHEDULE"
    ATTENDANCE = "ATTENDANCE"
    ACTIVITY_LOG = "ACTIVITY_LOG"
    AUDIT_LOG = "AUDIT_LOG"
    ROLE = "ROLE"
    PERMISSION = "PERMISSION"
    USER = "USER"


class Action(str, Enum):
    READ = "READ"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


ADMINISTRATOR = "ADMINISTRATOR"
EMPLOYEE = "EMPLOYEE"
BUILTIN_ROLES: tuple[str, ...] = (ADMINISTRATOR, EMPLOYEE)

# Marker for "any resource" / "any action" in a rule.
ANY = "*"


@dataclass(frozen=True)
class Rule:
    resources: frozenset[str]
    actions: frozenset[str]

    def matches(self, resource: str, action: str) -> bool:
        resource_ok = ANY in self.resources or resource in self.resources
        action_ok = ANY in self.actions or action in self.actions
        return resource_ok and action_ok


def _tag(value: object) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().upper()


def _rule(resources: Iterable[object], actions: Iterable[object]) -> Rule:
    return Rule(frozenset(_tag(r) for r in resources), frozenset(_tag(a) for a in actions))


# Rules shared by every authenticated subject, whatever its roles, in priority order.
BASELINE_RULES: tuple[Rule, ...] = (
    _rule([ANY], [Action.READ]),
    _rule([Resource.PRODUCT, Resource.CATEGORY], [Action.CREATE, Action.UPDATE]),
    _rule([Resource.CUSTOMER], [Action.CREATE, Action.UPDATE]),
)

POLICY: Mapping[str, tuple[Rule, ...]] = MappingProxyType(
    {
        ADMINISTRATOR: (_rule([ANY], [ANY]),),
        EMPLOYEE: BASELINE_RULES,
    }
)

ROLE_DESCRIPTIONS: Mapping[str, str] = MappingProxyType(
    {
        ADMINISTRATOR: "Acceso total al sistema",
        EMPLOYEE: "Consulta general; alta y edición de productos, categorías y clientes",
    }
)


@dataclass(frozen=True)
class Subject:
    """Authenticated caller resolved from the user store."""

    id: UUID
    email: str
    roles: frozenset[str]
    granted: frozenset[tuple[str, str]] = field(default_factory=frozenset)
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return ADMINISTRATOR in self.roles


def _role_rules(roles: Iterable[str]) -> Iterable[Rule]:
    for role in sorted(roles):
        yield from POLICY.get(role, ())
    yield from BASELINE_RULES


def authorize(subject: Subject | None, resource: Resource | str, action: Action | str) -> bool:
    """Decide allow/deny for (subject, resource, action). Never raises.

    Built-in roles are evaluated from POLICY alone. Persisted grants only
    ever come from custom roles (see security.subject_from_user).
    """
    if subject is None:
        return False
    if resource is None or action is None:
        return False

    resource_tag = _tag(resource)
    action_tag = _tag(action)

    for rule in _role_rules(subject.roles):
        if rule.matches(resource_tag, action_tag):
            return True
    return (resource_tag, action_tag) in subject.granted


def is_owner(subject: Subject | None, owner_id: UUID | None) -> bool:
    """Record-ownership check, independent of the role policy."""
    if subject is None or owner_id is None:
        return False
    return subject.id == owner_id


def role_permission_pairs(role_name: str) -> frozenset[tuple[str, str]]:
    """Expand a built-in role's rules into concrete (resource, action) pairs."""
    rules = POLICY.get(_tag(role_name), ())
    pairs = set()
    for resource in Resource:
        for action in Action:
            if any(rule.matches(resource.value, action.value) for rule in rules):
                pairs.add((resource.value, action.value))
    return frozenset(pairs)


def effective_permissions(subject: Subject | None) -> frozenset[tuple[str, str]]:
    """Full set of (resource, action) pairs the subject may perform."""
    if subject is None:
        return frozenset()
    return frozenset(
        (resource.value, action.value)
        for resource in Resource
        for action in Action
        if authorize(subject, resource, action)
    )


def permission_matrix(subject: Subject | None) -> dict[str, dict[str, bool]]:
    """UI-facing resource -> action -> allowed matrix with a stable key set."""
    allowed = effective_permissions(subject)
    return {
        resource.value: {action.value: (resource.value, action.value) in allowed for action in Action}
        for resource in Resource
    }


def permission_name(resource: Resource | str, action: Action | str) -> str:
    return f"{_tag(resource)}_{_tag(action)}"
