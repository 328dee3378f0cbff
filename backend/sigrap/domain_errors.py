"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """Referenced order, item, supplier, product or subject does not exist."""

    def __init__(self, message: str, *, code: str = "NOT_FOUND", details: dict[str, Any] | None = None):
        super().__init__(code=code, http_status=404, message=message, details=details)


class InvalidTransitionError(DomainError):
    """Requested status change is not in the lifecycle transition table."""

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            code="INVALID_TRANSITION",
            http_status=400,
            message=f"Invalid purchase order status transition: {current_status} -> {target_status}",
            details={"from": current_status, "to": target_status},
        )


class ValidationFailureError(DomainError):
    """Guard or field validation failed; `details.field` names the offender when known."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "VALIDATION_FAILED",
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        payload = dict(details or {})
        if field is not None:
            payload["field"] = field
        super().__init__(code=code, http_status=400, message=message, details=payload or None)


class UnauthorizedError(DomainError):
    """Authorization evaluator denied the action."""

    def __init__(self, resource: str, action: str):
        super().__init__(
            code="FORBIDDEN",
            http_status=403,
            message=f"Permission denied: {action} on {resource}",
            details={"resource": resource, "action": action},
        )


class ConflictOptimisticLockError(DomainError):
    """Concurrent modification detected through the version column."""

    def __init__(self, message: str = "Purchase order was modified concurrently; reload and retry"):
        super().__init__(code="OPTIMISTIC_LOCK_CONFLICT", http_status=409, message=message)


class TransitionTimeoutError(DomainError):
    def __init__(self, timeout_seconds: float):
        super().__init__(
            code="TRANSITION_TIMEOUT",
            http_status=504,
            message=f"Transition did not complete within {timeout_seconds:g}s and was rolled back",
        )
