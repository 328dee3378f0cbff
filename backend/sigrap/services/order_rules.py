"""Purchase order lifecycle and aggregate invariant helpers."""

from __future__ import annotations

import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Mapping
from uuid import UUID

from ..domain_errors import InvalidTransitionError, ValidationFailureError
from ..models import PAYMENT_METHODS


DRAFT = "DRAFT"
SUBMITTED = "SUBMITTED"
CONFIRMED = "CONFIRMED"
SHIPPED = "SHIPPED"
DELIVERED = "DELIVERED"
CANCELLED = "CANCELLED"

ORDER_STATUSES: tuple[str, ...] = (DRAFT, SUBMITTED, CONFIRMED, SHIPPED, DELIVERED, CANCELLED)
TERMINAL_STATUSES: frozenset[str] = frozenset({DELIVERED, CANCELLED})
_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    DRAFT: frozenset({SUBMITTED, CANCELLED}),
    SUBMITTED: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({SHIPPED, CANCELLED}),
    SHIPPED: frozenset({DELIVERED, CANCELLED}),
    DELIVERED: frozenset(),
    CANCELLED: frozenset(),
}

ITEM_PENDING = "PENDING"
ITEM_RECEIVED = "RECEIVED"
ITEM_PARTIAL = "PARTIAL"
ITEM_REJECTED = "REJECTED"

_CENT = Decimal("0.01")
_TERM_DAYS_RE = re.compile(r"(\d+)")
_CASH_TERMS = {"contado", "inmediato", "cash", "immediate"}


def normalize_order_status(status: str | None) -> str:
    if not status:
        return DRAFT
    if hasattr(status, "value"):
        status = status.value
    return str(status).strip().upper()


def allowed_targets(status: str | None) -> frozenset[str]:
    return _ALLOWED_TRANSITIONS.get(normalize_order_status(status), frozenset())


def is_terminal_status(status: str | None) -> bool:
    return normalize_order_status(status) in TERMINAL_STATUSES


def validate_status_transition(*, current_status: str | None, next_status: str | None) -> str:
    """Return the normalized target status or raise InvalidTransitionError.

    Same-state requests and unknown targets are rejected like any other
    out-of-table transition.
    """
    current = normalize_order_status(current_status)
    if next_status is None:
        raise InvalidTransitionError(current, "<missing>")
    nxt = normalize_order_status(next_status)
    if nxt not in allowed_targets(current):
        raise InvalidTransitionError(current, nxt)
    return nxt


def ensure_order_editable(status: str | None) -> None:
    """Items and header fields may only change while the order is a draft."""
    current = normalize_order_status(status)
    if is_terminal_status(current):
        raise ValidationFailureError(
            f"Purchase order is {current} and can no longer be modified",
            code="ORDER_LOCKED",
            field="status",
        )
    if current != DRAFT:
        raise ValidationFailureError(
            f"Only purchase orders in {DRAFT} status can be modified (current: {current})",
            code="ORDER_NOT_EDITABLE",
            field="status",
        )


def to_money(value: object, *, field: str = "amount") -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailureError(f"Invalid monetary value: {value!r}", field=field)
    if not amount.is_finite():
        raise ValidationFailureError(f"Invalid monetary value: {value!r}", field=field)
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def validate_item_values(*, quantity: int | None, unit_price: object) -> tuple[int, Decimal]:
    if quantity is None or int(quantity) <= 0:
        raise ValidationFailureError("Item quantity must be greater than 0", field="quantity")
    if unit_price is None:
        raise ValidationFailureError("Item unit price is required", field="unit_price")
    price = to_money(unit_price, field="unit_price")
    if price < 0:
        raise ValidationFailureError("Item unit price must not be negative", field="unit_price")
    return int(quantity), price


def line_total(*, quantity: int, unit_price: object) -> Decimal:
    return (to_money(unit_price, field="unit_price") * int(quantity)).quantize(_CENT)


def compute_order_total(items: Iterable[object]) -> Decimal:
    """Sum unit_price * quantity over every item, from scratch."""
    total = Decimal("0.00")
    for item in items:
        total += line_total(quantity=item.quantity, unit_price=item.unit_price)
    return total.quantize(_CENT)


def recompute_order_total(order: object) -> Decimal:
    """Refresh each item's total_price and the order's total_amount."""
    for item in order.items:
        item.total_price = line_total(quantity=item.quantity, unit_price=item.unit_price)
    order.total_amount = compute_order_total(order.items)
    return order.total_amount


def ensure_submittable(items: Iterable[object]) -> None:
    materialized = list(items)
    if not materialized:
        raise ValidationFailureError("Purchase order must have at least one item", field="items")
    for item in materialized:
        if item.quantity is None or item.quantity <= 0:
            raise ValidationFailureError("All item quantities must be greater than 0", field="items")


def ensure_supplier_acknowledged(acknowledged: bool | None) -> None:
    if not acknowledged:
        raise ValidationFailureError(
            "Supplier acknowledgement is required to confirm the order",
            code="SUPPLIER_NOT_ACKNOWLEDGED",
            field="supplier_acknowledged",
        )


def ensure_delivery_date(*, actual_delivery_date: date | None, order_date: date | None) -> date:
    if actual_delivery_date is None:
        raise ValidationFailureError(
            "actual_delivery_date is required to mark the order as delivered",
            field="actual_delivery_date",
        )
    if order_date is not None and actual_delivery_date < order_date:
        raise ValidationFailureError(
            "actual_delivery_date cannot be before the order date",
            field="actual_delivery_date",
        )
    return actual_delivery_date


def resolve_received_quantities(
    items: Iterable[object],
    received_quantities: Mapping[UUID, int] | None,
) -> dict[UUID, tuple[int, str]]:
    """Map item id -> (received quantity, item status) for a delivery.

    Items not listed are received in full.
    """
    overrides = dict(received_quantities or {})
    materialized = list(items)
    known_ids = {item.id for item in materialized}
    unknown = [str(item_id) for item_id in overrides if item_id not in known_ids]
    if unknown:
        raise ValidationFailureError(
            "Received quantities reference items outside this order",
            field="received_quantities",
            details={"item_ids": unknown},
        )

    resolved: dict[UUID, tuple[int, str]] = {}
    for item in materialized:
        received = int(overrides.get(item.id, item.quantity))
        if received < 0 or received > item.quantity:
            raise ValidationFailureError(
                f"Received quantity must be between 0 and {item.quantity}",
                field="received_quantities",
                details={"item_id": str(item.id)},
            )
        if received == item.quantity:
            status = ITEM_RECEIVED
        elif received == 0:
            status = ITEM_REJECTED
        else:
            status = ITEM_PARTIAL
        resolved[item.id] = (received, status)
    return resolved


def parse_payment_term_days(terms: str | None, *, default: int) -> int:
    """Parse supplier payment terms such as "30 días" or "Contado" into days."""
    if not terms:
        return default
    text = terms.strip().lower()
    if text in _CASH_TERMS:
        return 0
    match = _TERM_DAYS_RE.search(text)
    if not match:
        return default
    return int(match.group(1))


def resolve_payment_method(method: str | None, *, default: str) -> str:
    """Supplier payment method as a Payment column value; unknown methods use the default."""
    tag = (method or "").strip().upper()
    if tag in PAYMENT_METHODS:
        return tag
    return default
