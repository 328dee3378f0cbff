"""Purchase order lifecycle transition use-case."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from ..config import settings
from ..models import PurchaseOrder
from ..permissions import Action, Resource, Subject
from ..security import require_permission
from ..services import order_rules as rules
from ..services.audit import record_audit_event
from ..services.concurrency import Deadline, apply_statement_timeout, ensure_expected_version
from ..services.order_projection import (
    OrderSnapshot,
    PaymentState,
    ProjectionConfig,
    project_transition,
)
from ..services.order_store import load_order, save_order_atomically

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _apply_guards(
    *,
    order: PurchaseOrder,
    target: str,
    supplier_acknowledged: bool,
    actual_delivery_date: date | None,
) -> None:
    if target == rules.SUBMITTED:
        rules.ensure_submittable(order.items)
    elif target == rules.CONFIRMED:
        rules.ensure_supplier_acknowledged(supplier_acknowledged)
    elif target == rules.DELIVERED:
        rules.ensure_delivery_date(actual_delivery_date=actual_delivery_date, order_date=order.order_date)


def _receive_items(order: PurchaseOrder, received_quantities: Mapping[UUID, int] | None) -> None:
    resolved = rules.resolve_received_quantities(order.items, received_quantities)
    for item in order.items:
        item.received_quantity, item.status = resolved[item.id]


def transition_purchase_order_use_case(
    *,
    db: Session,
    order_id: UUID,
    target_status: str,
    current_subject: Subject,
    actual_delivery_date: date | None = None,
    expected_version: int | None = None,
    supplier_acknowledged: bool = False,
    received_quantities: Mapping[UUID, int] | None = None,
    notes: str | None = None,
    now: datetime | None = None,
    deadline: Deadline | None = None,
    projection_config: ProjectionConfig | None = None,
) -> PurchaseOrder:
    """Validate and apply one status transition with all of its side effects.

    Status, item receipts, tracking events, the payment upsert and the audit
    row are committed together; any failure leaves the stored order in its
    previous state.
    """
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.UPDATE)

    at = now or _now_utc()
    deadline = deadline or Deadline(settings.TRANSITION_TIMEOUT_SECONDS)

    try:
        apply_statement_timeout(db, deadline)
        order = load_order(db, order_id)
        ensure_expected_version(current_version=order.version, expected_version=expected_version)

        old_status = rules.normalize_order_status(order.status)
        target = rules.validate_status_transition(current_status=old_status, next_status=target_status)
        _apply_guards(
            order=order,
            target=target,
            supplier_acknowledged=supplier_acknowledged,
            actual_delivery_date=actual_delivery_date,
        )

        effects = project_transition(
            order=OrderSnapshot.from_order(order),
            from_status=old_status,
            to_status=target,
            at=at,
            payment=PaymentState.from_payment(order.payment),
            actual_delivery_date=actual_delivery_date,
            notes=notes,
            config=projection_config,
        )

        order.status = target
        if target == rules.DELIVERED:
            order.actual_delivery_date = actual_delivery_date
            _receive_items(order, received_quantities)

        record_audit_event(
            db,
            action="purchase_order_status_changed",
            entity_type="purchase_order",
            entity_id=order.id,
            entity_name=order.order_number,
            subject=current_subject,
            details={
                "oldStatus": old_status,
                "newStatus": target,
                "events": [event.status for event in effects.events],
                "paymentStatus": effects.payment.status if effects.payment is not None else None,
            },
        )
    except Exception:
        db.rollback()
        raise

    save_order_atomically(db, order, effects.events, effects.payment, deadline=deadline)

    logger.info(
        "purchase_order.transition order=%s from=%s to=%s",
        order_id,
        old_status,
        target,
    )
    return order
