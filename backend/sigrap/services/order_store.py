"""Persistence helpers for the purchase order aggregate."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from ..domain_errors import NotFoundError
from ..models import Payment, PurchaseOrder, PurchaseOrderTrackingEvent
from .concurrency import Deadline, order_transaction
from .order_projection import PaymentState, TrackingEventDraft

logger = logging.getLogger(__name__)


def load_order(db: Session, order_id: UUID) -> PurchaseOrder:
    """Load an order with items, supplier and payment, or raise NotFoundError."""
    order = db.query(PurchaseOrder).options(
        selectinload(PurchaseOrder.items),
        selectinload(PurchaseOrder.supplier),
        selectinload(PurchaseOrder.payment),
    ).filter(PurchaseOrder.id == order_id).first()
    if not order:
        raise NotFoundError(
            "Purchase order not found",
            code="PURCHASE_ORDER_NOT_FOUND",
            details={"id": str(order_id)},
        )
    return order


def _next_sequence(order: PurchaseOrder) -> int:
    return max((event.sequence for event in order.tracking_events), default=0) + 1


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timezone-aware columns back naive.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _latest_timestamp(order: PurchaseOrder) -> datetime | None:
    stamps = [
        _as_utc(event.event_timestamp)
        for event in order.tracking_events
        if getattr(event, "event_timestamp", None) is not None
    ]
    return max(stamps, default=None)


def stage_tracking_events(
    db: Session,
    order: PurchaseOrder,
    events: Iterable[TrackingEventDraft],
) -> list[PurchaseOrderTrackingEvent]:
    """Append events after the order's current history; nothing is flushed here.

    A timestamp earlier than the last stored event is raised to it so the
    history never goes backwards.
    """
    sequence = _next_sequence(order)
    floor = _latest_timestamp(order)
    rows: list[PurchaseOrderTrackingEvent] = []
    for draft in events:
        stamp = draft.event_timestamp
        if floor is not None and _as_utc(stamp) < floor:
            logger.warning(
                "tracking.timestamp_clamped order=%s requested=%s stored=%s",
                order.id,
                stamp.isoformat(),
                floor.isoformat(),
            )
            stamp = floor
        row = PurchaseOrderTrackingEvent(
            purchase_order_id=order.id,
            sequence=sequence,
            event_timestamp=stamp,
            status=draft.status,
            description=draft.description,
            location=draft.location,
            notes=draft.notes,
        )
        order.tracking_events.append(row)
        db.add(row)
        rows.append(row)
        sequence += 1
    return rows


def stage_payment(db: Session, order: PurchaseOrder, state: PaymentState | None) -> Payment | None:
    """Insert or update the order's single payment row to match the projected state."""
    if state is None:
        return order.payment

    payment = order.payment
    if payment is None:
        payment = Payment(purchase_order_id=order.id)
        order.payment = payment
        db.add(payment)

    payment.supplier_id = state.supplier_id
    payment.amount = state.amount
    payment.payment_method = state.payment_method
    payment.status = state.status
    payment.due_date = state.due_date
    payment.invoice_number = state.invoice_number
    payment.payment_date = state.payment_date
    payment.transaction_id = state.transaction_id
    return payment


def save_order_atomically(
    db: Session,
    order: PurchaseOrder,
    events: Iterable[TrackingEventDraft],
    payment: PaymentState | None,
    *,
    deadline: Deadline | None = None,
) -> PurchaseOrder:
    """Commit pending order changes, new tracking events and the payment upsert as one unit."""
    with order_transaction(db, deadline=deadline):
        stage_tracking_events(db, order, events)
        stage_payment(db, order, payment)
    return order
