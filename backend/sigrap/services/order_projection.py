"""Tracking-event and payment derivation for purchase order transitions.

Everything here is a pure function of its arguments: the same order snapshot,
transition sequence and timestamps always produce the same events and the
same payment state, so a failed transition can be re-derived and retried.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from ..config import settings
from . import order_rules as rules


EVENT_ORDER_CREATED = "ORDEN CREADA"
EVENT_ORDER_CONFIRMED = "ORDEN CONFIRMADA"
EVENT_ORDER_SHIPPED = "ORDEN ENVIADA"
EVENT_IN_TRANSIT = "EN TRÁNSITO"
EVENT_DELIVERED = "ENTREGADO"
EVENT_ORDER_COMPLETED = "ORDEN COMPLETADA"
EVENT_ORDER_CANCELLED = "ORDEN CANCELADA"

PAYMENT_PENDING = "PENDING"
PAYMENT_PROCESSING = "PROCESSING"
PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_CANCELLED = "CANCELLED"
_OPEN_PAYMENT_STATUSES = frozenset({PAYMENT_PENDING, PAYMENT_PROCESSING})


@dataclass(frozen=True)
class ProjectionConfig:
    default_payment_method: str
    default_payment_term_days: int
    office_location: str
    receiving_location: str

    @classmethod
    def from_settings(cls) -> "ProjectionConfig":
        return cls(
            default_payment_method=settings.DEFAULT_PAYMENT_METHOD,
            default_payment_term_days=settings.DEFAULT_PAYMENT_TERM_DAYS,
            office_location=settings.PURCHASING_OFFICE_LOCATION,
            receiving_location=settings.RECEIVING_LOCATION,
        )


@dataclass(frozen=True)
class OrderSnapshot:
    order_number: str
    supplier_id: UUID
    supplier_name: str
    total_amount: Decimal
    order_date: date | None = None
    supplier_payment_method: str | None = None
    supplier_payment_terms: str | None = None

    @classmethod
    def from_order(cls, order) -> "OrderSnapshot":
        supplier = order.supplier
        return cls(
            order_number=order.order_number,
            supplier_id=order.supplier_id,
            supplier_name=supplier.name if supplier is not None else "",
            total_amount=rules.compute_order_total(order.items),
            order_date=order.order_date,
            supplier_payment_method=supplier.payment_method if supplier is not None else None,
            supplier_payment_terms=supplier.payment_terms if supplier is not None else None,
        )


@dataclass(frozen=True)
class TrackingEventDraft:
    status: str
    event_timestamp: datetime
    description: str
    location: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentState:
    supplier_id: UUID
    amount: Decimal
    payment_method: str
    status: str
    due_date: date | None = None
    invoice_number: str | None = None
    payment_date: date | None = None
    transaction_id: str | None = None

    @classmethod
    def from_payment(cls, payment) -> "PaymentState | None":
        if payment is None:
            return None
        return cls(
            supplier_id=payment.supplier_id,
            amount=payment.amount,
            payment_method=payment.payment_method,
            status=payment.status,
            due_date=payment.due_date,
            invoice_number=payment.invoice_number,
            payment_date=payment.payment_date,
            transaction_id=payment.transaction_id,
        )


@dataclass(frozen=True)
class TransitionEffects:
    events: tuple[TrackingEventDraft, ...]
    payment: PaymentState | None
    payment_created: bool = False


@dataclass(frozen=True)
class TransitionStep:
    to_status: str
    at: datetime
    actual_delivery_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReplayResult:
    status: str
    events: tuple[TrackingEventDraft, ...]
    payment: PaymentState | None


def _new_payment(order: OrderSnapshot, *, at: datetime, config: ProjectionConfig) -> PaymentState:
    term_days = rules.parse_payment_term_days(
        order.supplier_payment_terms,
        default=config.default_payment_term_days,
    )
    return PaymentState(
        supplier_id=order.supplier_id,
        amount=order.total_amount,
        payment_method=rules.resolve_payment_method(
            order.supplier_payment_method,
            default=config.default_payment_method,
        ),
        status=PAYMENT_PENDING,
        due_date=at.date() + timedelta(days=term_days),
        invoice_number=f"FAC-{order.order_number}",
    )


def project_transition(
    *,
    order: OrderSnapshot,
    from_status: str,
    to_status: str,
    at: datetime,
    payment: PaymentState | None = None,
    actual_delivery_date: date | None = None,
    notes: str | None = None,
    config: ProjectionConfig | None = None,
) -> TransitionEffects:
    """Derive tracking events and the payment change for one validated transition."""
    cfg = config or ProjectionConfig.from_settings()
    current = rules.normalize_order_status(from_status)
    target = rules.validate_status_transition(current_status=current, next_status=to_status)
    number = order.order_number
    supplier = order.supplier_name or "proveedor"

    if target == rules.SUBMITTED:
        events = (
            TrackingEventDraft(
                status=EVENT_ORDER_CREATED,
                event_timestamp=at,
                description=f"Orden {number} creada y enviada a {supplier}",
                location=cfg.office_location,
                notes=notes,
            ),
        )
        return TransitionEffects(events=events, payment=payment)

    if target == rules.CONFIRMED:
        events = (
            TrackingEventDraft(
                status=EVENT_ORDER_CONFIRMED,
                event_timestamp=at,
                description=f"{supplier} confirmó la orden {number}",
                location=supplier,
                notes=notes,
            ),
        )
        if payment is not None:
            return TransitionEffects(events=events, payment=payment)
        return TransitionEffects(
            events=events,
            payment=_new_payment(order, at=at, config=cfg),
            payment_created=True,
        )

    if target == rules.SHIPPED:
        events = (
            TrackingEventDraft(
                status=EVENT_ORDER_SHIPPED,
                event_timestamp=at,
                description=f"Orden {number} despachada por {supplier}",
                location=supplier,
                notes=notes,
            ),
        )
        if payment is not None and payment.status == PAYMENT_PENDING:
            payment = replace(payment, status=PAYMENT_PROCESSING)
        return TransitionEffects(events=events, payment=payment)

    if target == rules.DELIVERED:
        delivered_on = rules.ensure_delivery_date(
            actual_delivery_date=actual_delivery_date,
            order_date=order.order_date,
        )
        events = (
            TrackingEventDraft(
                status=EVENT_IN_TRANSIT,
                event_timestamp=at,
                description=f"Orden {number} en camino a {cfg.receiving_location}",
                location="En ruta",
            ),
            TrackingEventDraft(
                status=EVENT_DELIVERED,
                event_timestamp=at,
                description=f"Orden {number} recibida el {delivered_on.isoformat()}",
                location=cfg.receiving_location,
            ),
            TrackingEventDraft(
                status=EVENT_ORDER_COMPLETED,
                event_timestamp=at,
                description=f"Orden {number} completada",
                location=cfg.receiving_location,
                notes=notes,
            ),
        )
        if payment is not None and payment.status in _OPEN_PAYMENT_STATUSES:
            payment = replace(
                payment,
                status=PAYMENT_COMPLETED,
                payment_date=delivered_on,
                transaction_id=f"TRX-{number}",
            )
        return TransitionEffects(events=events, payment=payment)

    # CANCELLED
    events = (
        TrackingEventDraft(
            status=EVENT_ORDER_CANCELLED,
            event_timestamp=at,
            description=f"Orden {number} cancelada (estado previo: {current})",
            location=cfg.office_location,
            notes=notes,
        ),
    )
    if payment is not None and payment.status in _OPEN_PAYMENT_STATUSES:
        payment = replace(payment, status=PAYMENT_CANCELLED)
    return TransitionEffects(events=events, payment=payment)


def replay_transitions(
    *,
    order: OrderSnapshot,
    steps: Iterable[TransitionStep],
    initial_status: str = rules.DRAFT,
    config: ProjectionConfig | None = None,
) -> ReplayResult:
    """Fold a transition sequence into the full event history and final payment."""
    cfg = config or ProjectionConfig.from_settings()
    status = rules.normalize_order_status(initial_status)
    events: list[TrackingEventDraft] = []
    payment: PaymentState | None = None

    for step in steps:
        effects = project_transition(
            order=order,
            from_status=status,
            to_status=step.to_status,
            at=step.at,
            payment=payment,
            actual_delivery_date=step.actual_delivery_date,
            notes=step.notes,
            config=cfg,
        )
        events.extend(effects.events)
        payment = effects.payment
        status = rules.normalize_order_status(step.to_status)

    return ReplayResult(status=status, events=tuple(events), payment=payment)
