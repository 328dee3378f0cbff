"""Read-side payment use-cases; payments are written only by order transitions."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import NotFoundError
from ..models import Payment
from ..permissions import Action, Resource, Subject
from ..security import require_entity, require_permission
from ..services.order_store import load_order


def list_payments_use_case(
    *,
    db: Session,
    current_subject: Subject,
    supplier_id: UUID | None = None,
    status: str | None = None,
) -> list[Payment]:
    require_permission(current_subject, Resource.PAYMENT, Action.READ)
    query = db.query(Payment)
    if supplier_id is not None:
        query = query.filter(Payment.supplier_id == supplier_id)
    if status:
        query = query.filter(Payment.status == status.strip().upper())
    return query.order_by(Payment.due_date).all()


def get_payment_use_case(*, db: Session, payment_id: UUID, current_subject: Subject) -> Payment:
    require_permission(current_subject, Resource.PAYMENT, Action.READ)
    return require_entity(db, Payment, entity_id=payment_id, code="PAYMENT_NOT_FOUND", not_found="Payment not found")


def get_order_payment_use_case(*, db: Session, order_id: UUID, current_subject: Subject) -> Payment:
    require_permission(current_subject, Resource.PAYMENT, Action.READ)
    order = load_order(db, order_id)
    if order.payment is None:
        raise NotFoundError(
            "Purchase order has no payment yet",
            code="PAYMENT_NOT_FOUND",
            details={"order_id": str(order_id), "status": order.status},
        )
    return order.payment
