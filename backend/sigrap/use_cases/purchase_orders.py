"""Purchase order header and item use-cases (everything except status transitions)."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ..domain_errors import NotFoundError, ValidationFailureError
from ..models import Product, PurchaseOrder, PurchaseOrderItem, PurchaseOrderTrackingEvent, Supplier
from ..permissions import Action, Resource, Subject
from ..schemas import (
    PurchaseOrderCreate,
    PurchaseOrderItemCreate,
    PurchaseOrderItemUpdate,
    PurchaseOrderUpdate,
)
from ..security import require_entity, require_permission
from ..services.audit import record_audit_event
from ..services.concurrency import ensure_expected_version, order_transaction
from ..services.order_rules import (
    DRAFT,
    ITEM_PENDING,
    ensure_order_editable,
    normalize_order_status,
    recompute_order_total,
    validate_item_values,
)
from ..services.order_store import load_order

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _generate_order_number(order_date: date) -> str:
    return f"OC-{order_date:%Y%m%d}-{uuid4().hex[:6].upper()}"


def _get_supplier(db: Session, supplier_id: UUID) -> Supplier:
    return require_entity(
        db, Supplier, entity_id=supplier_id, code="SUPPLIER_NOT_FOUND", not_found="Supplier not found"
    )


def _get_product(db: Session, product_id: UUID) -> Product:
    return require_entity(
        db, Product, entity_id=product_id, code="PRODUCT_NOT_FOUND", not_found="Product not found"
    )


def _get_item(order: PurchaseOrder, item_id: UUID) -> PurchaseOrderItem:
    for item in order.items:
        if item.id == item_id:
            return item
    raise NotFoundError(
        "Purchase order item not found",
        code="PURCHASE_ORDER_ITEM_NOT_FOUND",
        details={"order_id": str(order.id), "item_id": str(item_id)},
    )


def _build_item(db: Session, data: PurchaseOrderItemCreate, *, line_number: int) -> PurchaseOrderItem:
    product = _get_product(db, data.product_id)
    unit_price = data.unit_price if data.unit_price is not None else product.cost_price
    quantity, price = validate_item_values(quantity=data.quantity, unit_price=unit_price)
    return PurchaseOrderItem(
        id=uuid4(),
        line_number=line_number,
        product_id=product.id,
        quantity=quantity,
        unit_price=price,
        received_quantity=0,
        status=ITEM_PENDING,
        notes=data.notes,
    )


def _ensure_delivery_window(*, order_date: date, expected_delivery_date: date | None) -> None:
    if expected_delivery_date is not None and expected_delivery_date < order_date:
        raise ValidationFailureError(
            "expected_delivery_date cannot be before the order date",
            field="expected_delivery_date",
        )


def _touch(order: PurchaseOrder) -> None:
    # Any header write bumps the version column, including item-only edits.
    order.updated_at = _now_utc()


def list_purchase_orders_use_case(
    *,
    db: Session,
    current_subject: Subject,
    supplier_id: UUID | None = None,
    status: str | None = None,
) -> list[PurchaseOrder]:
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.READ)
    query = db.query(PurchaseOrder)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        query = query.filter(PurchaseOrder.status == normalize_order_status(status))
    return query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.order_number.desc()).all()


def get_purchase_order_use_case(*, db: Session, order_id: UUID, current_subject: Subject) -> PurchaseOrder:
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.READ)
    return load_order(db, order_id)


def create_purchase_order_use_case(
    *,
    db: Session,
    current_subject: Subject,
    data: PurchaseOrderCreate,
    today: date | None = None,
) -> PurchaseOrder:
    """Create a DRAFT order with its items and a total computed from them."""
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.CREATE)

    order_date = data.order_date or today or date.today()
    _ensure_delivery_window(order_date=order_date, expected_delivery_date=data.expected_delivery_date)

    with order_transaction(db):
        supplier = _get_supplier(db, data.supplier_id)
        order = PurchaseOrder(
            id=uuid4(),
            order_number=_generate_order_number(order_date),
            supplier_id=supplier.id,
            order_date=order_date,
            expected_delivery_date=data.expected_delivery_date,
            status=DRAFT,
            notes=data.notes,
            created_by_id=current_subject.id,
        )
        order.supplier = supplier
        for index, item_data in enumerate(data.items, start=1):
            order.items.append(_build_item(db, item_data, line_number=index))
        recompute_order_total(order)
        db.add(order)

        record_audit_event(
            db,
            action="purchase_order_created",
            entity_type="purchase_order",
            entity_id=order.id,
            entity_name=order.order_number,
            subject=current_subject,
            details={"supplierId": str(supplier.id), "total": str(order.total_amount), "items": len(order.items)},
        )

    logger.info("purchase_order.created order=%s total=%s", order.order_number, order.total_amount)
    return order


def update_purchase_order_use_case(
    *,
    db: Session,
    order_id: UUID,
    current_subject: Subject,
    data: PurchaseOrderUpdate,
) -> PurchaseOrder:
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.UPDATE)

    with order_transaction(db):
        order = load_order(db, order_id)
        ensure_expected_version(current_version=order.version, expected_version=data.expected_version)
        ensure_order_editable(order.status)

        changes: dict[str, str | None] = {}
        if data.supplier_id is not None and data.supplier_id != order.supplier_id:
            supplier = _get_supplier(db, data.supplier_id)
            order.supplier_id = supplier.id
            order.supplier = supplier
            changes["supplierId"] = str(supplier.id)
        if data.expected_delivery_date is not None:
            _ensure_delivery_window(
                order_date=order.order_date,
                expected_delivery_date=data.expected_delivery_date,
            )
            order.expected_delivery_date = data.expected_delivery_date
            changes["expectedDeliveryDate"] = data.expected_delivery_date.isoformat()
        if data.notes is not None:
            order.notes = data.notes
            changes["notes"] = data.notes
        _touch(order)

        record_audit_event(
            db,
            action="purchase_order_updated",
            entity_type="purchase_order",
            entity_id=order.id,
            entity_name=order.order_number,
            subject=current_subject,
            details=changes,
        )
    return order


def delete_purchase_order_use_case(*, db: Session, order_id: UUID, current_subject: Subject) -> None:
    """Delete a DRAFT order; items go with it."""
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.DELETE)

    with order_transaction(db):
        order = load_order(db, order_id)
        ensure_order_editable(order.status)
        record_audit_event(
            db,
            action="purchase_order_deleted",
            entity_type="purchase_order",
            entity_id=order.id,
            entity_name=order.order_number,
            subject=current_subject,
        )
        db.delete(order)


def _items_changed(
    db: Session,
    *,
    order: PurchaseOrder,
    current_subject: Subject,
    change: str,
    item: PurchaseOrderItem,
) -> None:
    recompute_order_total(order)
    _touch(order)
    record_audit_event(
        db,
        action="purchase_order_items_changed",
        entity_type="purchase_order",
        entity_id=order.id,
        entity_name=order.order_number,
        subject=current_subject,
        details={"change": change, "itemId": str(item.id), "total": str(order.total_amount)},
    )


def add_item_use_case(
    *,
    db: Session,
    order_id: UUID,
    current_subject: Subject,
    data: PurchaseOrderItemCreate,
    expected_version: int | None = None,
) -> PurchaseOrder:
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.UPDATE)

    with order_transaction(db):
        order = load_order(db, order_id)
        ensure_expected_version(current_version=order.version, expected_version=expected_version)
        ensure_order_editable(order.status)
        next_line = max((item.line_number for item in order.items), default=0) + 1
        item = _build_item(db, data, line_number=next_line)
        order.items.append(item)
        _items_changed(db, order=order, current_subject=current_subject, change="added", item=item)
    return order


def update_item_use_case(
    *,
    db: Session,
    order_id: UUID,
    item_id: UUID,
    current_subject: Subject,
    data: PurchaseOrderItemUpdate,
    expected_version: int | None = None,
) -> PurchaseOrder:
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.UPDATE)

    with order_transaction(db):
        order = load_order(db, order_id)
        ensure_expected_version(current_version=order.version, expected_version=expected_version)
        ensure_order_editable(order.status)
        item = _get_item(order, item_id)

        quantity = data.quantity if data.quantity is not None else item.quantity
        unit_price = data.unit_price if data.unit_price is not None else item.unit_price
        item.quantity, item.unit_price = validate_item_values(quantity=quantity, unit_price=unit_price)
        if data.notes is not None:
            item.notes = data.notes
        _items_changed(db, order=order, current_subject=current_subject, change="updated", item=item)
    return order


def remove_item_use_case(
    *,
    db: Session,
    order_id: UUID,
    item_id: UUID,
    current_subject: Subject,
    expected_version: int | None = None,
) -> PurchaseOrder:
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.UPDATE)

    with order_transaction(db):
        order = load_order(db, order_id)
        ensure_expected_version(current_version=order.version, expected_version=expected_version)
        ensure_order_editable(order.status)
        item = _get_item(order, item_id)
        order.items.remove(item)
        _items_changed(db, order=order, current_subject=current_subject, change="removed", item=item)
    return order


def list_tracking_events_use_case(
    *,
    db: Session,
    order_id: UUID,
    current_subject: Subject,
) -> list[PurchaseOrderTrackingEvent]:
    require_permission(current_subject, Resource.PURCHASE_ORDER, Action.READ)
    load_order(db, order_id)
    return db.query(PurchaseOrderTrackingEvent).filter(
        PurchaseOrderTrackingEvent.purchase_order_id == order_id,
    ).order_by(PurchaseOrderTrackingEvent.sequence).all()
