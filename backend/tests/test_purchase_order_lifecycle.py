"""End-to-end lifecycle checks against a real SQLite database."""
from __future__ import annotations

import itertools
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from sigrap.domain_errors import (
    ConflictOptimisticLockError,
    InvalidTransitionError,
    NotFoundError,
    TransitionTimeoutError,
    ValidationFailureError,
)
from sigrap.models import AuditEvent, Payment, PurchaseOrder, PurchaseOrderItem, PurchaseOrderTrackingEvent, Supplier
from sigrap.schemas import PurchaseOrderCreate, PurchaseOrderItemCreate, PurchaseOrderItemUpdate, PurchaseOrderUpdate
from sigrap.services.concurrency import Deadline
from sigrap.services.order_projection import OrderSnapshot, PaymentState, project_transition
from sigrap.services.order_store import load_order, save_order_atomically
from sigrap.use_cases.order_transitions import transition_purchase_order_use_case
from sigrap.use_cases.payments import get_order_payment_use_case, get_payment_use_case, list_payments_use_case
from sigrap.use_cases.purchase_orders import (
    add_item_use_case,
    create_purchase_order_use_case,
    delete_purchase_order_use_case,
    list_purchase_orders_use_case,
    list_tracking_events_use_case,
    remove_item_use_case,
    update_item_use_case,
    update_purchase_order_use_case,
)

NOW = datetime(2025, 3, 11, 10, 0, tzinfo=timezone.utc)


def _create_order(db, subject, supplier, products, *, lines=((0, 100, "4000"), (1, 200, "500"))):
    data = PurchaseOrderCreate(
        supplier_id=supplier.id,
        order_date=date(2025, 3, 10),
        items=[
            PurchaseOrderItemCreate(product_id=products[index].id, quantity=quantity, unit_price=Decimal(price))
            for index, quantity, price in lines
        ],
    )
    return create_purchase_order_use_case(db=db, current_subject=subject, data=data)


def _transition(db, order_id, target, subject, **kwargs):
    kwargs.setdefault("now", NOW)
    return transition_purchase_order_use_case(
        db=db,
        order_id=order_id,
        target_status=target,
        current_subject=subject,
        **kwargs,
    )


def _stored_total(db, order_id) -> Decimal:
    items = db.query(PurchaseOrderItem).filter(PurchaseOrderItem.purchase_order_id == order_id).all()
    return sum((item.unit_price * item.quantity for item in items), Decimal("0"))


def _event_labels(db, order_id) -> list[str]:
    rows = db.query(PurchaseOrderTrackingEvent).filter(
        PurchaseOrderTrackingEvent.purchase_order_id == order_id,
    ).order_by(PurchaseOrderTrackingEvent.sequence).all()
    return [row.status for row in rows]


def test_new_order_is_draft_with_total_from_items(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)

    assert order.status == "DRAFT"
    assert order.total_amount == Decimal("500000")
    assert order.order_number.startswith("OC-20250310-")
    assert [item.line_number for item in order.items] == [1, 2]
    assert [item.total_price for item in order.items] == [Decimal("400000"), Decimal("100000")]
    assert db_session.query(AuditEvent).filter_by(action="purchase_order_created").count() == 1


def test_item_unit_price_defaults_to_product_cost(db_session, admin, supplier, products) -> None:
    data = PurchaseOrderCreate(
        supplier_id=supplier.id,
        order_date=date(2025, 3, 10),
        items=[PurchaseOrderItemCreate(product_id=products[1].id, quantity=3)],
    )

    order = create_purchase_order_use_case(db=db_session, current_subject=admin, data=data)

    assert order.items[0].unit_price == Decimal("9800.50")
    assert order.total_amount == Decimal("29401.50")


def test_total_tracks_every_item_change(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id

    order = add_item_use_case(
        db=db_session,
        order_id=order_id,
        current_subject=admin,
        data=PurchaseOrderItemCreate(product_id=products[0].id, quantity=7, unit_price=Decimal("0.10")),
    )
    assert order.total_amount == _stored_total(db_session, order_id) == Decimal("500000.70")

    added = order.items[-1]
    assert added.line_number == 3
    order = update_item_use_case(
        db=db_session,
        order_id=order_id,
        item_id=added.id,
        current_subject=admin,
        data=PurchaseOrderItemUpdate(quantity=3),
    )
    assert order.total_amount == _stored_total(db_session, order_id) == Decimal("500000.30")

    first = order.items[0]
    order = remove_item_use_case(db=db_session, order_id=order_id, item_id=first.id, current_subject=admin)
    assert order.total_amount == _stored_total(db_session, order_id) == Decimal("100000.30")
    assert len(order.items) == 2
    assert db_session.query(AuditEvent).filter_by(action="purchase_order_items_changed").count() == 3


def test_item_edits_bump_the_version(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    initial_version = order.version

    order = update_item_use_case(
        db=db_session,
        order_id=order_id,
        item_id=order.items[0].id,
        current_subject=admin,
        data=PurchaseOrderItemUpdate(unit_price=Decimal("3999.99")),
        expected_version=initial_version,
    )

    assert order.version == initial_version + 1
    with pytest.raises(ConflictOptimisticLockError):
        add_item_use_case(
            db=db_session,
            order_id=order_id,
            current_subject=admin,
            data=PurchaseOrderItemCreate(product_id=products[0].id, quantity=1),
            expected_version=initial_version,
        )


def test_header_update_validates_delivery_window(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)

    updated = update_purchase_order_use_case(
        db=db_session,
        order_id=order.id,
        current_subject=admin,
        data=PurchaseOrderUpdate(expected_delivery_date=date(2025, 3, 20), notes="Entregar en la mañana"),
    )
    assert updated.expected_delivery_date == date(2025, 3, 20)

    with pytest.raises(ValidationFailureError) as exc:
        update_purchase_order_use_case(
            db=db_session,
            order_id=order.id,
            current_subject=admin,
            data=PurchaseOrderUpdate(expected_delivery_date=date(2025, 3, 1)),
        )
    assert exc.value.details == {"field": "expected_delivery_date"}


def test_submit_then_confirm_creates_one_pending_payment(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    assert order.total_amount == Decimal("500000")

    _transition(db_session, order.id, "SUBMITTED", admin)
    _transition(db_session, order.id, "CONFIRMED", admin, supplier_acknowledged=True)

    payments = db_session.query(Payment).filter(Payment.purchase_order_id == order.id).all()
    assert len(payments) == 1
    assert payments[0].status == "PENDING"
    assert payments[0].amount == Decimal("500000")
    assert payments[0].due_date == date(2025, 4, 10)
    assert payments[0].invoice_number == f"FAC-{order.order_number}"
    assert _event_labels(db_session, order.id) == ["ORDEN CREADA", "ORDEN CONFIRMADA"]


def test_draft_cannot_jump_to_delivered(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id

    with pytest.raises(InvalidTransitionError):
        _transition(db_session, order_id, "DELIVERED", admin, actual_delivery_date=date(2025, 3, 12))

    db_session.expire_all()
    assert db_session.get(PurchaseOrder, order_id).status == "DRAFT"
    assert _event_labels(db_session, order_id) == []


@pytest.mark.parametrize(
    ("path", "target"),
    [
        ((), "CONFIRMED"),
        ((), "SHIPPED"),
        (("SUBMITTED",), "SHIPPED"),
        (("SUBMITTED",), "DRAFT"),
        (("SUBMITTED", "CONFIRMED"), "SUBMITTED"),
        (("SUBMITTED", "CONFIRMED"), "CONFIRMED"),
    ],
)
def test_out_of_table_transitions_keep_stored_status(db_session, admin, supplier, products, path, target) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    for step in path:
        _transition(db_session, order_id, step, admin, supplier_acknowledged=True)
    before = db_session.get(PurchaseOrder, order_id).status
    labels_before = _event_labels(db_session, order_id)

    with pytest.raises(InvalidTransitionError):
        _transition(db_session, order_id, target, admin, supplier_acknowledged=True)

    db_session.expire_all()
    assert db_session.get(PurchaseOrder, order_id).status == before
    assert _event_labels(db_session, order_id) == labels_before


def test_full_delivery_completes_payment_and_locks_order(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    short_item_id = order.items[1].id

    _transition(db_session, order_id, "SUBMITTED", admin)
    _transition(db_session, order_id, "CONFIRMED", admin, supplier_acknowledged=True)
    _transition(db_session, order_id, "SHIPPED", admin)
    assert db_session.query(Payment).filter_by(purchase_order_id=order_id).one().status == "PROCESSING"
    delivered = _transition(
        db_session,
        order_id,
        "DELIVERED",
        admin,
        actual_delivery_date=date(2025, 3, 14),
        received_quantities={short_item_id: 150},
    )

    assert delivered.status == "DELIVERED"
    assert [(item.received_quantity, item.status) for item in delivered.items] == [
        (100, "RECEIVED"),
        (150, "PARTIAL"),
    ]
    payment = db_session.query(Payment).filter_by(purchase_order_id=order_id).one()
    assert payment.status == "COMPLETED"
    assert payment.payment_date == date(2025, 3, 14)
    assert payment.transaction_id == f"TRX-{delivered.order_number}"
    assert _event_labels(db_session, order_id) == [
        "ORDEN CREADA",
        "ORDEN CONFIRMADA",
        "ORDEN ENVIADA",
        "EN TRÁNSITO",
        "ENTREGADO",
        "ORDEN COMPLETADA",
    ]
    events = list_tracking_events_use_case(db=db_session, order_id=order_id, current_subject=admin)
    assert [event.sequence for event in events] == [1, 2, 3, 4, 5, 6]

    for target in ("CANCELLED", "SHIPPED", "DELIVERED"):
        with pytest.raises(InvalidTransitionError):
            _transition(db_session, order_id, target, admin, actual_delivery_date=date(2025, 3, 15))
    with pytest.raises(ValidationFailureError) as locked:
        add_item_use_case(
            db=db_session,
            order_id=order_id,
            current_subject=admin,
            data=PurchaseOrderItemCreate(product_id=products[0].id, quantity=1),
        )
    assert locked.value.code == "ORDER_LOCKED"
    with pytest.raises(ValidationFailureError):
        remove_item_use_case(db=db_session, order_id=order_id, item_id=short_item_id, current_subject=admin)


def test_cancelled_order_is_locked_and_payment_cancelled(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    item_id = order.items[0].id
    _transition(db_session, order_id, "SUBMITTED", admin)
    _transition(db_session, order_id, "CONFIRMED", admin, supplier_acknowledged=True)

    _transition(db_session, order_id, "CANCELLED", admin, notes="Proveedor sin stock")

    assert db_session.query(Payment).filter_by(purchase_order_id=order_id).one().status == "CANCELLED"
    assert _event_labels(db_session, order_id)[-1] == "ORDEN CANCELADA"
    with pytest.raises(InvalidTransitionError):
        _transition(db_session, order_id, "SUBMITTED", admin)
    with pytest.raises(ValidationFailureError) as exc:
        update_item_use_case(
            db=db_session,
            order_id=order_id,
            item_id=item_id,
            current_subject=admin,
            data=PurchaseOrderItemUpdate(quantity=1),
        )
    assert exc.value.code == "ORDER_LOCKED"


def test_submitted_order_items_are_not_editable(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    _transition(db_session, order.id, "SUBMITTED", admin)

    with pytest.raises(ValidationFailureError) as exc:
        add_item_use_case(
            db=db_session,
            order_id=order.id,
            current_subject=admin,
            data=PurchaseOrderItemCreate(product_id=products[0].id, quantity=1),
        )

    assert exc.value.code == "ORDER_NOT_EDITABLE"


@pytest.mark.parametrize(("winner", "loser"), [("CONFIRMED", "CANCELLED"), ("CANCELLED", "CONFIRMED")])
def test_concurrent_transitions_exactly_one_wins(
    session_factory, db_session, admin, supplier, products, winner, loser
) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    _transition(db_session, order_id, "SUBMITTED", admin)

    first = session_factory()
    second = session_factory()
    try:
        # Both requests read the SUBMITTED order before either commits. The
        # identity map holds instances weakly, so keep both snapshots referenced.
        seen_by_first = load_order(first, order_id)
        seen_by_second = load_order(second, order_id)
        assert (seen_by_first.status, seen_by_second.status) == ("SUBMITTED", "SUBMITTED")
        assert seen_by_first.version == seen_by_second.version

        _transition(first, order_id, winner, admin, supplier_acknowledged=True)
        with pytest.raises(ConflictOptimisticLockError) as exc:
            _transition(second, order_id, loser, admin, supplier_acknowledged=True)

        assert exc.value.http_status == 409
        reloaded = load_order(second, order_id)
        assert reloaded is seen_by_second
        assert reloaded.status == winner
    finally:
        first.close()
        second.close()

    db_session.expire_all()
    assert db_session.get(PurchaseOrder, order_id).status == winner
    labels = _event_labels(db_session, order_id)
    assert labels[0] == "ORDEN CREADA"
    assert len(labels) == 2
    assert db_session.query(AuditEvent).filter_by(action="purchase_order_status_changed").count() == 2


def test_expired_deadline_rolls_back_every_side_effect(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    _transition(db_session, order_id, "SUBMITTED", admin)
    # Every clock read advances 10s past a 5s budget.
    deadline = Deadline(5, clock=itertools.count(0, 10).__next__)

    with pytest.raises(TransitionTimeoutError) as exc:
        _transition(db_session, order_id, "CONFIRMED", admin, supplier_acknowledged=True, deadline=deadline)

    assert exc.value.http_status == 504
    db_session.expire_all()
    assert db_session.get(PurchaseOrder, order_id).status == "SUBMITTED"
    assert db_session.query(Payment).filter_by(purchase_order_id=order_id).count() == 0
    assert _event_labels(db_session, order_id) == ["ORDEN CREADA"]


def test_save_order_atomically_persists_projected_effects(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    _transition(db_session, order_id, "SUBMITTED", admin)

    order = load_order(db_session, order_id)
    effects = project_transition(
        order=OrderSnapshot.from_order(order),
        from_status=order.status,
        to_status="CONFIRMED",
        at=NOW,
        payment=PaymentState.from_payment(order.payment),
    )
    order.status = "CONFIRMED"
    save_order_atomically(db_session, order, effects.events, effects.payment)

    db_session.expire_all()
    stored = load_order(db_session, order_id)
    assert stored.status == "CONFIRMED"
    assert stored.payment.amount == Decimal("500000")
    assert [event.sequence for event in stored.tracking_events] == [1, 2]


def test_only_draft_orders_can_be_deleted(db_session, admin, supplier, products) -> None:
    draft = _create_order(db_session, admin, supplier, products)
    submitted = _create_order(db_session, admin, supplier, products)
    draft_id = draft.id
    _transition(db_session, submitted.id, "SUBMITTED", admin)

    delete_purchase_order_use_case(db=db_session, order_id=draft_id, current_subject=admin)

    assert db_session.get(PurchaseOrder, draft_id) is None
    assert db_session.query(PurchaseOrderItem).filter_by(purchase_order_id=draft_id).count() == 0
    with pytest.raises(ValidationFailureError) as exc:
        delete_purchase_order_use_case(db=db_session, order_id=submitted.id, current_subject=admin)
    assert exc.value.code == "ORDER_NOT_EDITABLE"
    with pytest.raises(NotFoundError):
        delete_purchase_order_use_case(db=db_session, order_id=draft_id, current_subject=admin)


def test_list_filters_by_status(db_session, admin, supplier, products) -> None:
    draft = _create_order(db_session, admin, supplier, products)
    submitted = _create_order(db_session, admin, supplier, products)
    _transition(db_session, submitted.id, "SUBMITTED", admin)

    drafts = list_purchase_orders_use_case(db=db_session, current_subject=admin, status="draft")
    everything = list_purchase_orders_use_case(db=db_session, current_subject=admin, supplier_id=supplier.id)

    assert [order.id for order in drafts] == [draft.id]
    assert {order.id for order in everything} == {draft.id, submitted.id}


def test_employee_reads_payments_but_cannot_change_orders(db_session, admin, employee, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id

    with pytest.raises(NotFoundError) as missing:
        get_order_payment_use_case(db=db_session, order_id=order_id, current_subject=employee)
    assert missing.value.code == "PAYMENT_NOT_FOUND"

    _transition(db_session, order_id, "SUBMITTED", admin)
    _transition(db_session, order_id, "CONFIRMED", admin, supplier_acknowledged=True)

    payment = get_order_payment_use_case(db=db_session, order_id=order_id, current_subject=employee)
    assert get_payment_use_case(db=db_session, payment_id=payment.id, current_subject=employee) is payment
    assert [p.id for p in list_payments_use_case(db=db_session, current_subject=employee, status="pending")] == [
        payment.id
    ]
    assert list_payments_use_case(db=db_session, current_subject=employee, status="COMPLETED") == []


def test_supplier_payment_method_must_be_a_payment_method(db_session) -> None:
    db_session.add(Supplier(name="Importadora Sur", payment_method="TRANSFERENCIA", payment_terms="30 días"))

    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_late_clock_does_not_rewind_tracking_history(db_session, admin, supplier, products) -> None:
    order = _create_order(db_session, admin, supplier, products)
    order_id = order.id
    _transition(db_session, order_id, "SUBMITTED", admin)

    _transition(db_session, order_id, "CANCELLED", admin, now=datetime(2025, 3, 11, 9, 0, tzinfo=timezone.utc))

    db_session.expire_all()
    stamps = [event.event_timestamp.replace(tzinfo=None) for event in load_order(db_session, order_id).tracking_events]
    assert stamps == [NOW.replace(tzinfo=None), NOW.replace(tzinfo=None)]
