"""Purchase order endpoints."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..auth import get_current_subject
from ..database import get_db
from ..permissions import Subject
from ..schemas import (
    PaymentOut,
    PurchaseOrderCreate,
    PurchaseOrderItemCreate,
    PurchaseOrderItemUpdate,
    PurchaseOrderOut,
    PurchaseOrderUpdate,
    TrackingEventOut,
    TransitionRequest,
)
from ..use_cases.order_transitions import transition_purchase_order_use_case
from ..use_cases.payments import get_order_payment_use_case
from ..use_cases.purchase_orders import (
    add_item_use_case,
    create_purchase_order_use_case,
    delete_purchase_order_use_case,
    get_purchase_order_use_case,
    list_purchase_orders_use_case,
    list_tracking_events_use_case,
    remove_item_use_case,
    update_item_use_case,
    update_purchase_order_use_case,
)

router = APIRouter(prefix="/purchase-orders", tags=["purchase-orders"])


@router.get("", response_model=list[PurchaseOrderOut])
def list_purchase_orders(
    supplier_id: Optional[UUID] = None,
    status: Optional[str] = None,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return list_purchase_orders_use_case(
        db=db,
        current_subject=current_subject,
        supplier_id=supplier_id,
        status=status,
    )


@router.get("/{order_id}", response_model=PurchaseOrderOut)
def get_purchase_order(
    order_id: UUID,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return get_purchase_order_use_case(db=db, order_id=order_id, current_subject=current_subject)


@router.post("", response_model=PurchaseOrderOut, status_code=201)
def create_purchase_order(
    data: PurchaseOrderCreate,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    """Create a DRAFT purchase order."""
    return create_purchase_order_use_case(db=db, current_subject=current_subject, data=data)


@router.patch("/{order_id}", response_model=PurchaseOrderOut)
def update_purchase_order(
    order_id: UUID,
    data: PurchaseOrderUpdate,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return update_purchase_order_use_case(db=db, order_id=order_id, current_subject=current_subject, data=data)


@router.delete("/{order_id}", status_code=204)
def delete_purchase_order(
    order_id: UUID,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    delete_purchase_order_use_case(db=db, order_id=order_id, current_subject=current_subject)
    return Response(status_code=204)


@router.post("/{order_id}/items", response_model=PurchaseOrderOut, status_code=201)
def add_item(
    order_id: UUID,
    data: PurchaseOrderItemCreate,
    expected_version: Optional[int] = Query(default=None),
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return add_item_use_case(
        db=db,
        order_id=order_id,
        current_subject=current_subject,
        data=data,
        expected_version=expected_version,
    )


@router.patch("/{order_id}/items/{item_id}", response_model=PurchaseOrderOut)
def update_item(
    order_id: UUID,
    item_id: UUID,
    data: PurchaseOrderItemUpdate,
    expected_version: Optional[int] = Query(default=None),
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return update_item_use_case(
        db=db,
        order_id=order_id,
        item_id=item_id,
        current_subject=current_subject,
        data=data,
        expected_version=expected_version,
    )


@router.delete("/{order_id}/items/{item_id}", response_model=PurchaseOrderOut)
def remove_item(
    order_id: UUID,
    item_id: UUID,
    expected_version: Optional[int] = Query(default=None),
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return remove_item_use_case(
        db=db,
        order_id=order_id,
        item_id=item_id,
        current_subject=current_subject,
        expected_version=expected_version,
    )


@router.post("/{order_id}/transition", response_model=PurchaseOrderOut)
def transition_purchase_order(
    order_id: UUID,
    data: TransitionRequest,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    """Move the order to `target_status`, emitting tracking events and payment changes."""
    return transition_purchase_order_use_case(
        db=db,
        order_id=order_id,
        target_status=data.target_status,
        current_subject=current_subject,
        actual_delivery_date=data.actual_delivery_date,
        expected_version=data.expected_version,
        supplier_acknowledged=data.supplier_acknowledged,
        received_quantities=data.received_quantities,
        notes=data.notes,
    )


@router.get("/{order_id}/tracking-events", response_model=list[TrackingEventOut])
def list_tracking_events(
    order_id: UUID,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return list_tracking_events_use_case(db=db, order_id=order_id, current_subject=current_subject)


@router.get("/{order_id}/payment", response_model=PaymentOut)
def get_order_payment(
    order_id: UUID,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return get_order_payment_use_case(db=db, order_id=order_id, current_subject=current_subject)
