"""Payment endpoints (read-only)."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_subject
from ..database import get_db
from ..permissions import Subject
from ..schemas import PaymentOut
from ..use_cases.payments import get_payment_use_case, list_payments_use_case

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=list[PaymentOut])
def list_payments(
    supplier_id: Optional[UUID] = None,
    status: Optional[str] = None,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return list_payments_use_case(db=db, current_subject=current_subject, supplier_id=supplier_id, status=status)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: UUID,
    current_subject: Subject = Depends(get_current_subject),
    db: Session = Depends(get_db),
):
    return get_payment_use_case(db=db, payment_id=payment_id, current_subject=current_subject)
