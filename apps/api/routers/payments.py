from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from database import get_db
from models import Customer, PaymentTransaction
from schemas import PaymentTransactionCreate, PaymentTransactionOut
from tenancy import get_tenant_id

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=list[PaymentTransactionOut])
def list_payments(
    reconciled: Optional[bool] = Query(None),
    status: Optional[str] = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    q = (
        db.query(PaymentTransaction)
        .options(joinedload(PaymentTransaction.customer))
        .filter(PaymentTransaction.tenant_id == tenant_id)
    )
    if reconciled is not None:
        q = q.filter(PaymentTransaction.is_reconciled == reconciled)
    if status:
        q = q.filter(PaymentTransaction.status == status)
    return q.order_by(PaymentTransaction.transaction_date.desc()).all()


@router.post("", response_model=PaymentTransactionOut, status_code=201)
def create_payment(
    body: PaymentTransactionCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    payment = PaymentTransaction(tenant_id=tenant_id, **body.model_dump(exclude={"customer"}))
    if body.customer:
        payment.customer = Customer(tenant_id=tenant_id, **body.customer.model_dump())
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment
