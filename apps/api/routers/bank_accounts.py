"""
Bank account reference data: the tenant's receiving accounts, shown next to
reconciliation results.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from database import get_db
from models import BankAccount
from reconciliation_reports import get_bank_accounts
from tenancy import get_tenant_id

router = APIRouter(prefix="/bank-accounts", tags=["bank-accounts"])


class BankAccountCreate(BaseModel):
    bank_name: str
    account_name: str = ""
    account_number: Optional[str] = None
    branch_code: str = ""
    routing_number: str = ""
    swift_code: str = ""
    currency: str = "ZMW"


class BankAccountOut(BaseModel):
    id: str
    bank_name: str
    account_name: str
    account_number: Optional[str]
    branch_code: str
    routing_number: str
    swift_code: str
    currency: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


@router.get("", response_model=list[BankAccountOut])
def list_bank_accounts(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return get_bank_accounts(db, tenant_id)


@router.post("", response_model=BankAccountOut, status_code=201)
def create_bank_account(
    body: BankAccountCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    # Prevent exact duplicates (same name + number) within a tenant
    existing = (
        db.query(BankAccount)
        .filter(
            BankAccount.tenant_id == tenant_id,
            BankAccount.bank_name == body.bank_name,
            BankAccount.account_number == body.account_number,
        )
        .first()
    )
    if existing:
        raise HTTPException(400, "A bank account with this name and number already exists")
    account = BankAccount(tenant_id=tenant_id, **body.model_dump())
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@router.delete("/{account_id}", status_code=204)
def delete_bank_account(
    account_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    account = db.get(BankAccount, account_id)
    if not account or account.tenant_id != tenant_id:
        raise HTTPException(404, "Bank account not found")
    db.delete(account)
    db.commit()
