from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, field_validator

from config import SYSTEM_ACTOR


# ── Bank transactions (imported, not persisted as-is) ─────────────────────────

def _to_naive_utc(v: datetime) -> datetime:
    # stored timestamps are naive UTC
    if v.tzinfo is not None:
        v = v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class BankTransaction(BaseModel):
    transaction_id: str = ""
    transaction_date: datetime
    description: str = ""
    amount: Decimal = Decimal("0")
    reference: str = ""
    account_number: str = ""

    naive_date = field_validator("transaction_date")(_to_naive_utc)


class StatementImportRequest(BaseModel):
    transactions: list[BankTransaction]
    imported_by: str = SYSTEM_ACTOR


class UnmatchedBankTransactionOut(BaseModel):
    id: str
    transaction_id: str
    transaction_date: datetime
    description: str
    amount: Decimal
    reference: str
    account_number: str
    imported_at: datetime
    imported_by: str

    model_config = {"from_attributes": True}


# ── Reconciliation ────────────────────────────────────────────────────────────

class ReconciliationRecordOut(BaseModel):
    id: str
    bank_transaction_id: str
    payment_transaction_id: str
    match_type: str
    match_score: float
    status: str
    notes: str
    reconciled_by: str
    reconciled_at: datetime
    updated_at: Optional[datetime]
    bank_amount: Decimal
    payment_amount: Decimal
    difference: Decimal

    model_config = {"from_attributes": True}


class ReconciliationResult(BaseModel):
    total_transactions: int
    matched_transactions: int
    unmatched_transactions: int
    records: list[ReconciliationRecordOut]


class ReconciliationMatch(BaseModel):
    reconciliation_id: str
    bank_transaction_id: str
    payment_transaction_id: str
    transaction_reference: str
    customer_name: str
    customer_email: str
    payment_amount: Decimal
    bank_amount: Decimal
    difference: Decimal
    match_type: str
    match_score: float
    transaction_date: datetime
    reconciled_at: datetime


class ReconciliationDiscrepancy(BaseModel):
    reconciliation_id: str
    bank_transaction_id: str
    payment_transaction_id: str
    transaction_reference: str
    customer_name: str
    expected_amount: Decimal
    actual_amount: Decimal
    difference: Decimal
    difference_percentage: Decimal
    transaction_date: datetime
    status: str


class MatchApprovalRequest(BaseModel):
    approved: bool
    notes: str = ""


class NotesUpdate(BaseModel):
    notes: str


class MatchApprovalResult(BaseModel):
    success: bool
    message: str
    record: Optional[ReconciliationRecordOut] = None


class AutoReconciliationResult(BaseModel):
    processed_transactions: int = 0
    auto_matched_transactions: int = 0
    manual_review_required: int = 0
    errors: list[str] = []


# ── Payments (collaborator data) ──────────────────────────────────────────────

class CustomerIn(BaseModel):
    first_name: str
    last_name: str = ""
    email: Optional[str] = None


class PaymentTransactionCreate(BaseModel):
    amount: Decimal
    transaction_date: datetime
    transaction_reference: str = ""
    currency: str = "ZMW"
    payment_method: str = ""
    status: str = "completed"
    customer: Optional[CustomerIn] = None

    naive_date = field_validator("transaction_date")(_to_naive_utc)


class PaymentTransactionOut(BaseModel):
    id: str
    amount: Decimal
    currency: str
    payment_method: str
    status: str
    transaction_date: datetime
    transaction_reference: str
    customer_name: str
    is_reconciled: bool
    reconciled_at: Optional[datetime]
    reconciliation_id: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
