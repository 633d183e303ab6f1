"""
Read side of reconciliation: review queue, discrepancies, CSV export.
"""
import csv
import io
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session, joinedload

from config import CURRENCY_SYMBOL
from models import (
    BankAccount, PaymentTransaction, ReconciliationRecord, ReconciliationStatus, UnmatchedBankTransaction
)
from schemas import ReconciliationDiscrepancy, ReconciliationMatch

REPORT_HEADER = [
    "Reconciliation ID", "Bank Transaction ID", "Payment Transaction ID", "Customer Name",
    "Expected Amount", "Actual Amount", "Difference", "Match Type", "Status", "Reconciled Date",
]
REPORT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_currency(amount: Decimal) -> str:
    """Decimal('1500') → 'K1,500.00'"""
    sign = "-" if amount < 0 else ""
    return f"{sign}{CURRENCY_SYMBOL}{abs(amount):,.2f}"


def _with_payment(db: Session, tenant_id: str):
    return (
        db.query(ReconciliationRecord)
        .options(joinedload(ReconciliationRecord.payment_transaction).joinedload(PaymentTransaction.customer))
        .filter(ReconciliationRecord.tenant_id == tenant_id)
    )


def get_pending_matches(db: Session, tenant_id: str) -> list[ReconciliationMatch]:
    records = (
        _with_payment(db, tenant_id)
        .filter(ReconciliationRecord.status == ReconciliationStatus.pending_approval.value)
        .all()
    )
    return [
        ReconciliationMatch(
            reconciliation_id=r.id,
            bank_transaction_id=r.bank_transaction_id,
            payment_transaction_id=r.payment_transaction_id,
            transaction_reference=r.payment_transaction.transaction_reference,
            customer_name=r.payment_transaction.customer_name,
            customer_email=r.payment_transaction.customer_email,
            payment_amount=r.payment_amount,
            bank_amount=r.bank_amount,
            difference=r.difference,
            match_type=r.match_type,
            match_score=r.match_score,
            transaction_date=r.payment_transaction.transaction_date,
            reconciled_at=r.reconciled_at,
        )
        for r in records
    ]


def get_discrepancies(db: Session, tenant_id: str) -> list[ReconciliationDiscrepancy]:
    records = (
        _with_payment(db, tenant_id)
        .filter(ReconciliationRecord.difference > 0)
        .order_by(ReconciliationRecord.difference.desc())
        .all()
    )
    result = []
    for r in records:
        pct = Decimal("0")
        if r.payment_amount:
            pct = r.difference / r.payment_amount * 100
        result.append(ReconciliationDiscrepancy(
            reconciliation_id=r.id,
            bank_transaction_id=r.bank_transaction_id,
            payment_transaction_id=r.payment_transaction_id,
            transaction_reference=r.payment_transaction.transaction_reference,
            customer_name=r.payment_transaction.customer_name,
            expected_amount=r.payment_amount,
            actual_amount=r.bank_amount,
            difference=r.difference,
            difference_percentage=pct,
            transaction_date=r.payment_transaction.transaction_date,
            status=r.status,
        ))
    return result


def generate_reconciliation_report(db: Session, tenant_id: str, start: datetime, end: datetime) -> bytes:
    records = (
        _with_payment(db, tenant_id)
        .filter(ReconciliationRecord.reconciled_at >= start, ReconciliationRecord.reconciled_at <= end)
        .order_by(ReconciliationRecord.reconciled_at)
        .all()
    )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(REPORT_HEADER)
    for r in records:
        writer.writerow([
            r.id, r.bank_transaction_id, r.payment_transaction_id,
            r.payment_transaction.customer_name,
            format_currency(r.payment_amount), format_currency(r.bank_amount), format_currency(r.difference),
            r.match_type, r.status, r.reconciled_at.strftime(REPORT_DATE_FORMAT),
        ])
    return output.getvalue().encode("utf-8")


def list_unmatched(db: Session, tenant_id: str) -> list[UnmatchedBankTransaction]:
    return (
        db.query(UnmatchedBankTransaction)
        .filter(UnmatchedBankTransaction.tenant_id == tenant_id)
        .order_by(UnmatchedBankTransaction.transaction_date)
        .all()
    )


def get_bank_accounts(db: Session, tenant_id: str) -> list[BankAccount]:
    return (
        db.query(BankAccount)
        .filter(BankAccount.tenant_id == tenant_id, BankAccount.is_active == True)  # noqa: E712
        .order_by(BankAccount.bank_name)
        .all()
    )
