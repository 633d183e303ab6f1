"""
Match scoring: rank a bank transaction against unreconciled payments.

Score components (weights sum to 1.0):
    amount       0.40  |payment - bank| < 0.01
    date         0.20  within 1 day, or 0.10 within 7 days
    reference    0.30  one reference contains the other
    description  0.10  bank description mentions payment / invoice / receipt

The best candidate must clear MIN_MATCH_SCORE. Selection is greedy per bank
transaction; callers keep track of payments they have already claimed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Protocol, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from config import MIN_MATCH_SCORE
from models import PaymentStatus, PaymentTransaction, ReconciliationRecord, ReconciliationStatus
from schemas import BankTransaction

logger = logging.getLogger(__name__)

AMOUNT_WEIGHT      = Decimal("0.40")
DATE_WEIGHT        = Decimal("0.20")
NEAR_DATE_WEIGHT   = Decimal("0.10")
REFERENCE_WEIGHT   = Decimal("0.30")
DESCRIPTION_WEIGHT = Decimal("0.10")

AMOUNT_TOLERANCE = Decimal("0.01")
_DESCRIPTION_KEYWORDS = ("payment", "invoice", "receipt")


# ── Outcomes ──────────────────────────────────────────────────────────────────

@dataclass
class Found:
    value: Any


@dataclass
class NotFound:
    message: str


@dataclass
class Conflict:
    message: str


Outcome = Union[Found, NotFound, Conflict]


# ── Candidates ────────────────────────────────────────────────────────────────

@dataclass
class PaymentCandidate:
    id: str
    amount: Decimal
    transaction_date: datetime
    reference: str = ""
    customer_name: str = ""
    customer_email: str = ""


@dataclass
class MatchResult:
    candidate: PaymentCandidate
    score: Decimal
    match_type: str


class PaymentMatchCandidateSource(Protocol):
    """What the reconciliation engine needs from the payments store."""

    def find_candidates(self, tenant_id: str, around: datetime, window_days: int) -> list[PaymentCandidate]:
        ...

    def mark_reconciled(self, payment_id: str, reconciliation_id: str, at: datetime) -> Outcome:
        ...


def date_window(around: datetime, days: int) -> tuple[datetime, datetime]:
    delta = timedelta(days=days)
    try:
        start = around - delta
    except OverflowError:
        start = datetime.min
    try:
        end = around + delta
    except OverflowError:
        end = datetime.max
    return start, end


class SqlPaymentCandidateSource:
    def __init__(self, db: Session):
        self.db = db

    def find_candidates(self, tenant_id: str, around: datetime, window_days: int) -> list[PaymentCandidate]:
        start, end = date_window(around, window_days)
        # A pending or approved record already claims its payment
        claimed = (
            select(ReconciliationRecord.payment_transaction_id)
            .where(ReconciliationRecord.status != ReconciliationStatus.rejected.value)
        )
        payments = (
            self.db.query(PaymentTransaction)
            .options(joinedload(PaymentTransaction.customer))
            .filter(
                PaymentTransaction.tenant_id == tenant_id,
                PaymentTransaction.status == PaymentStatus.completed.value,
                PaymentTransaction.is_reconciled == False,  # noqa: E712
                PaymentTransaction.transaction_date >= start,
                PaymentTransaction.transaction_date <= end,
                PaymentTransaction.id.not_in(claimed),
            )
            .all()
        )
        return [
            PaymentCandidate(
                id=p.id,
                amount=p.amount,
                transaction_date=p.transaction_date,
                reference=p.transaction_reference or "",
                customer_name=p.customer_name,
                customer_email=p.customer_email,
            )
            for p in payments
        ]

    def mark_reconciled(self, payment_id: str, reconciliation_id: str, at: datetime) -> Outcome:
        """Flip the reconciled flag only if nobody else has already done so."""
        result = self.db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == payment_id,
                PaymentTransaction.is_reconciled == False,  # noqa: E712
            )
            .values(is_reconciled=True, reconciled_at=at, reconciliation_id=reconciliation_id)
        )
        payment = self.db.get(PaymentTransaction, payment_id)
        if result.rowcount == 1:
            return Found(payment)
        if payment is None:
            return NotFound(f"Payment transaction {payment_id} not found")
        return Conflict(f"Payment transaction {payment_id} is already reconciled")


# ── Scoring ───────────────────────────────────────────────────────────────────

def _references_overlap(bank_ref: str, payment_ref: str) -> bool:
    a, b = (bank_ref or "").strip(), (payment_ref or "").strip()
    if not a or not b:
        return False
    return a in b or b in a


def score_candidate(bank_tx: BankTransaction, candidate: PaymentCandidate) -> tuple[Decimal, list[str]]:
    score = Decimal("0")
    tags: list[str] = []

    if abs(candidate.amount - bank_tx.amount) < AMOUNT_TOLERANCE:
        score += AMOUNT_WEIGHT
        tags.append("amount")

    days = abs((candidate.transaction_date - bank_tx.transaction_date).total_seconds()) / 86400
    if days <= 1:
        score += DATE_WEIGHT
        tags.append("date")
    elif days <= 7:
        score += NEAR_DATE_WEIGHT
        tags.append("date")

    if _references_overlap(bank_tx.reference, candidate.reference):
        score += REFERENCE_WEIGHT
        tags.append("reference")

    description = (bank_tx.description or "").lower()
    if any(k in description for k in _DESCRIPTION_KEYWORDS):
        score += DESCRIPTION_WEIGHT
        tags.append("description")

    return score, tags


def find_best_match(
    bank_tx: BankTransaction,
    candidates: Iterable[PaymentCandidate],
    min_score: Decimal = MIN_MATCH_SCORE,
) -> Optional[MatchResult]:
    best: Optional[MatchResult] = None
    best_score = Decimal("0")

    for candidate in candidates:
        score, tags = score_candidate(bank_tx, candidate)
        if score > best_score and score >= min_score:
            best_score = score
            best = MatchResult(candidate=candidate, score=score, match_type=";".join(tags))

    if best:
        logger.debug(f"Bank tx {bank_tx.transaction_id} → payment {best.candidate.id} ({best.match_type}, {best.score})")
    return best
