"""
Reconciliation engine: statement import, auto-sweep and manual approval.

Every entry point commits once, after its loop. Each bank transaction is
written under its own savepoint, so a failure on one is rolled back, logged
and counted without aborting the batch.
"""
import logging
from typing import BinaryIO, Iterable, Optional

from sqlalchemy.orm import Session

from config import AUTO_APPROVE_SCORE, CANDIDATE_WINDOW_DAYS, SYSTEM_ACTOR
from matcher import (
    Conflict, Found, MatchResult, NotFound, Outcome,
    PaymentMatchCandidateSource, SqlPaymentCandidateSource, find_best_match,
)
from models import (
    ReconciliationRecord, ReconciliationStatus, UnmatchedBankTransaction, new_id, utcnow
)
from schemas import BankTransaction, AutoReconciliationResult, ReconciliationRecordOut, ReconciliationResult
from statement_parser import normalize_format, parse_statement

logger = logging.getLogger(__name__)


class ReconciliationService:
    def __init__(self, db: Session, candidates: Optional[PaymentMatchCandidateSource] = None):
        self.db = db
        self.candidates = candidates or SqlPaymentCandidateSource(db)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _find_match(self, tenant_id: str, bank_tx: BankTransaction, claimed: set[str]) -> Optional[MatchResult]:
        candidates = self.candidates.find_candidates(tenant_id, bank_tx.transaction_date, CANDIDATE_WINDOW_DAYS)
        # payments taken earlier in this batch are not committed yet
        return find_best_match(bank_tx, [c for c in candidates if c.id not in claimed])

    def _new_record(
        self,
        tenant_id: str,
        bank_tx: BankTransaction,
        match: MatchResult,
        status: ReconciliationStatus,
        actor: str,
    ) -> ReconciliationRecord:
        return ReconciliationRecord(
            id=new_id(),
            tenant_id=tenant_id,
            bank_transaction_id=bank_tx.transaction_id,
            payment_transaction_id=match.candidate.id,
            match_type=match.match_type,
            match_score=float(match.score),
            status=status.value,
            notes="",
            reconciled_by=actor,
            reconciled_at=utcnow(),
            bank_amount=bank_tx.amount,
            payment_amount=match.candidate.amount,
            difference=abs(bank_tx.amount - match.candidate.amount),
        )

    # ── Import ────────────────────────────────────────────────────────────────

    def reconcile_bank_statement(
        self,
        tenant_id: str,
        transactions: Iterable[BankTransaction],
        imported_by: str = SYSTEM_ACTOR,
    ) -> ReconciliationResult:
        transactions = list(transactions)
        matched = unmatched = 0
        created: list[ReconciliationRecord] = []
        claimed: set[str] = set()

        for bank_tx in transactions:
            try:
                match = self._find_match(tenant_id, bank_tx, claimed)
                with self.db.begin_nested():
                    if match:
                        record = self._new_record(
                            tenant_id, bank_tx, match, ReconciliationStatus.pending_approval, imported_by
                        )
                        self.db.add(record)
                    else:
                        self.db.add(UnmatchedBankTransaction(
                            id=new_id(),
                            tenant_id=tenant_id,
                            transaction_id=bank_tx.transaction_id,
                            transaction_date=bank_tx.transaction_date,
                            description=bank_tx.description,
                            amount=bank_tx.amount,
                            reference=bank_tx.reference,
                            account_number=bank_tx.account_number,
                            imported_at=utcnow(),
                            imported_by=imported_by,
                        ))
                    self.db.flush()
            except Exception:
                logger.exception(f"Error reconciling bank transaction {bank_tx.transaction_id}")
                unmatched += 1
                continue

            if match:
                claimed.add(match.candidate.id)
                created.append(record)
                matched += 1
            else:
                unmatched += 1

        self._commit()
        logger.info(
            f"Reconciliation completed for tenant {tenant_id}. "
            f"Matched: {matched}, Unmatched: {unmatched}"
        )
        return ReconciliationResult(
            total_transactions=len(transactions),
            matched_transactions=matched,
            unmatched_transactions=unmatched,
            records=[ReconciliationRecordOut.model_validate(r) for r in created],
        )

    def import_statement(
        self,
        data: bytes,
        fmt: str,
        tenant_id: str,
        imported_by: str = SYSTEM_ACTOR,
    ) -> ReconciliationResult:
        """Parse and reconcile in one go. ParseError propagates."""
        transactions = parse_statement(data, fmt)
        return self.reconcile_bank_statement(tenant_id, transactions, imported_by)

    def import_bank_statement_file(
        self,
        stream: BinaryIO,
        fmt: str,
        tenant_id: str,
        imported_by: str = SYSTEM_ACTOR,
    ) -> bool:
        """
        Background-job flavour of import_statement: an unknown format name is
        still raised, every other failure is logged and reported as False.
        """
        normalize_format(fmt)
        try:
            self.import_statement(stream.read(), fmt, tenant_id, imported_by)
            return True
        except Exception:
            logger.exception(f"Error importing bank statement file for tenant {tenant_id}")
            self.db.rollback()
            return False

    # ── Approval ──────────────────────────────────────────────────────────────

    def approve_match(
        self,
        reconciliation_id: str,
        approved: bool,
        notes: str = "",
        tenant_id: Optional[str] = None,
    ) -> Outcome:
        record = self.db.get(ReconciliationRecord, reconciliation_id)
        if record is None or (tenant_id is not None and record.tenant_id != tenant_id):
            return NotFound("Reconciliation record not found")
        if record.status != ReconciliationStatus.pending_approval.value:
            return Conflict(f"Reconciliation {reconciliation_id} is already {record.status}")

        now = utcnow()
        if approved:
            outcome = self.candidates.mark_reconciled(record.payment_transaction_id, record.id, now)
            if not isinstance(outcome, Found):
                self.db.rollback()
                logger.warning(f"Reconciliation {reconciliation_id} not approved: {outcome.message}")
                return outcome

        status = ReconciliationStatus.approved if approved else ReconciliationStatus.rejected
        record.status = status.value
        record.notes = notes or ""
        record.updated_at = now
        self._commit()

        logger.info(f"Reconciliation {reconciliation_id} {status.value}")
        return Found(record)

    def update_notes(self, reconciliation_id: str, notes: str, tenant_id: Optional[str] = None) -> Outcome:
        record = self.db.get(ReconciliationRecord, reconciliation_id)
        if record is None or (tenant_id is not None and record.tenant_id != tenant_id):
            return NotFound("Reconciliation record not found")
        record.notes = notes
        record.updated_at = utcnow()
        self._commit()
        return Found(record)

    # ── Auto-sweep ────────────────────────────────────────────────────────────

    def run_auto_reconciliation(self, tenant_id: str) -> AutoReconciliationResult:
        """
        Retry every unmatched bank transaction of the tenant. Matches scoring
        AUTO_APPROVE_SCORE or more are approved on the spot; weaker matches go
        to the manual review queue; rows that still match nothing stay put.
        """
        result = AutoReconciliationResult()
        claimed: set[str] = set()
        rows = (
            self.db.query(UnmatchedBankTransaction)
            .filter(UnmatchedBankTransaction.tenant_id == tenant_id)
            .all()
        )

        for row in rows:
            try:
                bank_tx = BankTransaction.model_validate(row, from_attributes=True)
                match = self._find_match(tenant_id, bank_tx, claimed)
                outcome: Outcome = Found(None)
                with self.db.begin_nested():
                    if match and match.score >= AUTO_APPROVE_SCORE:
                        record = self._new_record(
                            tenant_id, bank_tx, match, ReconciliationStatus.approved, SYSTEM_ACTOR
                        )
                        outcome = self.candidates.mark_reconciled(match.candidate.id, record.id, record.reconciled_at)
                        if isinstance(outcome, Found):
                            self.db.add(record)
                            self.db.delete(row)
                    elif match:
                        self.db.add(self._new_record(
                            tenant_id, bank_tx, match, ReconciliationStatus.pending_approval, SYSTEM_ACTOR
                        ))
                        self.db.delete(row)
                    self.db.flush()
            except Exception as e:
                logger.exception(f"Error auto-reconciling transaction {row.transaction_id}")
                result.errors.append(f"Error processing transaction {row.transaction_id}: {e}")
                continue

            if not isinstance(outcome, Found):
                logger.warning(f"Transaction {row.transaction_id} not auto-approved: {outcome.message}")
                result.errors.append(f"Error processing transaction {row.transaction_id}: {outcome.message}")
                continue
            if match:
                claimed.add(match.candidate.id)
                if match.score >= AUTO_APPROVE_SCORE:
                    result.auto_matched_transactions += 1
                else:
                    result.manual_review_required += 1
            result.processed_transactions += 1

        self._commit()
        logger.info(
            f"Auto-reconciliation completed for tenant {tenant_id}. "
            f"Processed: {result.processed_transactions}, "
            f"Auto-matched: {result.auto_matched_transactions}, "
            f"Manual review: {result.manual_review_required}"
        )
        return result
