"""
Reconciliation endpoints: statement import, auto-sweep, review queue, export
"""
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from config import SYSTEM_ACTOR
from database import get_db
from matcher import Conflict, NotFound
from reconciliation_reports import (
    generate_reconciliation_report, get_discrepancies, get_pending_matches, list_unmatched
)
from reconciliation_service import ReconciliationService
from schemas import (
    AutoReconciliationResult, MatchApprovalRequest, MatchApprovalResult, NotesUpdate,
    ReconciliationDiscrepancy, ReconciliationMatch, ReconciliationRecordOut, ReconciliationResult,
    StatementImportRequest, UnmatchedBankTransactionOut,
)
from statement_parser import ParseError
from tenancy import get_tenant_id

router = APIRouter(prefix="/reconcile", tags=["reconciliation"])


def get_service(db: Session = Depends(get_db)) -> ReconciliationService:
    return ReconciliationService(db)


def _raise_for(outcome):
    if isinstance(outcome, NotFound):
        raise HTTPException(404, outcome.message)
    if isinstance(outcome, Conflict):
        raise HTTPException(409, outcome.message)


@router.post("/statements", response_model=ReconciliationResult)
def reconcile_statement(
    body: StatementImportRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: ReconciliationService = Depends(get_service),
):
    return service.reconcile_bank_statement(tenant_id, body.transactions, body.imported_by)


@router.post("/import", response_model=ReconciliationResult)
async def import_statement_file(
    file: UploadFile = File(...),
    format: str = Form("csv"),
    imported_by: str = Form(SYSTEM_ACTOR),
    tenant_id: str = Depends(get_tenant_id),
    service: ReconciliationService = Depends(get_service),
):
    contents = await file.read()
    try:
        return service.import_statement(contents, format, tenant_id, imported_by)
    except ParseError as e:
        raise HTTPException(422, str(e))


@router.post("/auto", response_model=AutoReconciliationResult)
def auto_reconcile(
    tenant_id: str = Depends(get_tenant_id),
    service: ReconciliationService = Depends(get_service),
):
    return service.run_auto_reconciliation(tenant_id)


@router.get("/pending", response_model=list[ReconciliationMatch])
def pending_matches(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return get_pending_matches(db, tenant_id)


@router.get("/unmatched", response_model=list[UnmatchedBankTransactionOut])
def unmatched_transactions(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return list_unmatched(db, tenant_id)


@router.get("/discrepancies", response_model=list[ReconciliationDiscrepancy])
def discrepancies(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return get_discrepancies(db, tenant_id)


@router.post("/{reconciliation_id}/approve", response_model=MatchApprovalResult)
def approve_match(
    reconciliation_id: str,
    body: MatchApprovalRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: ReconciliationService = Depends(get_service),
):
    outcome = service.approve_match(reconciliation_id, body.approved, body.notes, tenant_id=tenant_id)
    _raise_for(outcome)
    verb = "approved" if body.approved else "rejected"
    return MatchApprovalResult(
        success=True,
        message=f"Reconciliation {verb} successfully",
        record=ReconciliationRecordOut.model_validate(outcome.value),
    )


@router.patch("/{reconciliation_id}/notes", response_model=ReconciliationRecordOut)
def update_notes(
    reconciliation_id: str,
    body: NotesUpdate,
    tenant_id: str = Depends(get_tenant_id),
    service: ReconciliationService = Depends(get_service),
):
    outcome = service.update_notes(reconciliation_id, body.notes, tenant_id=tenant_id)
    _raise_for(outcome)
    return outcome.value


@router.get("/report")
def export_report(
    start_date: date = Query(...),
    end_date: date = Query(...),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    if end_date < start_date:
        raise HTTPException(400, "end_date is before start_date")
    content = generate_reconciliation_report(
        db, tenant_id, datetime.combine(start_date, time.min), datetime.combine(end_date, time.max)
    )
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=reconciliation-{start_date}-{end_date}.csv"},
    )
