"""GET /v1/transactions/{id}/audit and ops queue endpoints"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from chargeback_engine.api.dependencies import get_delivery_worker
from chargeback_engine.api.v1.schemas import (
    AuditEntryResponse,
    AuditTrailResponse,
    OpsTaskResponse,
    RedeliveryResponse,
)
from chargeback_engine.infrastructure.database.repositories import (
    AuditRepository,
    OpsTaskRepository,
    OutboundActionRepository,
    TransactionRepository,
)
from chargeback_engine.infrastructure.database.session import get_db
from chargeback_engine.services.delivery import OutboundDeliveryWorker
from chargeback_engine.utils.date_utils import utc_now

router = APIRouter()


@router.get("/transactions/{transaction_id}/audit", response_model=AuditTrailResponse)
def get_audit_trail(transaction_id: UUID, db: Session = Depends(get_db)):
    """Full audit trail for a transaction, oldest first"""
    if TransactionRepository(db).get(transaction_id) is None:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")

    entries = AuditRepository(db).list_for_transaction(transaction_id)
    return AuditTrailResponse(
        transaction_id=transaction_id,
        entries=[AuditEntryResponse.model_validate(entry) for entry in entries],
    )


@router.get("/ops/tasks", response_model=List[OpsTaskResponse])
def list_ops_tasks(
    kind: Optional[str] = None,
    status: Optional[str] = "open",
    due: bool = Query(False, description="Only tasks whose due time has passed (scheduled rechecks)"),
    transaction_id: Optional[UUID] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    tasks = OpsTaskRepository(db).list_tasks(
        kind=kind,
        status=status,
        due_before=utc_now() if due else None,
        transaction_id=transaction_id,
        limit=limit,
    )
    return [OpsTaskResponse.model_validate(task) for task in tasks]


@router.post("/ops/outbound/redeliver", response_model=RedeliveryResponse)
def redeliver_outbound_actions(
    background_tasks: BackgroundTasks,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    """Re-drive pending and failed external actions"""
    action_ids = [action.id for action in OutboundActionRepository(db).undelivered(limit)]
    if action_ids:
        background_tasks.add_task(worker.deliver, action_ids)
    return RedeliveryResponse(scheduled=len(action_ids))
