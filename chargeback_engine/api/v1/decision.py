"""POST /v1/evaluate - chargeback decision endpoint, plus decision history and eligibility"""

import time
import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from chargeback_engine.api.dependencies import get_delivery_worker, get_request_id
from chargeback_engine.api.errors import to_http_exception
from chargeback_engine.api.v1.schemas import (
    DecisionHistoryResponse,
    DecisionResponse,
    EligibilityResponse,
    EvaluateRequest,
)
from chargeback_engine.domain.exceptions import DomainException
from chargeback_engine.domain.models import EvidenceItem
from chargeback_engine.infrastructure.database.models import DecisionRecord
from chargeback_engine.infrastructure.database.session import get_db
from chargeback_engine.infrastructure.observability.logging import log_decision
from chargeback_engine.infrastructure.observability.metrics import record_decision
from chargeback_engine.services.delivery import OutboundDeliveryWorker
from chargeback_engine.services.evaluation import EvaluationService

router = APIRouter()


def to_decision_response(row: DecisionRecord, replayed: bool = False) -> DecisionResponse:
    return DecisionResponse(
        decision_id=row.id,
        transaction_id=row.transaction_id,
        dispute_id=row.dispute_id,
        decision_kind=row.decision_kind,
        policy_code=row.policy_code,
        reason_summary=row.reason_summary,
        flags=row.flags,
        next_actions=row.next_actions,
        audit=row.audit,
        base_amount_usd=row.base_amount_usd,
        remaining_amount_usd=row.remaining_amount_usd,
        created_at=row.created_at,
        replayed=replayed,
    )


@router.post("/evaluate", response_model=DecisionResponse)
async def evaluate_dispute(
    request_body: EvaluateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    """
    Decide a chargeback for a disputed transaction.

    Flow:
    1. Validate transaction/dispute and evidence
    2. Return the stored decision when the inputs were already evaluated
    3. Otherwise evaluate the policy, persist, and apply local actions
    4. Deliver ledger and card-network calls after the response
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        service = EvaluationService(db)
        result = service.evaluate(
            request_body.transaction_id,
            request_body.dispute_id,
            [
                EvidenceItem(key=item.key, is_valid=item.is_valid, reason_if_invalid=item.reason_if_invalid)
                for item in request_body.evidence_items
            ],
        )
        response = to_decision_response(result.decision, replayed=result.replayed)

    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, request_id)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if result.outbound_action_ids:
        background_tasks.add_task(worker.deliver, result.outbound_action_ids)

    duration_ms = (time.time() - start_time) * 1000
    rule_id = response.policy_code.rsplit(":", 1)[-1]
    record_decision(response.decision_kind, rule_id, replayed=result.replayed)
    log_decision(
        request_id,
        str(request_body.transaction_id),
        response.decision_kind,
        response.policy_code,
        result.replayed,
        duration_ms,
    )
    return response


@router.get("/transactions/{transaction_id}/decisions", response_model=DecisionHistoryResponse)
def list_decisions(
    transaction_id: UUID,
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Decision history for a transaction, newest first"""
    try:
        rows = EvaluationService(db).list_decisions(transaction_id, limit)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request))
    return DecisionHistoryResponse(
        transaction_id=transaction_id,
        decisions=[to_decision_response(row) for row in rows],
    )


@router.get("/transactions/{transaction_id}/eligibility", response_model=EligibilityResponse)
def check_eligibility(transaction_id: UUID, request: Request, db: Session = Depends(get_db)):
    """Pre-screen a transaction before the customer opens a dispute"""
    try:
        result = EvaluationService(db).check_eligibility(transaction_id)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request))
    return EligibilityResponse(transaction_id=transaction_id, eligible=result.eligible, reasons=result.reasons)
