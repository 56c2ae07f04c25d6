"""Representment workflow endpoints: merchant events, bank adjudication, customer rebuttal"""

import logging
from typing import Callable, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from chargeback_engine.api.dependencies import (
    get_actor,
    get_delivery_worker,
    get_evidence_assessor,
    get_request_id,
)
from chargeback_engine.api.errors import to_http_exception
from chargeback_engine.api.v1.schemas import (
    AssessmentSchema,
    CustomerEvidenceRequest,
    MerchantResponseRequest,
    PrearbitrationOutcomeRequest,
    RepresentmentResponse,
    TransitionRequest,
)
from chargeback_engine.domain.exceptions import DomainException
from chargeback_engine.domain.models import Actor, MerchantResponse
from chargeback_engine.domain.rebuttal import EvidenceAssessor
from chargeback_engine.infrastructure.database.session import get_db
from chargeback_engine.services.delivery import OutboundDeliveryWorker
from chargeback_engine.services.representment import RepresentmentService, TransitionResult

router = APIRouter()


def to_representment_response(result: TransitionResult) -> RepresentmentResponse:
    record, tx = result.record, result.transaction
    assessment = None
    if result.assessment is not None:
        assessment = AssessmentSchema(
            sufficient=result.assessment.sufficient,
            criteria_met=result.assessment.criteria_met,
            summary=result.assessment.summary,
        )
    return RepresentmentResponse(
        transaction_id=record.transaction_id,
        status=record.status,
        dispute_status=tx.dispute_status,
        needs_attention=tx.needs_attention,
        merchant_reason_code=record.merchant_reason_code,
        merchant_reason_text=record.merchant_reason_text,
        merchant_document_ref=record.merchant_document_ref,
        temporary_credit_provided=tx.temporary_credit_provided,
        temporary_credit_reversal_at=tx.temporary_credit_reversal_at,
        prearbitration_filed_at=record.prearbitration_filed_at,
        assessment=assessment,
    )


def _run_transition(
    operation: Callable[[RepresentmentService], TransitionResult],
    db: Session,
    request: Request,
    background_tasks: BackgroundTasks,
    worker: OutboundDeliveryWorker,
    assessor: Optional[EvidenceAssessor] = None,
) -> RepresentmentResponse:
    request_id = get_request_id(request)
    try:
        result = operation(RepresentmentService(db, assessor=assessor))
        response = to_representment_response(result)

    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, request_id)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if result.outbound_action_ids:
        background_tasks.add_task(worker.deliver, result.outbound_action_ids)
    return response


@router.get("/representments/{transaction_id}", response_model=RepresentmentResponse)
def get_representment(transaction_id: UUID, request: Request, db: Session = Depends(get_db)):
    try:
        service = RepresentmentService(db)
        record = service.get(transaction_id)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request))
    return to_representment_response(TransitionResult(record=record, transaction=record.transaction))


@router.post("/representments/{transaction_id}/merchant-response", response_model=RepresentmentResponse)
def receive_merchant_response(
    transaction_id: UUID,
    body: MerchantResponseRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    """Ingest the merchant's contest or acceptance of a filed chargeback"""
    response = MerchantResponse(
        contested=body.contested,
        reason_code=body.reason_code,
        reason_text=body.reason_text,
        document_ref=body.document_ref,
        source=body.source,
    )
    return _run_transition(
        lambda service: service.receive_merchant_response(transaction_id, response),
        db, request, background_tasks, worker,
    )


@router.post("/representments/{transaction_id}/accept", response_model=RepresentmentResponse)
def accept_representment(
    transaction_id: UUID,
    body: TransitionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    """Bank accepts the merchant's representment; temporary credit is reversed"""
    return _run_transition(
        lambda service: service.accept(transaction_id, actor, body.notes),
        db, request, background_tasks, worker,
    )


@router.post("/representments/{transaction_id}/reject", response_model=RepresentmentResponse)
def reject_representment(
    transaction_id: UUID,
    body: TransitionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    """Bank rejects the merchant's representment; the customer keeps the credit"""
    return _run_transition(
        lambda service: service.reject(transaction_id, actor, body.notes),
        db, request, background_tasks, worker,
    )


@router.post("/representments/{transaction_id}/request-customer-info", response_model=RepresentmentResponse)
def request_customer_info(
    transaction_id: UUID,
    body: TransitionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    return _run_transition(
        lambda service: service.request_customer_info(transaction_id, actor, body.notes),
        db, request, background_tasks, worker,
    )


@router.post("/representments/{transaction_id}/customer-evidence", response_model=RepresentmentResponse)
def submit_customer_evidence(
    transaction_id: UUID,
    body: CustomerEvidenceRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
    assessor: EvidenceAssessor = Depends(get_evidence_assessor),
):
    """Customer rebuttal; the response carries the advisory assessment"""
    files = [file.model_dump() for file in body.files]
    return _run_transition(
        lambda service: service.submit_customer_evidence(transaction_id, actor, body.note, files),
        db, request, background_tasks, worker, assessor,
    )


@router.post("/representments/{transaction_id}/prearbitration", response_model=RepresentmentResponse)
def proceed_to_prearbitration(
    transaction_id: UUID,
    body: TransitionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    return _run_transition(
        lambda service: service.proceed_to_prearbitration(transaction_id, actor, body.notes),
        db, request, background_tasks, worker,
    )


@router.post("/representments/{transaction_id}/close", response_model=RepresentmentResponse)
def close_after_customer_evidence(
    transaction_id: UUID,
    body: TransitionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    """Close in the merchant's favour after reviewing customer evidence"""
    return _run_transition(
        lambda service: service.close_after_customer_evidence(transaction_id, actor, body.notes),
        db, request, background_tasks, worker,
    )


@router.post("/representments/{transaction_id}/prearbitration-outcome", response_model=RepresentmentResponse)
def record_prearbitration_outcome(
    transaction_id: UUID,
    body: PrearbitrationOutcomeRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    worker: OutboundDeliveryWorker = Depends(get_delivery_worker),
):
    return _run_transition(
        lambda service: service.record_prearbitration_outcome(transaction_id, actor, body.outcome, body.notes),
        db, request, background_tasks, worker,
    )
