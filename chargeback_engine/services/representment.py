"""Representment workflow: merchant response, bank adjudication, customer rebuttal, pre-arbitration"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chargeback_engine.domain.exceptions import (
    AuthorizationError,
    ConcurrentTransitionError,
    InvalidTransitionError,
    PersistenceError,
    RepresentmentNotFoundError,
    TransactionNotFoundError,
)
from chargeback_engine.domain.models import (
    Actor,
    AuditAction,
    DisputeStatus,
    EvidenceAssessment,
    MerchantResponse,
    OpsTaskKind,
    RepresentmentStatus,
)
from chargeback_engine.domain.network import resolve_card_network
from chargeback_engine.domain.rebuttal import EvidenceAssessor, default_assessor
from chargeback_engine.domain.representment import RepresentmentEvent, plan_transition
from chargeback_engine.infrastructure.database.models import RepresentmentRecord, TransactionRecord
from chargeback_engine.infrastructure.database.repositories import (
    AuditRepository,
    CustomerEvidenceRepository,
    DisputeRepository,
    OpsTaskRepository,
    RepresentmentRepository,
    TransactionRepository,
    to_domain_transaction,
)
from chargeback_engine.infrastructure.observability.logging import log_transition
from chargeback_engine.infrastructure.observability.metrics import record_transition, rejected_transition_counter
from chargeback_engine.services.dispatcher import ActionDispatcher
from chargeback_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor(actor_id=None, role="system")

E = RepresentmentEvent

AUDIT_ACTIONS: Dict[RepresentmentEvent, AuditAction] = {
    E.MERCHANT_CONTESTED: AuditAction.MERCHANT_CONTESTED,
    E.MERCHANT_ACCEPTED: AuditAction.MERCHANT_ACCEPTED,
    E.ACCEPT: AuditAction.ACCEPT,
    E.REJECT: AuditAction.REJECT,
    E.REQUEST_CUSTOMER_INFO: AuditAction.REQUEST_CUSTOMER_INFO,
    E.SUBMIT_CUSTOMER_EVIDENCE: AuditAction.CUSTOMER_EVIDENCE_SUBMITTED,
    E.PROCEED_TO_PREARBITRATION: AuditAction.PREARBITRATION_FILED,
    E.CLOSE_AFTER_CUSTOMER_EVIDENCE: AuditAction.CLOSED_AFTER_CUSTOMER_EVIDENCE,
    E.RECORD_PREARBITRATION_OUTCOME: AuditAction.PREARBITRATION_OUTCOME,
}


@dataclass
class TransitionResult:
    record: RepresentmentRecord
    transaction: TransactionRecord
    outbound_action_ids: List[uuid.UUID] = field(default_factory=list)
    assessment: Optional[EvidenceAssessment] = None


@dataclass
class _Effects:
    """What a transition's side-effect step produced for the audit entry"""

    outbound_action_ids: List[uuid.UUID] = field(default_factory=list)
    network: Optional[str] = None
    details: Dict = field(default_factory=dict)
    assessment: Optional[EvidenceAssessment] = None


class RepresentmentService:
    """Every transition is checked, locked, compare-and-swapped and committed as one unit"""

    def __init__(
        self,
        db: Session,
        assessor: Optional[EvidenceAssessor] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.assessor = assessor or default_assessor()
        self.clock = clock
        self.transactions = TransactionRepository(db)
        self.disputes = DisputeRepository(db)
        self.representments = RepresentmentRepository(db)
        self.audit = AuditRepository(db)
        self.ops = OpsTaskRepository(db)
        self.evidence = CustomerEvidenceRepository(db)
        self.dispatcher = ActionDispatcher(db, clock)

    def get(self, transaction_id: uuid.UUID) -> RepresentmentRecord:
        record = self.representments.get(transaction_id)
        if record is None:
            raise RepresentmentNotFoundError(f"No representment record for transaction {transaction_id}")
        return record

    # Merchant events (system actor)

    def receive_merchant_response(self, transaction_id: uuid.UUID, response: MerchantResponse) -> TransitionResult:
        if not response.contested:
            return self.confirm_merchant_accepted(transaction_id, note=response.reason_text)

        def effects(tx: TransactionRecord, record: RepresentmentRecord) -> _Effects:
            record.merchant_reason_code = response.reason_code
            record.merchant_reason_text = response.reason_text
            record.merchant_document_ref = response.document_ref
            record.source = response.source
            record.received_at = self.clock()
            return _Effects(details={"merchant_reason_code": response.reason_code, "source": response.source})

        return self._transition(E.MERCHANT_CONTESTED, transaction_id, SYSTEM_ACTOR, response.reason_text, effects)

    def confirm_merchant_accepted(self, transaction_id: uuid.UUID, note: Optional[str] = None) -> TransitionResult:
        return self._transition(E.MERCHANT_ACCEPTED, transaction_id, SYSTEM_ACTOR, note)

    # Bank adjudication

    def accept(self, transaction_id: uuid.UUID, actor: Actor, notes: Optional[str] = None) -> TransitionResult:
        """Bank sides with the merchant; the customer's temporary credit is reversed"""
        return self._transition(E.ACCEPT, transaction_id, actor, notes, self._reverse_credit(actor))

    def reject(self, transaction_id: uuid.UUID, actor: Actor, notes: Optional[str] = None) -> TransitionResult:
        """Bank sides with the customer, who keeps the credit"""
        return self._transition(E.REJECT, transaction_id, actor, notes)

    def request_customer_info(
        self, transaction_id: uuid.UUID, actor: Actor, notes: Optional[str] = None
    ) -> TransitionResult:
        def effects(tx: TransactionRecord, record: RepresentmentRecord) -> _Effects:
            dispute = self.disputes.latest_for_transaction(tx.id)
            self.ops.open_task(
                tx.id,
                OpsTaskKind.CUSTOMER_EVIDENCE_REQUEST.value,
                {
                    "customer_id": tx.customer_id,
                    "merchant_reason_code": record.merchant_reason_code,
                    "merchant_reason_text": record.merchant_reason_text,
                    "notes": notes,
                },
                dispute_id=dispute.id if dispute else None,
            )
            return _Effects()

        return self._transition(E.REQUEST_CUSTOMER_INFO, transaction_id, actor, notes, effects)

    # Customer rebuttal loop

    def submit_customer_evidence(
        self,
        transaction_id: uuid.UUID,
        actor: Actor,
        note: Optional[str],
        files: Sequence[dict],
    ) -> TransitionResult:
        """Store rebuttal evidence with an advisory assessment; a bank admin decides next"""

        def effects(tx: TransactionRecord, record: RepresentmentRecord) -> _Effects:
            if actor.role == "customer" and actor.actor_id != tx.customer_id:
                raise AuthorizationError("Only the transaction's customer can submit rebuttal evidence")
            assessment = self.assessor.assess(to_domain_transaction(tx), note or "", list(files))
            assessment_data = {
                "sufficient": assessment.sufficient,
                "criteria_met": assessment.criteria_met,
                "summary": assessment.summary,
            }
            self.evidence.add(tx.id, record.id, actor.actor_id, note, list(files), assessment_data)
            return _Effects(details={"assessment": assessment_data, "file_count": len(files)}, assessment=assessment)

        return self._transition(E.SUBMIT_CUSTOMER_EVIDENCE, transaction_id, actor, note, effects)

    def proceed_to_prearbitration(
        self, transaction_id: uuid.UUID, actor: Actor, notes: Optional[str] = None
    ) -> TransitionResult:
        def effects(tx: TransactionRecord, record: RepresentmentRecord) -> _Effects:
            network = resolve_card_network(tx.acquirer_name).value
            record.prearbitration_filed_at = self.clock()
            action_id = self.dispatcher.queue_prearbitration_filing(tx, network, notes)
            return _Effects(outbound_action_ids=[action_id], network=network)

        return self._transition(E.PROCEED_TO_PREARBITRATION, transaction_id, actor, notes, effects)

    def close_after_customer_evidence(
        self, transaction_id: uuid.UUID, actor: Actor, notes: Optional[str] = None
    ) -> TransitionResult:
        return self._transition(E.CLOSE_AFTER_CUSTOMER_EVIDENCE, transaction_id, actor, notes, self._reverse_credit(actor))

    def record_prearbitration_outcome(
        self, transaction_id: uuid.UUID, actor: Actor, outcome: str, notes: Optional[str] = None
    ) -> TransitionResult:
        def effects(tx: TransactionRecord, record: RepresentmentRecord) -> _Effects:
            return _Effects(network=resolve_card_network(tx.acquirer_name).value, details={"outcome": outcome})

        return self._transition(E.RECORD_PREARBITRATION_OUTCOME, transaction_id, actor, notes, effects)

    def _reverse_credit(self, actor: Actor) -> Callable[[TransactionRecord, RepresentmentRecord], _Effects]:
        def effects(tx: TransactionRecord, record: RepresentmentRecord) -> _Effects:
            action_id = self.dispatcher.reverse_temporary_credit(tx, record, actor)
            if action_id is None:
                return _Effects(details={"credit_reversed": False})
            return _Effects(outbound_action_ids=[action_id], details={"credit_reversed": True})

        return effects

    def _transition(
        self,
        event: RepresentmentEvent,
        transaction_id: uuid.UUID,
        actor: Actor,
        notes: Optional[str],
        effects: Optional[Callable[[TransactionRecord, RepresentmentRecord], _Effects]] = None,
    ) -> TransitionResult:
        tx = self.transactions.get(transaction_id, for_update=True)
        if tx is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        record = self.representments.get(transaction_id, for_update=True)
        if record is None:
            raise RepresentmentNotFoundError(f"No chargeback has been filed for transaction {transaction_id}")

        current = RepresentmentStatus(record.status)
        dispute_status = DisputeStatus(tx.dispute_status) if tx.dispute_status else None
        try:
            transition = plan_transition(event, current, dispute_status)
            if transition.bank_admin_only and not actor.is_bank_admin:
                raise AuthorizationError(f"'{event.value}' requires the bank_admin role")
        except InvalidTransitionError:
            # release the row locks before reporting
            self.db.rollback()
            rejected_transition_counter.labels(event=event.value).inc()
            raise
        except AuthorizationError:
            self.db.rollback()
            raise

        try:
            self.representments.compare_and_set_status(record, current, transition.target)
            produced = effects(tx, record) if effects else _Effects()

            if transition.dispute_status is not None:
                tx.dispute_status = transition.dispute_status.value
                dispute = self.disputes.latest_for_transaction(tx.id)
                if dispute is not None:
                    dispute.status = transition.dispute_status.value
            if transition.needs_attention is not None:
                tx.needs_attention = transition.needs_attention

            self.audit.append(
                tx.id,
                AUDIT_ACTIONS[event].value,
                performed_by=actor.actor_id,
                note=notes,
                network=produced.network,
                details={"from_status": current.value, "to_status": transition.target.value, **produced.details},
            )
            self.db.commit()
        except (ConcurrentTransitionError, AuthorizationError):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Transition {event.value} for {transaction_id} was rolled back: {e}") from e

        record_transition(event.value, transition.target.value)
        log_transition(str(tx.id), event.value, current.value, transition.target.value, actor.actor_id)
        return TransitionResult(
            record=record,
            transaction=tx,
            outbound_action_ids=produced.outbound_action_ids,
            assessment=produced.assessment,
        )
