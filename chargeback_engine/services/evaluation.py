"""Evaluate a dispute: derive facts, check evidence, decide once, dispatch once"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from chargeback_engine.config import Settings, settings as default_settings
from chargeback_engine.domain.eligibility import check_eligibility
from chargeback_engine.domain.evidence import check_sufficiency, document_findings
from chargeback_engine.domain.exceptions import (
    DisputeAlreadyFiledError,
    DisputeMismatchError,
    DisputeNotFoundError,
    PersistenceError,
    TransactionNotFoundError,
)
from chargeback_engine.domain.facts import derive_facts
from chargeback_engine.domain.fingerprint import fingerprint_inputs
from chargeback_engine.domain.models import FILED_STATUSES, EligibilityResult, EvidenceItem
from chargeback_engine.domain.policy import evaluate_policy
from chargeback_engine.infrastructure.database.models import DecisionRecord, TransactionRecord
from chargeback_engine.infrastructure.database.repositories import (
    DecisionRepository,
    DisputeRepository,
    TransactionRepository,
    to_domain_transaction,
)
from chargeback_engine.services.dispatcher import ActionDispatcher, DispatchContext
from chargeback_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    decision: DecisionRecord
    created: bool
    outbound_action_ids: List[uuid.UUID] = field(default_factory=list)

    @property
    def replayed(self) -> bool:
        return not self.created


class EvaluationService:
    """Owns the unit of work for one evaluate call"""

    def __init__(
        self,
        db: Session,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.config = config or default_settings
        self.clock = clock
        self.transactions = TransactionRepository(db)
        self.disputes = DisputeRepository(db)
        self.decisions = DecisionRepository(db)

    def _load_transaction(self, transaction_id: uuid.UUID) -> TransactionRecord:
        tx = self.transactions.get(transaction_id)
        if tx is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return tx

    def evaluate(
        self,
        transaction_id: uuid.UUID,
        dispute_id: uuid.UUID,
        evidence_items: Iterable[EvidenceItem],
    ) -> EvaluationResult:
        """
        Decide a dispute exactly once per logical input.

        Flow:
        1. Validate the transaction/dispute pair
        2. Derive facts and check evidence sufficiency
        3. Fingerprint inputs; return the stored decision on a match
        4. Evaluate the policy and persist the decision
        5. Dispatch next actions in the same database transaction
        """
        tx = self._load_transaction(transaction_id)
        dispute = self.disputes.get(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(f"Dispute {dispute_id} not found")
        if dispute.transaction_id != tx.id:
            raise DisputeMismatchError(f"Dispute {dispute_id} does not belong to transaction {transaction_id}")

        items = list(evidence_items)
        snapshot = to_domain_transaction(tx)
        facts = derive_facts(snapshot, self.clock(), self.config.refund_first_merchant_patterns)
        sufficiency = check_sufficiency(
            dispute.reason_code,
            items,
            unknown_reason_requires_review=self.config.unknown_reason_requires_review,
        )
        fingerprint = fingerprint_inputs(facts, dispute.reason_code, dispute.custom_reason, items)

        existing = self.decisions.find_by_fingerprint(tx.id, fingerprint)
        if existing is not None:
            logger.info(
                "Returning stored decision for identical inputs",
                extra={"transaction_id": str(tx.id), "decision_id": str(existing.id)},
            )
            return EvaluationResult(decision=existing, created=False)

        if tx.dispute_status in FILED_STATUSES:
            raise DisputeAlreadyFiledError(
                f"Transaction {transaction_id} is already in status {tx.dispute_status}"
            )

        decision = evaluate_policy(
            facts,
            dispute.reason_code,
            sufficiency,
            fingerprint,
            thresholds=self.config.policy,
            document_findings=document_findings(items),
        )

        try:
            row = self.decisions.create_decision(tx.id, dispute.id, fingerprint, decision)
        except IntegrityError:
            # Lost an insert race against an identical request; the winner dispatches
            self.db.rollback()
            winner = self.decisions.find_by_fingerprint(transaction_id, fingerprint)
            if winner is None:
                raise PersistenceError(f"Decision insert for {transaction_id} failed without a stored winner")
            return EvaluationResult(decision=winner, created=False)

        try:
            outbound_ids = ActionDispatcher(self.db, self.clock).dispatch(
                DispatchContext(transaction=tx, dispute=dispute, decision_row=row, decision=decision)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not store decision for {transaction_id}: {e}") from e

        return EvaluationResult(decision=row, created=True, outbound_action_ids=outbound_ids)

    def list_decisions(self, transaction_id: uuid.UUID, limit: int = 50) -> List[DecisionRecord]:
        self._load_transaction(transaction_id)
        return self.decisions.list_for_transaction(transaction_id, limit)

    def check_eligibility(self, transaction_id: uuid.UUID) -> EligibilityResult:
        tx = self._load_transaction(transaction_id)
        return check_eligibility(to_domain_transaction(tx), self.clock(), self.config.policy)
