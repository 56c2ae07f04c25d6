"""Turn a persisted decision's next actions into store writes and queued external calls"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from chargeback_engine.config import settings
from chargeback_engine.domain.models import (
    Actor,
    AuditAction,
    Decision,
    DecisionKind,
    DisputeStatus,
    NextAction,
    OpsTaskKind,
    OutboundKind,
)
from chargeback_engine.domain.network import resolve_card_network
from chargeback_engine.infrastructure.database.models import (
    DecisionRecord,
    DisputeRecord,
    RepresentmentRecord,
    TransactionRecord,
)
from chargeback_engine.infrastructure.database.repositories import (
    AuditRepository,
    CreditRepository,
    OpsTaskRepository,
    OutboundActionRepository,
    RepresentmentRepository,
)
from chargeback_engine.infrastructure.observability.metrics import credit_reversal_counter
from chargeback_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

# Credit amounts are derived from base_amount_usd, so they are always USD figures
CREDIT_CURRENCY = "USD"

STATUS_BY_DECISION: Dict[DecisionKind, DisputeStatus] = {
    DecisionKind.FILE_CHARGEBACK: DisputeStatus.CHARGEBACK_FILED,
    DecisionKind.FILE_CHARGEBACK_WITH_TEMP_CREDIT: DisputeStatus.CHARGEBACK_FILED,
    DecisionKind.DECLINE_NOT_ELIGIBLE: DisputeStatus.DECLINED,
    DecisionKind.MANUAL_REVIEW: DisputeStatus.MANUAL_REVIEW,
    DecisionKind.WAIT_FOR_SETTLEMENT: DisputeStatus.AWAITING_SETTLEMENT,
    DecisionKind.REQUEST_REFUND_FROM_MERCHANT: DisputeStatus.AWAITING_MERCHANT_REFUND,
    DecisionKind.APPROVE_WRITEOFF: DisputeStatus.WRITTEN_OFF,
}


@dataclass
class DispatchContext:
    transaction: TransactionRecord
    dispute: DisputeRecord
    decision_row: DecisionRecord
    decision: Decision
    outbound_action_ids: List[uuid.UUID] = field(default_factory=list)


class ActionDispatcher:
    """Runs inside the decision's unit of work; the caller commits"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.audit = AuditRepository(db)
        self.credits = CreditRepository(db)
        self.ops = OpsTaskRepository(db)
        self.outbound = OutboundActionRepository(db)
        self.representments = RepresentmentRepository(db)

    def dispatch(self, ctx: DispatchContext) -> List[uuid.UUID]:
        """Apply status, audit and every next action once for a newly stored decision"""
        decision = ctx.decision
        status = STATUS_BY_DECISION[decision.decision_kind]
        ctx.transaction.dispute_status = status.value
        ctx.dispute.status = status.value

        self.audit.append(
            ctx.transaction.id,
            AuditAction.DECISION_RECORDED.value,
            note=decision.reason_summary,
            details={
                "decision_id": str(ctx.decision_row.id),
                "decision_kind": decision.decision_kind.value,
                "policy_code": decision.policy_code,
                "matched_rules": decision.audit.get("matched_rules", []),
                "input_hash": decision.audit.get("input_hash"),
            },
        )

        for action in decision.next_actions:
            ACTION_HANDLERS[action](self, ctx)
        return ctx.outbound_action_ids

    # Store-local actions

    def _create_dispute(self, ctx: DispatchContext) -> None:
        tx = ctx.transaction
        now = self.clock()
        tx.dispute_status = DisputeStatus.CHARGEBACK_FILED.value
        tx.chargeback_filed_at = now
        ctx.dispute.status = DisputeStatus.CHARGEBACK_FILED.value
        self.representments.get_or_create(tx.id)

        network = resolve_card_network(tx.acquirer_name).value
        action = self.outbound.enqueue(
            tx.id,
            OutboundKind.CHARGEBACK_FILING.value,
            {
                "network": network,
                "transaction_id": str(tx.id),
                "dispute_id": str(ctx.dispute.id),
                "decision_id": str(ctx.decision_row.id),
                "policy_code": ctx.decision.policy_code,
                "reason_code": ctx.dispute.reason_code,
                "merchant_name": tx.merchant_name,
                "amount": str(tx.transaction_amount),
                "currency": tx.transaction_currency,
            },
            decision_id=ctx.decision_row.id,
        )
        ctx.outbound_action_ids.append(action.id)
        self.audit.append(
            tx.id,
            AuditAction.CHARGEBACK_FILED.value,
            network=network,
            details={"decision_id": str(ctx.decision_row.id)},
        )

    def _log_activity(self, ctx: DispatchContext) -> None:
        self.audit.append(
            ctx.transaction.id,
            AuditAction.CHARGEBACK_ACTIVITY.value,
            note=ctx.decision.reason_summary,
            details={"decision_id": str(ctx.decision_row.id), "flags": ctx.decision.flags},
        )

    def _notify_dashboard(self, ctx: DispatchContext) -> None:
        ctx.transaction.needs_attention = True

    def _queue_ops_case(self, ctx: DispatchContext) -> None:
        self._open_task(ctx, OpsTaskKind.MANUAL_REVIEW)

    def _request_missing_docs(self, ctx: DispatchContext) -> None:
        self._open_task(
            ctx,
            OpsTaskKind.DOCUMENT_REQUEST,
            {"missing_documents": ctx.decision.audit.get("missing_documents", [])},
        )

    def _escalate_fraud_team(self, ctx: DispatchContext) -> None:
        self._open_task(ctx, OpsTaskKind.FRAUD_ESCALATION)

    def _schedule_recheck(self, ctx: DispatchContext) -> None:
        self._open_task(ctx, OpsTaskKind.RECHECK, due_in=timedelta(hours=settings.recheck_delay_hours))

    def _create_merchant_refund_task(self, ctx: DispatchContext) -> None:
        self._open_task(ctx, OpsTaskKind.MERCHANT_REFUND_REQUEST, {"merchant_name": ctx.transaction.merchant_name})

    def _open_task(
        self,
        ctx: DispatchContext,
        kind: OpsTaskKind,
        extra: Optional[dict] = None,
        due_in: Optional[timedelta] = None,
    ) -> None:
        details = {
            "decision_id": str(ctx.decision_row.id),
            "policy_code": ctx.decision.policy_code,
            "reason_summary": ctx.decision.reason_summary,
        }
        details.update(extra or {})
        self.ops.open_task(ctx.transaction.id, kind.value, details, dispute_id=ctx.dispute.id, due_in=due_in)

    # External actions, queued for delivery after commit

    def _issue_temp_credit(self, ctx: DispatchContext) -> None:
        self._issue_credit(ctx, "temporary", OutboundKind.TEMP_CREDIT)

    def _issue_permanent_credit(self, ctx: DispatchContext) -> None:
        self._issue_credit(ctx, "permanent", OutboundKind.PERMANENT_CREDIT)

    def _issue_credit(self, ctx: DispatchContext, kind: str, outbound_kind: OutboundKind) -> None:
        tx = ctx.transaction
        if ctx.decision.base_amount_usd is None:
            logger.warning(
                "Credit amount unknown in USD, routing to manual review",
                extra={"transaction_id": str(tx.id), "credit_kind": kind},
            )
            self._open_task(ctx, OpsTaskKind.MANUAL_REVIEW, {"blocked_action": outbound_kind.value})
            return

        amount = ctx.decision.remaining_amount_usd
        credit = self.credits.record_issue(tx.id, kind, amount, CREDIT_CURRENCY, decision_id=ctx.decision_row.id)
        if kind == "temporary":
            tx.temporary_credit_provided = True
            tx.temporary_credit_amount = amount
            tx.temporary_credit_currency = CREDIT_CURRENCY

        action = self.outbound.enqueue(
            tx.id,
            outbound_kind.value,
            {
                "credit_id": str(credit.id),
                "transaction_id": str(tx.id),
                "customer_id": tx.customer_id,
                "decision_id": str(ctx.decision_row.id),
                "amount": str(amount),
                "currency": CREDIT_CURRENCY,
            },
            decision_id=ctx.decision_row.id,
        )
        ctx.outbound_action_ids.append(action.id)

    # Representment side effects

    def reverse_temporary_credit(
        self,
        tx: TransactionRecord,
        record: RepresentmentRecord,
        actor: Actor,
    ) -> Optional[uuid.UUID]:
        """Reverse the active temporary credit at most once; None when nothing is reversible"""
        credit = self.credits.active_temporary_credit(tx.id)
        if credit is None:
            logger.info("No active temporary credit to reverse", extra={"transaction_id": str(tx.id)})
            return None

        now = self.clock()
        if not self.credits.mark_reversed(credit, now):
            return None

        tx.temporary_credit_provided = False
        tx.temporary_credit_reversal_at = now
        record.credit_reversed_at = now
        action = self.outbound.enqueue(
            tx.id,
            OutboundKind.TEMP_CREDIT_REVERSAL.value,
            {
                "credit_id": str(credit.id),
                "transaction_id": str(tx.id),
                "customer_id": tx.customer_id,
                "amount": str(credit.amount),
                "currency": credit.currency,
            },
        )
        self.audit.append(
            tx.id,
            AuditAction.TEMP_CREDIT_REVERSED.value,
            performed_by=actor.actor_id,
            details={"credit_id": str(credit.id), "amount": str(credit.amount), "currency": credit.currency},
        )
        credit_reversal_counter.inc()
        return action.id

    def queue_prearbitration_filing(self, tx: TransactionRecord, network: str, notes: Optional[str]) -> uuid.UUID:
        action = self.outbound.enqueue(
            tx.id,
            OutboundKind.PREARBITRATION_FILING.value,
            {
                "network": network,
                "transaction_id": str(tx.id),
                "merchant_name": tx.merchant_name,
                "amount": str(tx.transaction_amount),
                "currency": tx.transaction_currency,
                "notes": notes,
            },
        )
        return action.id


ACTION_HANDLERS: Dict[NextAction, Callable[[ActionDispatcher, DispatchContext], None]] = {
    NextAction.CREATE_DISPUTE: ActionDispatcher._create_dispute,
    NextAction.ISSUE_TEMP_CREDIT: ActionDispatcher._issue_temp_credit,
    NextAction.ISSUE_PERMANENT_CREDIT: ActionDispatcher._issue_permanent_credit,
    NextAction.LOG_ACTIVITY: ActionDispatcher._log_activity,
    NextAction.NOTIFY_DASHBOARD: ActionDispatcher._notify_dashboard,
    NextAction.QUEUE_OPS_CASE: ActionDispatcher._queue_ops_case,
    NextAction.REQUEST_MISSING_DOCS: ActionDispatcher._request_missing_docs,
    NextAction.ESCALATE_FRAUD_TEAM: ActionDispatcher._escalate_fraud_team,
    NextAction.SCHEDULE_RECHECK_24H: ActionDispatcher._schedule_recheck,
    NextAction.CREATE_MERCHANT_REFUND_TASK: ActionDispatcher._create_merchant_refund_task,
}

_unhandled = set(NextAction) - set(ACTION_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Next actions without a dispatcher handler: {sorted(a.value for a in _unhandled)}")
