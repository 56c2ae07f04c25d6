"""Data access layer for chargeback entities"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from chargeback_engine.domain.exceptions import ConcurrentTransitionError
from chargeback_engine.domain.models import Decision, RepresentmentStatus, Transaction
from chargeback_engine.infrastructure.database.models import (
    AuditEntry,
    CreditRecord,
    CustomerEvidence,
    DecisionRecord,
    DisputeRecord,
    OpsTask,
    OutboundAction,
    RepresentmentRecord,
    TransactionRecord,
)
from chargeback_engine.utils.date_utils import ensure_utc, utc_now


def to_domain_transaction(row: TransactionRecord) -> Transaction:
    """Snapshot the immutable facts of a transaction row"""
    return Transaction(
        transaction_id=str(row.id),
        customer_id=row.customer_id,
        transaction_time=ensure_utc(row.transaction_time),
        transaction_amount=Decimal(row.transaction_amount),
        transaction_currency=row.transaction_currency,
        merchant_name=row.merchant_name,
        merchant_category_code=row.merchant_category_code,
        local_transaction_amount=None if row.local_transaction_amount is None else Decimal(row.local_transaction_amount),
        local_transaction_currency=row.local_transaction_currency,
        acquirer_name=row.acquirer_name,
        pos_entry_mode=row.pos_entry_mode,
        secured_indication=row.secured_indication,
        is_wallet_transaction=bool(row.is_wallet_transaction),
        wallet_type=row.wallet_type,
        settled=bool(row.settled),
        settlement_date=None if row.settlement_date is None else ensure_utc(row.settlement_date),
        refund_received=bool(row.refund_received),
        refund_amount=None if row.refund_amount is None else Decimal(row.refund_amount),
    )


class TransactionRepository:
    """Repository for transactions and their status fields"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: uuid.UUID, for_update: bool = False) -> Optional[TransactionRecord]:
        query = self.db.query(TransactionRecord).filter(TransactionRecord.id == transaction_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def add(self, **fields) -> TransactionRecord:
        row = TransactionRecord(**fields)
        self.db.add(row)
        self.db.flush()
        return row


class DisputeRepository:
    """Repository for customer disputes"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, dispute_id: uuid.UUID) -> Optional[DisputeRecord]:
        return self.db.query(DisputeRecord).filter(DisputeRecord.id == dispute_id).first()

    def latest_for_transaction(self, transaction_id: uuid.UUID) -> Optional[DisputeRecord]:
        return (
            self.db.query(DisputeRecord)
            .filter(DisputeRecord.transaction_id == transaction_id)
            .order_by(DisputeRecord.created_at.desc())
            .first()
        )

    def add(self, **fields) -> DisputeRecord:
        row = DisputeRecord(**fields)
        self.db.add(row)
        self.db.flush()
        return row


class DecisionRepository:
    """Repository for immutable policy decisions"""

    def __init__(self, db: Session):
        self.db = db

    def find_by_fingerprint(self, transaction_id: uuid.UUID, fingerprint: str) -> Optional[DecisionRecord]:
        return (
            self.db.query(DecisionRecord)
            .filter(
                DecisionRecord.transaction_id == transaction_id,
                DecisionRecord.input_fingerprint == fingerprint,
            )
            .first()
        )

    def create_decision(
        self,
        transaction_id: uuid.UUID,
        dispute_id: uuid.UUID,
        fingerprint: str,
        decision: Decision,
    ) -> DecisionRecord:
        """
        Persist a decision, flushing to surface unique-key races.

        Raises IntegrityError when another writer already stored the same
        fingerprint; the caller rolls back and reads the winner.
        """
        row = DecisionRecord(
            transaction_id=transaction_id,
            dispute_id=dispute_id,
            input_fingerprint=fingerprint,
            decision_kind=decision.decision_kind.value,
            policy_code=decision.policy_code,
            reason_summary=decision.reason_summary,
            flags=decision.flags,
            next_actions=[action.value for action in decision.next_actions],
            audit=decision.audit,
            base_amount_usd=decision.base_amount_usd,
            remaining_amount_usd=decision.remaining_amount_usd,
        )
        self.db.add(row)
        self.db.flush()  # Get ID and hit the unique constraint without committing
        return row

    def list_for_transaction(self, transaction_id: uuid.UUID, limit: int = 50) -> List[DecisionRecord]:
        return (
            self.db.query(DecisionRecord)
            .filter(DecisionRecord.transaction_id == transaction_id)
            .order_by(DecisionRecord.created_at.desc())
            .limit(limit)
            .all()
        )


class RepresentmentRepository:
    """Repository for representment records with compare-and-swap status updates"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: uuid.UUID, for_update: bool = False) -> Optional[RepresentmentRecord]:
        query = self.db.query(RepresentmentRecord).filter(RepresentmentRecord.transaction_id == transaction_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_or_create(self, transaction_id: uuid.UUID) -> RepresentmentRecord:
        row = self.get(transaction_id)
        if row is None:
            row = RepresentmentRecord(transaction_id=transaction_id, status=RepresentmentStatus.NO_REPRESENTMENT.value)
            self.db.add(row)
            self.db.flush()
        return row

    def compare_and_set_status(
        self,
        record: RepresentmentRecord,
        expected: RepresentmentStatus,
        target: RepresentmentStatus,
        **fields: Any,
    ) -> None:
        """Move status from expected to target; raise if another writer got there first"""
        values: Dict[str, Any] = {"status": target.value, "updated_at": utc_now()}
        values.update(fields)
        updated = (
            self.db.query(RepresentmentRecord)
            .filter(
                RepresentmentRecord.id == record.id,
                RepresentmentRecord.status == expected.value,
            )
            .update(values, synchronize_session="fetch")
        )
        if updated != 1:
            raise ConcurrentTransitionError(
                f"Representment {record.id} left status {expected.value} before the update was applied"
            )


class AuditRepository:
    """Append-only audit trail; no update or delete operations"""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        transaction_id: uuid.UUID,
        action: str,
        performed_by: Optional[str] = None,
        note: Optional[str] = None,
        network: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            transaction_id=transaction_id,
            action=action,
            performed_by=performed_by,
            note=note,
            network=network,
            details=details,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_transaction(self, transaction_id: uuid.UUID) -> List[AuditEntry]:
        return (
            self.db.query(AuditEntry)
            .filter(AuditEntry.transaction_id == transaction_id)
            .order_by(AuditEntry.performed_at.asc())
            .all()
        )


class CreditRepository:
    """Repository for credit issuances"""

    def __init__(self, db: Session):
        self.db = db

    def record_issue(
        self,
        transaction_id: uuid.UUID,
        kind: str,
        amount: Decimal,
        currency: str,
        decision_id: Optional[uuid.UUID] = None,
    ) -> CreditRecord:
        row = CreditRecord(
            transaction_id=transaction_id,
            decision_id=decision_id,
            kind=kind,
            amount=amount,
            currency=currency,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def active_temporary_credit(self, transaction_id: uuid.UUID) -> Optional[CreditRecord]:
        return (
            self.db.query(CreditRecord)
            .filter(
                CreditRecord.transaction_id == transaction_id,
                CreditRecord.kind == "temporary",
                CreditRecord.reversed_at.is_(None),
            )
            .order_by(CreditRecord.issued_at.desc())
            .first()
        )

    def mark_reversed(self, credit: CreditRecord, reversed_at: datetime) -> bool:
        """Set reversed_at once; False when the credit was already reversed"""
        updated = (
            self.db.query(CreditRecord)
            .filter(CreditRecord.id == credit.id, CreditRecord.reversed_at.is_(None))
            .update({"reversed_at": reversed_at}, synchronize_session="fetch")
        )
        return updated == 1


class OutboundActionRepository:
    """Repository for queued external side effects"""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self,
        transaction_id: uuid.UUID,
        kind: str,
        payload: Dict[str, Any],
        decision_id: Optional[uuid.UUID] = None,
    ) -> OutboundAction:
        row = OutboundAction(
            transaction_id=transaction_id,
            decision_id=decision_id,
            kind=kind,
            payload=payload,
            status="pending",
            attempts=0,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get(self, action_id: uuid.UUID) -> Optional[OutboundAction]:
        return self.db.query(OutboundAction).filter(OutboundAction.id == action_id).first()

    def undelivered(self, limit: int = 100) -> List[OutboundAction]:
        return (
            self.db.query(OutboundAction)
            .filter(OutboundAction.status.in_(("pending", "failed")))
            .order_by(OutboundAction.created_at.asc())
            .limit(limit)
            .all()
        )


class OpsTaskRepository:
    """Repository for the human work queue"""

    def __init__(self, db: Session):
        self.db = db

    def open_task(
        self,
        transaction_id: uuid.UUID,
        kind: str,
        details: Optional[Dict[str, Any]] = None,
        dispute_id: Optional[uuid.UUID] = None,
        due_in: Optional[timedelta] = None,
    ) -> OpsTask:
        task = OpsTask(
            transaction_id=transaction_id,
            dispute_id=dispute_id,
            kind=kind,
            status="open",
            details=details,
            due_at=utc_now() + due_in if due_in is not None else None,
        )
        self.db.add(task)
        self.db.flush()
        return task

    def find_open_for_action(self, transaction_id: uuid.UUID, kind: str, action_id: uuid.UUID) -> Optional[OpsTask]:
        """Open task of a kind already raised for one outbound action"""
        candidates = self.list_tasks(kind=kind, transaction_id=transaction_id, limit=500)
        for task in candidates:
            if (task.details or {}).get("action_id") == str(action_id):
                return task
        return None

    def list_tasks(
        self,
        kind: Optional[str] = None,
        status: Optional[str] = "open",
        due_before: Optional[datetime] = None,
        transaction_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> List[OpsTask]:
        query = self.db.query(OpsTask)
        if kind:
            query = query.filter(OpsTask.kind == kind)
        if status:
            query = query.filter(OpsTask.status == status)
        if transaction_id:
            query = query.filter(OpsTask.transaction_id == transaction_id)
        if due_before is not None:
            query = query.filter(OpsTask.due_at.isnot(None), OpsTask.due_at <= due_before)
        return query.order_by(OpsTask.created_at.asc()).limit(limit).all()


class CustomerEvidenceRepository:
    """Repository for customer rebuttal submissions"""

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        transaction_id: uuid.UUID,
        representment_id: uuid.UUID,
        submitted_by: Optional[str],
        note: Optional[str],
        files: List[dict],
        assessment: Dict[str, Any],
    ) -> CustomerEvidence:
        row = CustomerEvidence(
            transaction_id=transaction_id,
            representment_id=representment_id,
            submitted_by=submitted_by,
            note=note,
            files=files,
            assessment=assessment,
        )
        self.db.add(row)
        self.db.flush()
        return row
