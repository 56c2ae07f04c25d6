"""SQLAlchemy ORM models for transactions, decisions and the representment workflow"""

import uuid
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

from chargeback_engine.domain.exceptions import PersistenceError
from chargeback_engine.utils.date_utils import utc_now

Base = declarative_base()

Money = Numeric(12, 2, asdecimal=True)


class TransactionRecord(Base):
    """Card transaction with its dispute and credit status fields"""

    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, nullable=False, index=True)
    transaction_time = Column(DateTime(timezone=True), nullable=False)
    transaction_amount = Column(Money, nullable=False)
    transaction_currency = Column(Text, nullable=False)
    local_transaction_amount = Column(Money, nullable=True)
    local_transaction_currency = Column(Text, nullable=True)
    merchant_name = Column(Text, nullable=False)
    merchant_category_code = Column(Integer, nullable=True)
    acquirer_name = Column(Text, nullable=True)
    pos_entry_mode = Column(Integer, nullable=True)
    secured_indication = Column(Integer, nullable=True)
    is_wallet_transaction = Column(Boolean, nullable=False, default=False)
    wallet_type = Column(Text, nullable=True)
    settled = Column(Boolean, nullable=False, default=False)
    settlement_date = Column(DateTime(timezone=True), nullable=True)
    refund_received = Column(Boolean, nullable=False, default=False)
    refund_amount = Column(Money, nullable=True)

    # Mutable status fields
    dispute_status = Column(Text, nullable=True)
    needs_attention = Column(Boolean, nullable=False, default=False)
    chargeback_filed_at = Column(DateTime(timezone=True), nullable=True)
    temporary_credit_provided = Column(Boolean, nullable=False, default=False)
    temporary_credit_amount = Column(Money, nullable=True)
    temporary_credit_currency = Column(Text, nullable=True)
    temporary_credit_reversal_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    disputes = relationship("DisputeRecord", back_populates="transaction")
    representment = relationship("RepresentmentRecord", back_populates="transaction", uselist=False)


class DisputeRecord(Base):
    """Customer chargeback request against one transaction"""

    __tablename__ = "disputes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)
    customer_id = Column(Text, nullable=False)
    reason_code = Column(Text, nullable=False)
    custom_reason = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="open")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    transaction = relationship("TransactionRecord", back_populates="disputes")


class DecisionRecord(Base):
    """Immutable policy decision, unique per transaction and input fingerprint"""

    __tablename__ = "dispute_decisions"
    __table_args__ = (UniqueConstraint("transaction_id", "input_fingerprint", name="uq_decision_fingerprint"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)
    dispute_id = Column(UUID(as_uuid=True), ForeignKey("disputes.id"), nullable=False)
    input_fingerprint = Column(Text, nullable=False)
    decision_kind = Column(Text, nullable=False)
    policy_code = Column(Text, nullable=False)
    reason_summary = Column(Text, nullable=False)
    flags = Column(JSON, nullable=False)
    next_actions = Column(JSON, nullable=False)
    audit = Column(JSON, nullable=False)
    base_amount_usd = Column(Money, nullable=True)
    remaining_amount_usd = Column(Money, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class RepresentmentRecord(Base):
    """Merchant representment lifecycle, one per filed transaction"""

    __tablename__ = "representments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, unique=True)
    status = Column(Text, nullable=False, default="no_representment")
    merchant_reason_code = Column(Text, nullable=True)
    merchant_reason_text = Column(Text, nullable=True)
    merchant_document_ref = Column(Text, nullable=True)
    source = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)
    credit_reversed_at = Column(DateTime(timezone=True), nullable=True)
    prearbitration_filed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    transaction = relationship("TransactionRecord", back_populates="representment")


class AuditEntry(Base):
    """Append-only audit trail entry"""

    __tablename__ = "audit_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)
    action = Column(Text, nullable=False)
    performed_by = Column(Text, nullable=True)  # NULL = system
    performed_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    note = Column(Text, nullable=True)
    network = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)


class CreditRecord(Base):
    """Temporary or permanent credit issued to the customer"""

    __tablename__ = "credits"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)
    decision_id = Column(UUID(as_uuid=True), ForeignKey("dispute_decisions.id"), nullable=True)
    kind = Column(Text, nullable=False)  # temporary | permanent
    amount = Column(Money, nullable=False)
    currency = Column(Text, nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    reversed_at = Column(DateTime(timezone=True), nullable=True)


class OutboundAction(Base):
    """External side-effect delivery queue with retry tracking"""

    __tablename__ = "outbound_actions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)
    decision_id = Column(UUID(as_uuid=True), ForeignKey("dispute_decisions.id"), nullable=True)
    kind = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    external_reference = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class OpsTask(Base):
    """Human work queue item"""

    __tablename__ = "ops_tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)
    dispute_id = Column(UUID(as_uuid=True), ForeignKey("disputes.id"), nullable=True)
    kind = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="open")
    details = Column(JSON, nullable=True)
    due_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class CustomerEvidence(Base):
    """Rebuttal evidence submitted while awaiting customer info"""

    __tablename__ = "customer_evidence"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)
    representment_id = Column(UUID(as_uuid=True), ForeignKey("representments.id"), nullable=False)
    submitted_by = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    files = Column(JSON, nullable=False, default=list)
    assessment = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


def _refuse_mutation(mapper, connection, target):
    raise PersistenceError(f"{type(target).__name__} rows are immutable")


for _immutable in (DecisionRecord, AuditEntry):
    event.listen(_immutable, "before_update", _refuse_mutation)
    event.listen(_immutable, "before_delete", _refuse_mutation)
