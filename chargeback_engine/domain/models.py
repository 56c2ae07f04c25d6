"""Domain models - pure Python dataclasses representing chargeback entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


POLICY_VERSION = "CB-POL-USD-v1"


class DecisionKind(str, Enum):
    FILE_CHARGEBACK = "FILE_CHARGEBACK"
    FILE_CHARGEBACK_WITH_TEMP_CREDIT = "FILE_CHARGEBACK_WITH_TEMP_CREDIT"
    DECLINE_NOT_ELIGIBLE = "DECLINE_NOT_ELIGIBLE"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    WAIT_FOR_SETTLEMENT = "WAIT_FOR_SETTLEMENT"
    REQUEST_REFUND_FROM_MERCHANT = "REQUEST_REFUND_FROM_MERCHANT"
    APPROVE_WRITEOFF = "APPROVE_WRITEOFF"


class NextAction(str, Enum):
    """Side effects a decision can request"""

    CREATE_DISPUTE = "create_dispute"
    ISSUE_TEMP_CREDIT = "issue_temp_credit"
    ISSUE_PERMANENT_CREDIT = "issue_permanent_credit"
    LOG_ACTIVITY = "log_activity"
    NOTIFY_DASHBOARD = "notify_dashboard"
    QUEUE_OPS_CASE = "queue_ops_case"
    REQUEST_MISSING_DOCS = "request_missing_docs"
    ESCALATE_FRAUD_TEAM = "escalate_fraud_team"
    SCHEDULE_RECHECK_24H = "schedule_recheck_24h"
    CREATE_MERCHANT_REFUND_TASK = "create_merchant_refund_task"


class ReasonCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_RECEIVED = "NOT_RECEIVED"
    WRONG_ITEM = "WRONG_ITEM"
    NOT_AS_DESCRIBED = "NOT_AS_DESCRIBED"
    DAMAGED_DEFECTIVE = "DAMAGED_DEFECTIVE"
    DUPLICATE = "DUPLICATE"
    CANCELLED_BUT_CHARGED = "CANCELLED_BUT_CHARGED"
    REFUND_NOT_PROCESSED = "REFUND_NOT_PROCESSED"
    INCORRECT_AMOUNT = "INCORRECT_AMOUNT"


class DocumentKey(str, Enum):
    INVOICE = "invoice"
    TRACKING_PROOF = "tracking_proof"
    PRODUCT_PHOTO = "product_photo"
    BANK_STATEMENT = "bank_statement"
    CANCELLATION_PROOF = "cancellation_proof"
    COMMUNICATION = "communication"
    POLICE_REPORT = "police_report"
    RECEIPT = "receipt"


class DisputeStatus(str, Enum):
    """Lifecycle status shared by a transaction and its dispute"""

    OPEN = "open"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    AWAITING_MERCHANT_REFUND = "awaiting_merchant_refund"
    MANUAL_REVIEW = "manual_review"
    DECLINED = "declined"
    WRITTEN_OFF = "written_off"
    CHARGEBACK_FILED = "chargeback_filed"
    REPRESENTMENT_RECEIVED = "representment_received"
    AWAITING_CUSTOMER_INFO = "awaiting_customer_info"
    PRE_ARBITRATION_FILED = "pre_arbitration_filed"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


# Statuses after which a fresh evaluation can no longer file another chargeback
FILED_STATUSES = frozenset(
    {
        DisputeStatus.CHARGEBACK_FILED,
        DisputeStatus.REPRESENTMENT_RECEIVED,
        DisputeStatus.AWAITING_CUSTOMER_INFO,
        DisputeStatus.PRE_ARBITRATION_FILED,
        DisputeStatus.CLOSED_WON,
        DisputeStatus.CLOSED_LOST,
        DisputeStatus.WRITTEN_OFF,
    }
)


class RepresentmentStatus(str, Enum):
    NO_REPRESENTMENT = "no_representment"
    PENDING = "pending"
    ACCEPTED_BY_BANK = "accepted_by_bank"
    REJECTED_BY_BANK = "rejected_by_bank"
    AWAITING_CUSTOMER_INFO = "awaiting_customer_info"
    PREARBITRATION_FILED = "prearbitration_filed"


class CardNetwork(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"


@dataclass(frozen=True)
class Transaction:
    """Immutable snapshot of a card charge as seen by the policy"""

    transaction_id: str
    customer_id: str
    transaction_time: datetime
    transaction_amount: Decimal
    transaction_currency: str
    merchant_name: str
    merchant_category_code: Optional[int] = None
    local_transaction_amount: Optional[Decimal] = None
    local_transaction_currency: Optional[str] = None
    acquirer_name: Optional[str] = None
    pos_entry_mode: Optional[int] = None
    secured_indication: Optional[int] = None
    is_wallet_transaction: bool = False
    wallet_type: Optional[str] = None
    settled: bool = False
    settlement_date: Optional[datetime] = None
    refund_received: bool = False
    refund_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class EvidenceItem:
    """Validator output for one submitted document"""

    key: str
    is_valid: bool
    reason_if_invalid: Optional[str] = None


@dataclass(frozen=True)
class TransactionFacts:
    """Normalized facts the policy rules are evaluated against"""

    base_amount_usd: Optional[Decimal]
    remaining_amount_usd: Decimal
    days_since_transaction: int
    days_since_settlement: Optional[int]
    is_secured_otp: bool
    is_unsecured: bool
    is_magstripe: bool
    is_chip: bool
    is_contactless: bool
    is_restricted_mcc: bool
    is_facebook_meta: bool
    is_wallet: bool
    is_blocked_wallet: bool
    settled: bool
    refund_received: bool
    refund_covers_original: bool
    merchant_category_code: Optional[int]

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe view used for fingerprints and the audit trail"""
        return {
            "base_amount_usd": None if self.base_amount_usd is None else str(self.base_amount_usd),
            "remaining_amount_usd": str(self.remaining_amount_usd),
            "days_since_transaction": self.days_since_transaction,
            "days_since_settlement": self.days_since_settlement,
            "is_secured_otp": self.is_secured_otp,
            "is_unsecured": self.is_unsecured,
            "is_magstripe": self.is_magstripe,
            "is_chip": self.is_chip,
            "is_contactless": self.is_contactless,
            "is_restricted_mcc": self.is_restricted_mcc,
            "is_facebook_meta": self.is_facebook_meta,
            "is_wallet": self.is_wallet,
            "is_blocked_wallet": self.is_blocked_wallet,
            "settled": self.settled,
            "refund_received": self.refund_received,
            "refund_covers_original": self.refund_covers_original,
            "merchant_category_code": self.merchant_category_code,
        }


@dataclass(frozen=True)
class SufficiencyResult:
    """Outcome of checking evidence against the required documents"""

    sufficient: bool
    missing: Tuple[DocumentKey, ...]
    valid: FrozenSet[DocumentKey]
    required: Tuple[DocumentKey, ...] = ()
    reason_recognised: bool = True


@dataclass(frozen=True)
class Decision:
    """Output of the policy evaluator"""

    decision_kind: DecisionKind
    policy_code: str
    rule_id: str
    reason_summary: str
    next_actions: Tuple[NextAction, ...]
    flags: Dict[str, Any]
    audit: Dict[str, Any]
    base_amount_usd: Optional[Decimal]
    remaining_amount_usd: Decimal


@dataclass
class EligibilityResult:
    """Customer-facing pre-screen outcome"""

    eligible: bool
    reasons: List[str] = field(default_factory=list)


@dataclass
class EvidenceAssessment:
    """Advisory judgment over customer rebuttal evidence"""

    sufficient: bool
    criteria_met: List[str]
    summary: str


@dataclass(frozen=True)
class MerchantResponse:
    """Merchant's answer to a filed chargeback"""

    contested: bool
    reason_code: Optional[str] = None
    reason_text: Optional[str] = None
    document_ref: Optional[str] = None
    source: str = "card_network"


@dataclass(frozen=True)
class Actor:
    """Caller identity as resolved by the authorization collaborator"""

    actor_id: Optional[str]
    role: str

    @property
    def is_bank_admin(self) -> bool:
        return self.role == "bank_admin"


class OutboundKind(str, Enum):
    """External side effects delivered after commit"""

    TEMP_CREDIT = "ledger.temp_credit"
    PERMANENT_CREDIT = "ledger.permanent_credit"
    TEMP_CREDIT_REVERSAL = "ledger.temp_credit_reversal"
    CHARGEBACK_FILING = "network.chargeback_filing"
    PREARBITRATION_FILING = "network.prearbitration_filing"


class OpsTaskKind(str, Enum):
    MANUAL_REVIEW = "manual_review"
    DOCUMENT_REQUEST = "document_request"
    FRAUD_ESCALATION = "fraud_escalation"
    RECHECK = "recheck"
    MERCHANT_REFUND_REQUEST = "merchant_refund_request"
    CUSTOMER_EVIDENCE_REQUEST = "customer_evidence_request"
    DISPATCH_FAILURE = "dispatch_failure"


class AuditAction(str, Enum):
    DECISION_RECORDED = "decision_recorded"
    CHARGEBACK_ACTIVITY = "chargeback_activity"
    CHARGEBACK_FILED = "chargeback_filed"
    MERCHANT_CONTESTED = "merchant_contested"
    MERCHANT_ACCEPTED = "merchant_accepted"
    ACCEPT = "accept"
    REJECT = "reject"
    REQUEST_CUSTOMER_INFO = "request_customer_info"
    CUSTOMER_EVIDENCE_SUBMITTED = "customer_evidence_submitted"
    PREARBITRATION_FILED = "prearbitration_filed"
    CLOSED_AFTER_CUSTOMER_EVIDENCE = "closed_after_customer_evidence"
    PREARBITRATION_OUTCOME = "prearbitration_outcome"
    TEMP_CREDIT_REVERSED = "temp_credit_reversed"
    ACTION_FAILED = "action_failed"
