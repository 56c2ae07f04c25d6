"""Ordered chargeback policy: hard blocks and priority rules"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from chargeback_engine.config import PolicyThresholds
from chargeback_engine.domain.evidence import parse_reason
from chargeback_engine.domain.models import (
    POLICY_VERSION,
    Decision,
    DecisionKind,
    DocumentKey,
    NextAction,
    ReasonCode,
    SufficiencyResult,
    TransactionFacts,
)

FILE = DecisionKind.FILE_CHARGEBACK
FILE_WITH_CREDIT = DecisionKind.FILE_CHARGEBACK_WITH_TEMP_CREDIT
DECLINE = DecisionKind.DECLINE_NOT_ELIGIBLE
REVIEW = DecisionKind.MANUAL_REVIEW

A = NextAction

MERCHANT_ERROR_REASONS = frozenset({ReasonCode.WRONG_ITEM, ReasonCode.DAMAGED_DEFECTIVE, ReasonCode.NOT_AS_DESCRIBED})
BILLING_ERROR_REASONS = frozenset({ReasonCode.DUPLICATE, ReasonCode.INCORRECT_AMOUNT})
CANCELLATION_REASONS = frozenset({ReasonCode.CANCELLED_BUT_CHARGED, ReasonCode.REFUND_NOT_PROCESSED})
CANCELLATION_EVIDENCE = frozenset({DocumentKey.CANCELLATION_PROOF, DocumentKey.COMMUNICATION})


@dataclass(frozen=True)
class PolicyInput:
    facts: TransactionFacts
    reason: Optional[ReasonCode]
    sufficiency: SufficiencyResult
    thresholds: PolicyThresholds

    @property
    def sufficient(self) -> bool:
        return self.sufficiency.sufficient


@dataclass(frozen=True)
class Outcome:
    kind: DecisionKind
    summary: str
    next_actions: Tuple[NextAction, ...]
    flags: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rule:
    """
    One row of the policy table.

    `decide` may return None to fall through to later rules; the rule id is
    still recorded as matched.
    """

    rule_id: str
    applies: Callable[[PolicyInput], bool]
    decide: Callable[[PolicyInput], Optional[Outcome]]


def _decline(summary: str) -> Callable[[PolicyInput], Outcome]:
    return lambda _: Outcome(DECLINE, summary, ())


def _missing_docs_review(summary: str) -> Outcome:
    return Outcome(REVIEW, summary, (A.QUEUE_OPS_CASE, A.REQUEST_MISSING_DOCS))


def _nothing_left_to_recover(p: PolicyInput) -> bool:
    if not p.facts.refund_received:
        return False
    if p.facts.base_amount_usd is None:
        return p.facts.refund_covers_original
    return p.facts.remaining_amount_usd <= 0


def _restricted_mcc(p: PolicyInput) -> Optional[Outcome]:
    if p.sufficient:
        return Outcome(
            FILE,
            "Restricted merchant category with sufficient evidence",
            (A.CREATE_DISPUTE, A.LOG_ACTIVITY, A.NOTIFY_DASHBOARD),
            {"high_risk_mcc": True},
        )
    return _missing_docs_review("Restricted merchant category - missing documents")


def _otp_secured(p: PolicyInput) -> Optional[Outcome]:
    if p.reason == ReasonCode.UNAUTHORIZED:
        return Outcome(REVIEW, "OTP present conflicts with unauthorized claim", (A.QUEUE_OPS_CASE, A.ESCALATE_FRAUD_TEAM))
    if p.sufficient:
        return Outcome(
            FILE_WITH_CREDIT,
            "OTP-secured transaction with sufficient evidence",
            (A.CREATE_DISPUTE, A.ISSUE_TEMP_CREDIT, A.LOG_ACTIVITY),
        )
    return None


def _magstripe(p: PolicyInput) -> Optional[Outcome]:
    if p.sufficient:
        return Outcome(FILE, "Magstripe or manual entry with sufficient evidence", (A.CREATE_DISPUTE, A.LOG_ACTIVITY))
    return _missing_docs_review("Magstripe transaction - missing documents")


def _wallet(p: PolicyInput) -> Optional[Outcome]:
    if not p.sufficient:
        return None
    if p.facts.is_secured_otp:
        return Outcome(FILE_WITH_CREDIT, "Secured wallet transaction with evidence", (A.CREATE_DISPUTE, A.ISSUE_TEMP_CREDIT))
    return Outcome(FILE, "Wallet transaction with evidence", (A.CREATE_DISPUTE,))


def _cancellation(p: PolicyInput) -> Optional[Outcome]:
    if p.facts.days_since_transaction <= p.thresholds.cancellation_grace_days:
        return Outcome(
            FILE_WITH_CREDIT,
            "Cancellation or refund issue with proof",
            (A.CREATE_DISPUTE, A.ISSUE_TEMP_CREDIT),
        )
    return Outcome(FILE, "Cancellation issue outside the temporary credit window", (A.CREATE_DISPUTE,))


def _unauthorized_unsecured(p: PolicyInput) -> Optional[Outcome]:
    if p.sufficient:
        return Outcome(
            FILE_WITH_CREDIT,
            "Unauthorized transaction without OTP",
            (A.CREATE_DISPUTE, A.ISSUE_TEMP_CREDIT),
        )
    return _missing_docs_review("Unauthorized claim - missing documents")


def build_rules() -> List[Rule]:
    """The policy table, in evaluation order"""
    return [
        Rule(
            "R0",
            lambda p: p.facts.base_amount_usd is not None and p.facts.base_amount_usd < p.thresholds.writeoff_threshold_usd,
            lambda p: Outcome(
                DecisionKind.APPROVE_WRITEOFF,
                f"Transaction under ${p.thresholds.writeoff_threshold_usd} - automatic write-off approved",
                (A.ISSUE_PERMANENT_CREDIT,),
                {"write_off_approved": True, "permanent_credit": True},
            ),
        ),
        Rule("B1", _nothing_left_to_recover, _decline("Full refund already received")),
        Rule(
            "B2",
            lambda p: p.facts.is_blocked_wallet and not p.facts.is_secured_otp,
            _decline("Secured non-OTP wallet transaction"),
        ),
        Rule(
            "B3",
            lambda p: p.facts.days_since_transaction > p.thresholds.max_transaction_age_days,
            _decline("Transaction too old"),
        ),
        Rule(
            "B4",
            lambda p: not p.facts.settled and p.facts.days_since_transaction > p.thresholds.unsettled_max_age_days,
            _decline("Unsettled transaction exceeded time limit"),
        ),
        Rule(
            "R1",
            lambda p: not p.facts.settled and p.facts.days_since_transaction <= p.thresholds.settlement_wait_days,
            lambda p: Outcome(DecisionKind.WAIT_FOR_SETTLEMENT, "Waiting for settlement", (A.SCHEDULE_RECHECK_24H,)),
        ),
        Rule(
            "R2",
            lambda p: p.facts.is_facebook_meta
            and p.facts.settled
            and p.facts.days_since_settlement is not None
            and p.facts.days_since_settlement < p.thresholds.merchant_refund_window_days,
            lambda p: Outcome(
                DecisionKind.REQUEST_REFUND_FROM_MERCHANT,
                "Request refund from merchant first",
                (A.CREATE_MERCHANT_REFUND_TASK,),
            ),
        ),
        Rule("R3", lambda p: p.facts.is_restricted_mcc, _restricted_mcc),
        Rule("R4", lambda p: p.facts.is_secured_otp, _otp_secured),
        Rule("R5", lambda p: p.facts.is_magstripe, _magstripe),
        Rule(
            "R6",
            lambda p: p.facts.is_wallet and (not p.facts.is_blocked_wallet or p.facts.is_secured_otp),
            _wallet,
        ),
        Rule(
            "R7",
            lambda p: p.reason in CANCELLATION_REASONS and bool(CANCELLATION_EVIDENCE & p.sufficiency.valid),
            _cancellation,
        ),
        Rule(
            "R8",
            lambda p: p.reason == ReasonCode.NOT_RECEIVED and p.sufficient,
            lambda p: Outcome(
                FILE_WITH_CREDIT,
                "Item not received with tracking proof",
                (A.CREATE_DISPUTE, A.ISSUE_TEMP_CREDIT),
            ),
        ),
        Rule(
            "R9",
            lambda p: p.reason in MERCHANT_ERROR_REASONS and p.sufficient,
            lambda p: Outcome(
                FILE_WITH_CREDIT,
                "Product issue with evidence",
                (A.CREATE_DISPUTE, A.ISSUE_TEMP_CREDIT),
            ),
        ),
        Rule(
            "R10",
            lambda p: p.reason in BILLING_ERROR_REASONS and p.sufficient,
            lambda p: Outcome(FILE, "Billing error with evidence", (A.CREATE_DISPUTE,)),
        ),
        Rule(
            "R11",
            lambda p: p.reason == ReasonCode.UNAUTHORIZED and not p.facts.is_secured_otp,
            _unauthorized_unsecured,
        ),
        Rule(
            "R13",
            lambda p: True,
            lambda p: Outcome(REVIEW, "Case requires manual review", (A.QUEUE_OPS_CASE,)),
        ),
    ]


RULES: Sequence[Rule] = tuple(build_rules())


def evaluate_policy(
    facts: TransactionFacts,
    reason_code: Optional[str],
    sufficiency: SufficiencyResult,
    fingerprint: str,
    thresholds: Optional[PolicyThresholds] = None,
    rules: Sequence[Rule] = RULES,
    document_findings: Optional[List[dict]] = None,
) -> Decision:
    """Walk the rule table and return the first decisive outcome"""
    policy_input = PolicyInput(
        facts=facts,
        reason=parse_reason(reason_code),
        sufficiency=sufficiency,
        thresholds=thresholds or PolicyThresholds(),
    )

    matched: List[str] = []
    for rule in rules:
        if not rule.applies(policy_input):
            continue
        matched.append(rule.rule_id)
        outcome = rule.decide(policy_input)
        if outcome is None:
            continue

        flags: Dict[str, Any] = {"idempotency_key": fingerprint}
        flags.update(outcome.flags)
        return Decision(
            decision_kind=outcome.kind,
            policy_code=f"{POLICY_VERSION}:{rule.rule_id}",
            rule_id=rule.rule_id,
            reason_summary=outcome.summary,
            next_actions=outcome.next_actions,
            flags=flags,
            audit={
                "matched_rules": matched,
                "input_hash": fingerprint,
                "facts": facts.snapshot(),
                "reason_code": policy_input.reason.value if policy_input.reason else reason_code,
                "required_documents": [key.value for key in sufficiency.required],
                "missing_documents": [key.value for key in sufficiency.missing],
                "document_findings": document_findings or [],
            },
            base_amount_usd=facts.base_amount_usd,
            remaining_amount_usd=facts.remaining_amount_usd,
        )

    # the final rule always decides; an empty custom table is a programming error
    raise RuntimeError("Policy table produced no decision")
