"""Customer-facing eligibility pre-check run before a dispute is opened"""

from datetime import datetime
from typing import Optional

from chargeback_engine.config import PolicyThresholds
from chargeback_engine.domain.facts import to_money
from chargeback_engine.domain.models import EligibilityResult, Transaction
from chargeback_engine.utils.date_utils import started_days_between


def fully_reversed(tx: Transaction) -> bool:
    """Nothing left to dispute once refunds reach the original amount"""
    refunded = to_money(tx.refund_amount) if tx.refund_amount is not None else to_money(0)
    return to_money(tx.transaction_amount) - refunded <= 0


def check_eligibility(
    tx: Transaction,
    as_of: datetime,
    thresholds: Optional[PolicyThresholds] = None,
) -> EligibilityResult:
    """
    Advisory pre-screen; the policy evaluator stays authoritative.

    The amount check uses the local amount the customer saw on their
    statement, falling back to the transaction amount. Age counts a
    started day as a full day.
    """
    thresholds = thresholds or PolicyThresholds()
    reasons = []

    if tx.refund_received or fully_reversed(tx):
        reasons.append("Refund already received or transaction fully reversed")

    amount = tx.local_transaction_amount if tx.local_transaction_amount is not None else tx.transaction_amount
    if to_money(amount) < thresholds.eligibility_min_amount:
        reasons.append(f"Amount is below the minimum of {thresholds.eligibility_min_amount}")

    if started_days_between(tx.transaction_time, as_of) > thresholds.max_transaction_age_days:
        reasons.append(f"Transaction is older than {thresholds.max_transaction_age_days} days")

    return EligibilityResult(eligible=not reasons, reasons=reasons)
