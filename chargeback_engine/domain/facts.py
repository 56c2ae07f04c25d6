"""Derive policy facts from a raw transaction snapshot"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from chargeback_engine.domain.models import Transaction, TransactionFacts
from chargeback_engine.utils.date_utils import whole_days_between

USD = "USD"
CENTS = Decimal("0.01")

SECURED_OTP_INDICATIONS = frozenset({2, 212})
MAGSTRIPE_POS_MODES = frozenset({90, 91})
CHIP_POS_MODES = frozenset({5})
CONTACTLESS_POS_MODES = frozenset({7})
BLOCKED_WALLET_TYPES = frozenset({"apple pay", "google pay"})

RESTRICTED_MCCS = frozenset(
    {5968, 4215, 5815, 6300, 5411, 7922, 7011, 4121, 4722, 9399, 4814, 7375, 7394, 4899, 7997}
)

DEFAULT_REFUND_FIRST_PATTERNS = ("facebook", "meta")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def is_refund_first_merchant(merchant_name: Optional[str], patterns: Iterable[str] = DEFAULT_REFUND_FIRST_PATTERNS) -> bool:
    """
    Case-insensitive substring match against merchants that refund on request.

    Low-confidence heuristic: "meta" also matches unrelated names such as
    "Metabolic Labs". Only the merchant-refund-first rule consults it, and a
    false positive merely delays filing by one refund request.
    """
    if not merchant_name:
        return False
    name = merchant_name.lower()
    return any(pattern.lower() in name for pattern in patterns if pattern)


def derive_usd_amounts(tx: Transaction):
    """Return (base_amount_usd, remaining_amount_usd)"""
    base: Optional[Decimal] = None
    if (tx.transaction_currency or "").upper() == USD:
        base = to_money(tx.transaction_amount)
    elif (tx.local_transaction_currency or "").upper() == USD and tx.local_transaction_amount is not None:
        base = to_money(tx.local_transaction_amount)

    remaining = base if base is not None else Decimal("0.00")
    if tx.refund_received and base is not None and (tx.transaction_currency or "").upper() == USD:
        refund = to_money(tx.refund_amount or 0)
        remaining = max(base - refund, Decimal("0.00"))

    if base is not None:
        remaining = min(remaining, base)
    return base, to_money(remaining)


def refund_covers_original(tx: Transaction) -> bool:
    """Refund is at least the original amount, compared in transaction currency"""
    if not tx.refund_received or tx.refund_amount is None:
        return False
    return to_money(tx.refund_amount) >= to_money(tx.transaction_amount)


def derive_facts(
    tx: Transaction,
    as_of: datetime,
    refund_first_patterns: Sequence[str] = DEFAULT_REFUND_FIRST_PATTERNS,
) -> TransactionFacts:
    base, remaining = derive_usd_amounts(tx)

    is_otp = tx.secured_indication in SECURED_OTP_INDICATIONS
    is_wallet = bool(tx.is_wallet_transaction)
    wallet_type = (tx.wallet_type or "").strip().lower()

    return TransactionFacts(
        base_amount_usd=base,
        remaining_amount_usd=remaining,
        days_since_transaction=whole_days_between(tx.transaction_time, as_of),
        days_since_settlement=whole_days_between(tx.settlement_date, as_of),
        is_secured_otp=is_otp,
        is_unsecured=not is_otp and not is_wallet,
        is_magstripe=tx.pos_entry_mode in MAGSTRIPE_POS_MODES,
        is_chip=tx.pos_entry_mode in CHIP_POS_MODES,
        is_contactless=tx.pos_entry_mode in CONTACTLESS_POS_MODES,
        is_restricted_mcc=tx.merchant_category_code in RESTRICTED_MCCS,
        is_facebook_meta=is_refund_first_merchant(tx.merchant_name, refund_first_patterns),
        is_wallet=is_wallet,
        is_blocked_wallet=is_wallet and wallet_type in BLOCKED_WALLET_TYPES,
        settled=bool(tx.settled),
        refund_received=bool(tx.refund_received),
        refund_covers_original=refund_covers_original(tx),
        merchant_category_code=tx.merchant_category_code,
    )
