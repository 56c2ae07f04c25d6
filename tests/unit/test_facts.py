"""Unit tests for fact derivation"""

import pytest
from datetime import timedelta
from decimal import Decimal
from chargeback_engine.domain.facts import derive_facts, derive_usd_amounts, is_refund_first_merchant
from chargeback_engine.utils.date_utils import utc_now


def test_usd_transaction_amount_is_base(make_transaction):
    """USD transaction amount is used directly"""
    tx = make_transaction(transaction_amount=Decimal("200"), transaction_currency="USD")
    base, remaining = derive_usd_amounts(tx)
    assert base == Decimal("200.00")
    assert remaining == Decimal("200.00")


def test_local_usd_amount_used_when_transaction_currency_differs(make_transaction):
    """Falls back to the local amount when only the local currency is USD"""
    tx = make_transaction(
        transaction_amount=Decimal("180"),
        transaction_currency="EUR",
        local_transaction_amount=Decimal("195.40"),
        local_transaction_currency="USD",
    )
    base, remaining = derive_usd_amounts(tx)
    assert base == Decimal("195.40")
    assert remaining == Decimal("195.40")


def test_no_usd_amount_gives_none_base_and_zero_remaining(make_transaction):
    """Neither amount in USD: base is unknown, not zero"""
    tx = make_transaction(
        transaction_amount=Decimal("180"),
        transaction_currency="EUR",
        local_transaction_amount=Decimal("180"),
        local_transaction_currency="EUR",
    )
    base, remaining = derive_usd_amounts(tx)
    assert base is None
    assert remaining == Decimal("0.00")


def test_refund_is_netted_and_clamped_at_zero(make_transaction):
    """Refunds larger than the charge never produce a negative remainder"""
    partial = make_transaction(refund_received=True, refund_amount=Decimal("50"))
    assert derive_usd_amounts(partial) == (Decimal("200.00"), Decimal("150.00"))

    excessive = make_transaction(refund_received=True, refund_amount=Decimal("250"))
    assert derive_usd_amounts(excessive) == (Decimal("200.00"), Decimal("0.00"))


def test_refund_not_netted_for_non_usd_transaction_currency(make_transaction):
    """Refund amounts are in transaction currency, so only USD transactions are netted"""
    tx = make_transaction(
        transaction_amount=Decimal("180"),
        transaction_currency="EUR",
        local_transaction_amount=Decimal("195.40"),
        local_transaction_currency="USD",
        refund_received=True,
        refund_amount=Decimal("180"),
    )
    base, remaining = derive_usd_amounts(tx)
    assert remaining == base


def test_days_are_floored(make_transaction):
    """25 days and 23 hours counts as 25 days"""
    as_of = utc_now()
    tx = make_transaction(
        transaction_time=as_of - timedelta(days=25, hours=23),
        settlement_date=as_of - timedelta(days=1, hours=1),
    )
    facts = derive_facts(tx, as_of)
    assert facts.days_since_transaction == 25
    assert facts.days_since_settlement == 1


def test_days_since_settlement_none_when_unsettled(make_transaction):
    facts = derive_facts(make_transaction(settled=False, settlement_date=None), utc_now())
    assert facts.days_since_settlement is None


@pytest.mark.parametrize(
    "pos_entry_mode,magstripe,chip,contactless",
    [(90, True, False, False), (91, True, False, False), (5, False, True, False), (7, False, False, True)],
)
def test_pos_entry_mode_flags(pos_entry_mode, magstripe, chip, contactless, make_transaction):
    facts = derive_facts(make_transaction(pos_entry_mode=pos_entry_mode), utc_now())
    assert facts.is_magstripe is magstripe
    assert facts.is_chip is chip
    assert facts.is_contactless is contactless


def test_security_flags(make_transaction):
    """OTP codes 2 and 212 mark the transaction secured; wallets are never unsecured"""
    assert derive_facts(make_transaction(secured_indication=212), utc_now()).is_secured_otp is True
    assert derive_facts(make_transaction(secured_indication=2), utc_now()).is_unsecured is False
    assert derive_facts(make_transaction(secured_indication=0), utc_now()).is_unsecured is True

    wallet = derive_facts(make_transaction(is_wallet_transaction=True, wallet_type="Apple Pay"), utc_now())
    assert wallet.is_unsecured is False
    assert wallet.is_blocked_wallet is True


def test_restricted_mcc(make_transaction):
    assert derive_facts(make_transaction(merchant_category_code=5411), utc_now()).is_restricted_mcc is True
    assert derive_facts(make_transaction(merchant_category_code=5999), utc_now()).is_restricted_mcc is False


def test_refund_first_merchant_heuristic():
    """Case-insensitive substring match against the configured patterns"""
    assert is_refund_first_merchant("FACEBK *Facebook Ads") is True
    assert is_refund_first_merchant("Meta Platforms Inc") is True
    assert is_refund_first_merchant("Acme Outdoor Supply") is False
    assert is_refund_first_merchant(None) is False
    assert is_refund_first_merchant("TikTok Ads", patterns=["tiktok"]) is True

