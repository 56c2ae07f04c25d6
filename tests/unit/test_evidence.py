"""Unit tests for evidence sufficiency and input fingerprinting"""

import pytest
from datetime import timedelta
from chargeback_engine.domain.evidence import check_sufficiency
from chargeback_engine.domain.exceptions import InvalidEvidenceError
from chargeback_engine.domain.facts import derive_facts
from chargeback_engine.domain.fingerprint import fingerprint_inputs
from chargeback_engine.domain.models import DocumentKey, EvidenceItem
from chargeback_engine.utils.date_utils import utc_now


def test_required_documents_present_and_valid():
    result = check_sufficiency(
        "NOT_RECEIVED",
        [EvidenceItem("invoice", True), EvidenceItem("tracking_proof", True)],
    )
    assert result.sufficient is True
    assert result.missing == ()


def test_invalid_items_do_not_count():
    """Invalid documents are reported missing, in table order"""
    result = check_sufficiency(
        "NOT_RECEIVED",
        [EvidenceItem("tracking_proof", False, "blurry"), EvidenceItem("receipt", True)],
    )
    assert result.sufficient is False
    assert result.missing == (DocumentKey.INVOICE, DocumentKey.TRACKING_PROOF)


def test_reason_code_is_normalized():
    result = check_sufficiency("  unauthorized ", [EvidenceItem("bank_statement", True)])
    assert result.sufficient is True
    assert result.required == (DocumentKey.BANK_STATEMENT,)


def test_unknown_reason_is_insufficient_by_default():
    """Unrecognised reasons go to review unless configured otherwise"""
    result = check_sufficiency("SUBSCRIPTION_TRAP", [])
    assert result.sufficient is False
    assert result.reason_recognised is False

    lenient = check_sufficiency("SUBSCRIPTION_TRAP", [], unknown_reason_requires_review=False)
    assert lenient.sufficient is True


def test_unknown_document_key_is_rejected():
    with pytest.raises(InvalidEvidenceError):
        check_sufficiency("NOT_RECEIVED", [EvidenceItem("selfie", True)])


def test_duplicate_items_count_valid_if_any_is_valid():
    result = check_sufficiency(
        "DUPLICATE",
        [EvidenceItem("bank_statement", False, "cropped"), EvidenceItem("bank_statement", True)],
    )
    assert result.sufficient is True


def test_fingerprint_ignores_evidence_order_and_invalidity_text(make_transaction):
    facts = derive_facts(make_transaction(), utc_now())
    first = fingerprint_inputs(
        facts,
        "NOT_RECEIVED",
        None,
        [EvidenceItem("invoice", True), EvidenceItem("tracking_proof", False, "blurry")],
    )
    second = fingerprint_inputs(
        facts,
        "not_received",
        "",
        [EvidenceItem("tracking_proof", False, "wrong parcel"), EvidenceItem("invoice", True)],
    )
    assert first == second
    assert len(first) == 64


def test_fingerprint_changes_with_logical_inputs(make_transaction):
    facts = derive_facts(make_transaction(), utc_now())
    evidence = [EvidenceItem("invoice", True), EvidenceItem("tracking_proof", True)]
    baseline = fingerprint_inputs(facts, "NOT_RECEIVED", None, evidence)

    assert fingerprint_inputs(facts, "WRONG_ITEM", None, evidence) != baseline
    assert fingerprint_inputs(facts, "NOT_RECEIVED", "parcel never arrived", evidence) != baseline
    assert fingerprint_inputs(
        facts, "NOT_RECEIVED", None, [EvidenceItem("invoice", True), EvidenceItem("tracking_proof", False)]
    ) != baseline

    refunded = derive_facts(make_transaction(refund_received=True, refund_amount=50), utc_now())
    assert fingerprint_inputs(refunded, "NOT_RECEIVED", None, evidence) != baseline


def test_fingerprint_moves_with_transaction_age(make_transaction):
    """A day later the age facts differ, so the same request is evaluated afresh"""
    tx = make_transaction()
    evidence = [EvidenceItem("invoice", True), EvidenceItem("tracking_proof", True)]
    now = utc_now()

    same_day = fingerprint_inputs(derive_facts(tx, now), "NOT_RECEIVED", None, evidence)
    later_that_day = fingerprint_inputs(derive_facts(tx, now + timedelta(hours=1)), "NOT_RECEIVED", None, evidence)
    next_day = fingerprint_inputs(derive_facts(tx, now + timedelta(days=1)), "NOT_RECEIVED", None, evidence)

    assert later_that_day == same_day
    assert next_day != same_day
