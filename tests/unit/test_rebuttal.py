"""Unit tests for the rebuttal evidence assessor"""

from datetime import datetime, timezone
from chargeback_engine.domain.rebuttal import CriteriaEvidenceAssessor, default_assessor


def test_strong_rebuttal_is_sufficient(make_transaction):
    tx = make_transaction(transaction_time=datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc))
    note = (
        "I contacted Acme Outdoor Supply about order 5521 on 2026-03-10. "
        "Support acknowledged the parcel was lost and agreed to refund me."
    )
    files = [{"name": "email.pdf", "type": "application/pdf"}]

    assessment = default_assessor().assess(tx, note, files)

    assert assessment.sufficient is True
    assert set(assessment.criteria_met) == {
        "mentions_merchant_or_order",
        "attempted_resolution",
        "relevant_date",
        "merchant_acknowledgment",
        "readable_attachment",
    }
    assert assessment.summary.startswith("5 of 5 criteria met")


def test_vague_rebuttal_is_insufficient(make_transaction):
    assessment = default_assessor().assess(make_transaction(), "I still want my money back", [])
    assert assessment.sufficient is False
    assert assessment.criteria_met == []


def test_dates_far_from_purchase_do_not_count(make_transaction):
    tx = make_transaction(transaction_time=datetime(2026, 3, 2, tzinfo=timezone.utc))
    assessment = default_assessor().assess(tx, "bought it on 01/01/2025", [])
    assert "relevant_date" not in assessment.criteria_met

    assessment = default_assessor().assess(tx, "bought it on 28/02/2026", [])
    assert "relevant_date" in assessment.criteria_met


def test_minimum_criteria_is_configurable(make_transaction):
    note = "I emailed the merchant"
    strict = CriteriaEvidenceAssessor(min_criteria=3).assess(make_transaction(), note, [])
    lenient = CriteriaEvidenceAssessor(min_criteria=2).assess(make_transaction(), note, [])
    assert strict.sufficient is False
    assert lenient.sufficient is True


def test_unreadable_attachment_is_ignored(make_transaction):
    files = [{"name": "notes.docx", "type": "application/msword"}, {"name": "photo.png", "type": "image/png"}]
    assessment = default_assessor().assess(make_transaction(), "", files)
    assert assessment.criteria_met == ["readable_attachment"]
