"""
End-to-end dispute scenarios through the HTTP API.

Scenarios:
- A: $10 purchase, automatic write-off with permanent credit
- B: settled $200 purchase not received, filed with temporary credit
- C: unsettled 30-day-old purchase, declined before any wait rule
- D: OTP-secured purchase claimed as unauthorized, sent to fraud review
- E: contested chargeback accepted by the bank, credit reversed once
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from chargeback_engine.domain.models import DecisionKind
from chargeback_engine.utils.date_utils import utc_now

NOT_RECEIVED_EVIDENCE = [
    {"key": "invoice", "is_valid": True},
    {"key": "tracking_proof", "is_valid": True},
]


def _evaluate(client: TestClient, tx, dispute, evidence=None) -> dict:
    response = client.post(
        "/v1/evaluate",
        json={"transaction_id": str(tx.id), "dispute_id": str(dispute.id), "evidence_items": evidence or []},
    )
    assert response.status_code == 200
    return response.json()


@pytest.mark.e2e
def test_scenario_a_small_amount_write_off(client: TestClient, transaction_factory, dispute_factory, fake_ledger):
    """
    $10 USD, no refund
    Expected: write-off approved, permanent credit sent to the ledger
    """
    tx = transaction_factory(transaction_amount=Decimal("10.00"), local_transaction_amount=Decimal("10.00"))
    data = _evaluate(client, tx, dispute_factory(tx))

    assert data["decision_kind"] == DecisionKind.APPROVE_WRITEOFF.value
    assert data["flags"]["write_off_approved"] is True
    assert [event["event"] for event in fake_ledger.events] == ["PERMANENT_CREDIT_ISSUED"]
    assert fake_ledger.events[0]["payload"]["amount"] == "10.00"


@pytest.mark.e2e
def test_scenario_b_not_received_with_tracking(
    client: TestClient, transaction_factory, dispute_factory, fake_ledger, fake_network
):
    """
    Settled 25 days ago, $200, valid invoice and tracking proof
    Expected: filed with a $200 temporary credit
    """
    tx = transaction_factory()
    data = _evaluate(client, tx, dispute_factory(tx), NOT_RECEIVED_EVIDENCE)

    assert data["decision_kind"] == DecisionKind.FILE_CHARGEBACK_WITH_TEMP_CREDIT.value
    assert Decimal(data["remaining_amount_usd"]) == Decimal("200")
    assert fake_ledger.events[0]["payload"]["amount"] == "200.00"
    assert fake_network.filings[0]["payload"]["network"] == "visa"

    representment = client.get(f"/v1/representments/{tx.id}")
    assert representment.status_code == 200
    assert representment.json()["status"] == "no_representment"
    assert representment.json()["temporary_credit_provided"] is True


@pytest.mark.e2e
def test_scenario_c_unsettled_too_long(client: TestClient, transaction_factory, dispute_factory, fake_network):
    """
    Same as B but unsettled and 30 days old
    Expected: declined; nothing filed
    """
    tx = transaction_factory(settled=False, settlement_date=None, transaction_time=utc_now() - timedelta(days=30))
    data = _evaluate(client, tx, dispute_factory(tx), NOT_RECEIVED_EVIDENCE)

    assert data["decision_kind"] == DecisionKind.DECLINE_NOT_ELIGIBLE.value
    assert data["policy_code"].endswith(":B4")
    assert data["next_actions"] == []
    assert fake_network.filings == []


@pytest.mark.e2e
def test_scenario_d_otp_conflicts_with_unauthorized(client: TestClient, transaction_factory, dispute_factory, fake_ledger):
    """
    OTP-secured purchase, reason UNAUTHORIZED
    Expected: manual review with fraud escalation, no temporary credit
    """
    tx = transaction_factory(secured_indication=212)
    data = _evaluate(
        client, tx, dispute_factory(tx, reason_code="UNAUTHORIZED"), [{"key": "bank_statement", "is_valid": True}]
    )

    assert data["decision_kind"] == DecisionKind.MANUAL_REVIEW.value
    assert data["reason_summary"] == "OTP present conflicts with unauthorized claim"
    assert fake_ledger.events == []

    tasks = client.get("/v1/ops/tasks", params={"transaction_id": str(tx.id)}).json()
    assert sorted(task["kind"] for task in tasks) == ["fraud_escalation", "manual_review"]


@pytest.mark.e2e
def test_scenario_e_accept_reverses_credit_once(
    client: TestClient, transaction_factory, dispute_factory, fake_ledger, admin_headers
):
    """
    Contested chargeback accepted by the bank
    Expected: credit reversed exactly once; a second accept is refused
    """
    tx = transaction_factory()
    _evaluate(client, tx, dispute_factory(tx), NOT_RECEIVED_EVIDENCE)
    client.post(f"/v1/representments/{tx.id}/merchant-response", json={"contested": True, "reason_code": "13.1"})

    accepted = client.post(f"/v1/representments/{tx.id}/accept", json={}, headers=admin_headers)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted_by_bank"

    again = client.post(f"/v1/representments/{tx.id}/accept", json={}, headers=admin_headers)
    assert again.status_code == 409

    reversals = [event for event in fake_ledger.events if event["event"] == "TEMP_CREDIT_REVERSED"]
    assert len(reversals) == 1
    assert reversals[0]["payload"]["amount"] == "200.00"

    audit = client.get(f"/v1/transactions/{tx.id}/audit").json()["entries"]
    assert [entry["action"] for entry in audit].count("temp_credit_reversed") == 1
