"""Integration tests for post-commit delivery of ledger and network calls"""

import uuid
from chargeback_engine.infrastructure.database.models import AuditEntry, OpsTask, OutboundAction
from chargeback_engine.services.delivery import OutboundDeliveryWorker
from chargeback_engine.services.evaluation import EvaluationService


def _file_chargeback(db, transaction_factory, dispute_factory, evidence):
    tx = transaction_factory()
    dispute = dispute_factory(tx)
    result = EvaluationService(db).evaluate(tx.id, dispute.id, evidence)
    return tx, result


async def test_delivers_credit_and_filing(
    db, session_factory, fake_ledger, fake_network, transaction_factory, dispute_factory, not_received_evidence
):
    tx, result = _file_chargeback(db, transaction_factory, dispute_factory, not_received_evidence)
    worker = OutboundDeliveryWorker(session_factory, fake_ledger, fake_network)

    await worker.deliver(result.outbound_action_ids)

    db.expire_all()
    actions = {action.kind: action for action in db.query(OutboundAction).filter_by(transaction_id=tx.id)}
    assert all(action.status == "delivered" for action in actions.values())
    assert all(action.attempts == 1 for action in actions.values())

    credit_action = actions["ledger.temp_credit"]
    assert credit_action.external_reference == "ledger-1"
    assert fake_ledger.events[0]["event"] == "TEMP_CREDIT_ISSUED"
    assert fake_ledger.events[0]["payload"]["amount"] == "200.00"
    assert fake_ledger.events[0]["payload"]["currency"] == "USD"
    assert fake_ledger.events[0]["idempotency_key"] == str(credit_action.id)

    assert fake_network.filings[0]["kind"] == "chargeback"
    assert fake_network.filings[0]["payload"]["network"] == "visa"


async def test_failed_call_is_recorded_and_escalated(
    db, session_factory, failing_ledger, fake_network, transaction_factory, dispute_factory, not_received_evidence
):
    """The decision stands; the failure is audited and queued for ops"""
    tx, result = _file_chargeback(db, transaction_factory, dispute_factory, not_received_evidence)
    worker = OutboundDeliveryWorker(session_factory, failing_ledger, fake_network)

    await worker.deliver(result.outbound_action_ids)

    db.expire_all()
    actions = {action.kind: action for action in db.query(OutboundAction).filter_by(transaction_id=tx.id)}
    assert actions["ledger.temp_credit"].status == "failed"
    assert "Ledger rejected" in actions["ledger.temp_credit"].last_error
    assert actions["network.chargeback_filing"].status == "delivered"

    failure = db.query(AuditEntry).filter_by(transaction_id=tx.id, action="action_failed").one()
    assert failure.details["kind"] == "ledger.temp_credit"
    task = db.query(OpsTask).filter_by(transaction_id=tx.id, kind="dispatch_failure").one()
    assert task.details["action_id"] == str(actions["ledger.temp_credit"].id)

    db.refresh(tx)
    assert tx.dispute_status == "chargeback_filed"


async def test_repeated_failures_keep_one_ops_task(
    db, session_factory, failing_ledger, fake_network, transaction_factory, dispute_factory, not_received_evidence
):
    """Every failed attempt is audited, but a stuck action gets a single ops task"""
    tx, result = _file_chargeback(db, transaction_factory, dispute_factory, not_received_evidence)
    worker = OutboundDeliveryWorker(session_factory, failing_ledger, fake_network)

    await worker.deliver(result.outbound_action_ids)
    await worker.deliver(result.outbound_action_ids)

    db.expire_all()
    assert db.query(AuditEntry).filter_by(transaction_id=tx.id, action="action_failed").count() == 2
    task = db.query(OpsTask).filter_by(transaction_id=tx.id, kind="dispatch_failure").one()
    assert task.details["attempts"] == 2
    assert task.details["kind"] == "ledger.temp_credit"


async def test_failed_action_can_be_redelivered(
    db,
    session_factory,
    fake_ledger,
    failing_ledger,
    fake_network,
    transaction_factory,
    dispute_factory,
    not_received_evidence,
):
    tx, result = _file_chargeback(db, transaction_factory, dispute_factory, not_received_evidence)
    await OutboundDeliveryWorker(session_factory, failing_ledger, fake_network).deliver(
        result.outbound_action_ids
    )

    worker = OutboundDeliveryWorker(session_factory, fake_ledger, fake_network)
    statuses = [await worker.deliver_one(action_id) for action_id in result.outbound_action_ids]

    assert statuses == ["delivered", "delivered"]
    assert len(fake_ledger.events) == 1
    assert len(fake_network.filings) == 1

    db.expire_all()
    credit_action = db.query(OutboundAction).filter_by(transaction_id=tx.id, kind="ledger.temp_credit").one()
    assert credit_action.attempts == 2
    assert credit_action.last_error is None


async def test_missing_action_is_skipped(session_factory, fake_ledger, fake_network):
    worker = OutboundDeliveryWorker(session_factory, fake_ledger, fake_network)
    assert await worker.deliver_one(uuid.uuid4()) is None
    assert fake_ledger.events == []
