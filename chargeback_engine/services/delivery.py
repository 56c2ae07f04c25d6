"""Deliver queued external actions after the originating transaction commits"""

import logging
import uuid
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from chargeback_engine.domain.exceptions import DispatchError
from chargeback_engine.domain.models import AuditAction, OpsTaskKind, OutboundKind
from chargeback_engine.infrastructure.clients.card_network import CardNetworkGateway
from chargeback_engine.infrastructure.clients.ledger import LedgerClient
from chargeback_engine.infrastructure.database.models import OutboundAction
from chargeback_engine.infrastructure.database.repositories import (
    AuditRepository,
    OpsTaskRepository,
    OutboundActionRepository,
)
from chargeback_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

DELIVERABLE_STATUSES = ("pending", "failed")


class OutboundDeliveryWorker:
    """
    Fire-and-record delivery of ledger and card-network calls.

    Each action gets its own session and commit, so one failed call never
    rolls back another action or the decision that produced it.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ledger_client: LedgerClient,
        network_gateway: CardNetworkGateway,
    ):
        self.session_factory = session_factory
        self.ledger_client = ledger_client
        self.network_gateway = network_gateway
        self._routes: Dict[str, Callable] = {
            OutboundKind.TEMP_CREDIT.value: ledger_client.issue_temporary_credit,
            OutboundKind.PERMANENT_CREDIT.value: ledger_client.issue_permanent_credit,
            OutboundKind.TEMP_CREDIT_REVERSAL.value: ledger_client.reverse_temporary_credit,
            OutboundKind.CHARGEBACK_FILING.value: network_gateway.file_chargeback,
            OutboundKind.PREARBITRATION_FILING.value: network_gateway.file_prearbitration,
        }

    async def deliver(self, action_ids: Iterable[uuid.UUID]) -> None:
        for action_id in action_ids:
            await self.deliver_one(action_id)

    async def deliver_one(self, action_id: uuid.UUID) -> Optional[str]:
        """Deliver one action; returns its final status, or None if it no longer exists"""
        db = self.session_factory()
        try:
            action = OutboundActionRepository(db).get(action_id)
            if action is None:
                logger.warning("Outbound action vanished before delivery", extra={"action_id": str(action_id)})
                return None
            if action.status not in DELIVERABLE_STATUSES:
                return action.status

            send = self._routes[action.kind]
            action.attempts = (action.attempts or 0) + 1
            action.last_attempt_at = utc_now()
            try:
                reference = await send(action.payload, str(action.id))
            except DispatchError as e:
                self._record_failure(db, action, e)
            else:
                action.status = "delivered"
                action.delivered_at = utc_now()
                action.external_reference = reference
                action.last_error = None
                logger.info(
                    "Outbound action delivered",
                    extra={"action_id": str(action.id), "kind": action.kind, "reference": reference},
                )
            db.commit()
            return action.status
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _record_failure(self, db: Session, action: OutboundAction, error: DispatchError) -> None:
        action.status = "failed"
        action.last_error = str(error)
        logger.error(
            f"Outbound action failed: {error}",
            extra={"action_id": str(action.id), "kind": action.kind, "attempts": action.attempts},
        )
        AuditRepository(db).append(
            action.transaction_id,
            AuditAction.ACTION_FAILED.value,
            note=str(error),
            details={"action_id": str(action.id), "kind": action.kind},
        )
        tasks = OpsTaskRepository(db)
        existing = tasks.find_open_for_action(action.transaction_id, OpsTaskKind.DISPATCH_FAILURE.value, action.id)
        if existing is not None:
            existing.details = {**existing.details, "error": str(error), "attempts": action.attempts}
            return
        tasks.open_task(
            action.transaction_id,
            OpsTaskKind.DISPATCH_FAILURE.value,
            {"action_id": str(action.id), "kind": action.kind, "error": str(error), "attempts": action.attempts},
        )
