"""Dependency injection for FastAPI endpoints"""

from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from chargeback_engine.domain.models import Actor
from chargeback_engine.domain.rebuttal import EvidenceAssessor, default_assessor
from chargeback_engine.infrastructure.clients.card_network import CardNetworkGateway, build_card_network_gateway
from chargeback_engine.infrastructure.clients.ledger import LedgerClient
from chargeback_engine.infrastructure.database.session import get_session_factory
from chargeback_engine.services.delivery import OutboundDeliveryWorker


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_ledger_client() -> LedgerClient:
    """Provide credit ledger client instance"""
    return LedgerClient()


def get_card_network_gateway() -> CardNetworkGateway:
    """Provide the configured card network gateway (stub when no API base is set)"""
    return build_card_network_gateway()


def get_evidence_assessor() -> EvidenceAssessor:
    return default_assessor()


def get_delivery_worker(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    ledger_client: LedgerClient = Depends(get_ledger_client),
    network_gateway: CardNetworkGateway = Depends(get_card_network_gateway),
) -> OutboundDeliveryWorker:
    return OutboundDeliveryWorker(session_factory, ledger_client, network_gateway)


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: str = Header(default="system"),
) -> Actor:
    """
    Caller identity asserted by the upstream auth gateway.

    Authentication happens in front of this service; these headers carry
    the already-verified identity and role.
    """
    return Actor(actor_id=x_actor_id, role=x_actor_role.strip().lower())
