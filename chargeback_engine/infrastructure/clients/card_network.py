"""Card network adapter boundary for chargeback and pre-arbitration filings"""

import logging
from typing import Any, Dict, Optional

import httpx

from chargeback_engine.config import settings
from chargeback_engine.domain.exceptions import CardNetworkError
from chargeback_engine.infrastructure.clients.base import RetryingHttpClient

logger = logging.getLogger(__name__)


class CardNetworkGateway:
    """Interface every network integration implements"""

    async def file_chargeback(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        raise NotImplementedError

    async def file_prearbitration(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        raise NotImplementedError


class StubCardNetworkGateway(CardNetworkGateway):
    """Acknowledges filings without contacting a network; used until an integration is configured"""

    async def file_chargeback(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        logger.info(
            "Chargeback filing recorded by stub gateway",
            extra={"network": payload.get("network"), "transaction_id": payload.get("transaction_id")},
        )
        return f"stub-cb-{idempotency_key}"

    async def file_prearbitration(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        logger.info(
            "Pre-arbitration filing recorded by stub gateway",
            extra={"network": payload.get("network"), "transaction_id": payload.get("transaction_id")},
        )
        return f"stub-pa-{idempotency_key}"


class HttpCardNetworkClient(RetryingHttpClient, CardNetworkGateway):
    """Filing client for a network dispute API"""

    metric_kind = "card_network"

    def __init__(self, api_base: str, **kwargs):
        super().__init__(**kwargs)
        self.api_base = api_base.rstrip("/")

    async def _file(self, path: str, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        url = f"{self.api_base}/{payload.get('network', 'visa')}/{path}"
        try:
            response = await self.post_with_retry(url, payload, idempotency_key)
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            raise CardNetworkError(f"Card network filing to {url} failed: {e}") from e
        return response.get("case_id") or response.get("reference")

    async def file_chargeback(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        return await self._file("chargebacks", payload, idempotency_key)

    async def file_prearbitration(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        return await self._file("prearbitrations", payload, idempotency_key)


def build_card_network_gateway(api_base: Optional[str] = None) -> CardNetworkGateway:
    api_base = api_base or settings.card_network_api_base
    if api_base:
        return HttpCardNetworkClient(api_base)
    return StubCardNetworkGateway()
