"""Credit ledger client: temporary, permanent and reversal credit events"""

from typing import Any, Dict, Optional

import httpx

from chargeback_engine.config import settings
from chargeback_engine.domain.exceptions import CreditLedgerError
from chargeback_engine.infrastructure.clients.base import RetryingHttpClient

TEMP_CREDIT_ISSUED = "TEMP_CREDIT_ISSUED"
TEMP_CREDIT_REVERSED = "TEMP_CREDIT_REVERSED"
PERMANENT_CREDIT_ISSUED = "PERMANENT_CREDIT_ISSUED"


class LedgerClient(RetryingHttpClient):
    """Client for sending credit events to the ledger service"""

    metric_kind = "ledger"

    def __init__(self, webhook_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.webhook_url = webhook_url or settings.ledger_webhook_url

    async def send_event(self, event: str, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        """Send one ledger event; returns the ledger's reference when it provides one"""
        body = {"event": event, **payload}
        try:
            response = await self.post_with_retry(self.webhook_url, body, idempotency_key)
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            raise CreditLedgerError(f"Ledger rejected {event} after {self.max_retries} attempts: {e}") from e
        return response.get("reference") or response.get("id")

    async def issue_temporary_credit(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        return await self.send_event(TEMP_CREDIT_ISSUED, payload, idempotency_key)

    async def issue_permanent_credit(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        return await self.send_event(PERMANENT_CREDIT_ISSUED, payload, idempotency_key)

    async def reverse_temporary_credit(self, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        return await self.send_event(TEMP_CREDIT_REVERSED, payload, idempotency_key)
