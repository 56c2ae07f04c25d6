"""Shared HTTP POST with exponential backoff retry logic"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from chargeback_engine.config import settings
from chargeback_engine.infrastructure.observability.metrics import dispatch_failure_counter, dispatch_latency_histogram

logger = logging.getLogger(__name__)


class RetryingHttpClient:
    """Base for outbound clients that must survive transient failures"""

    metric_kind = "http"

    def __init__(
        self,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.transport = transport

    async def post_with_retry(self, url: str, payload: Dict[str, Any], idempotency_key: str) -> Dict[str, Any]:
        """
        POST payload with retry logic and return the decoded JSON body.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base, ... (base * 2^(attempt-1))
        - Retries on non-2xx responses and network failures
        - The same Idempotency-Key is sent on every attempt
        - Re-raises the last httpx error once retries are exhausted
        """
        attempt = 0
        headers = {"Idempotency-Key": idempotency_key}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with dispatch_latency_histogram.labels(kind=self.metric_kind).time():
                        response = await client.post(url, json=payload, headers=headers)
                        response.raise_for_status()
                    if not response.content:
                        return {}
                    return response.json()

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    dispatch_failure_counter.labels(kind=self.metric_kind).inc()
                    logger.warning(
                        f"{self.metric_kind} call failed (attempt {attempt}/{self.max_retries}): {e}",
                        extra={"idempotency_key": idempotency_key},
                    )

                    if attempt >= self.max_retries:
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
