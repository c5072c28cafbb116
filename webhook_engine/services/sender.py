"""Outbound HTTP sender for claimed deliveries."""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from webhook_engine.services.delivery_store import ClaimedDelivery
from webhook_engine.services.signature import build_headers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    """Outcome of one HTTP attempt."""

    success: bool
    response_code: Optional[int] = None
    error: Optional[str] = None


class Sender(ABC):
    """Anything that can attempt one delivery and report how it went."""

    @abstractmethod
    def send(self, claim: ClaimedDelivery) -> SendResult:
        """Attempt one delivery. Transport problems are returned, not raised."""


class HttpSender(Sender):
    """
    POSTs the stored payload to the endpoint with signed headers.

    The body bytes are the ones captured at dispatch time, never
    re-serialised, so the signature a receiver recomputes always matches.
    Transport failures are reported as results, not raised.
    """

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self._timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, claim: ClaimedDelivery) -> SendResult:
        timestamp = int(time.time())
        headers = build_headers(
            claim.payload,
            claim.secret,
            timestamp,
            delivery_id=claim.delivery_id,
            event_type=claim.event_type,
        )

        try:
            response = self._client.post(
                claim.url,
                content=claim.payload.encode("utf-8"),
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            logger.warning(f"⏱️ Webhook {claim.delivery_id} to {claim.url} timed out")
            return SendResult(success=False, error="Request timeout")
        except httpx.RequestError as e:
            logger.warning(f"⚠️ Webhook {claim.delivery_id} to {claim.url} failed: {e}")
            return SendResult(success=False, error=str(e) or e.__class__.__name__)

        if 200 <= response.status_code < 300:
            return SendResult(success=True, response_code=response.status_code)

        return SendResult(
            success=False,
            response_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.text[:200]}",
        )

    def close(self) -> None:
        self._client.close()
