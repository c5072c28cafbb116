"""Queue claimer: sweeps due deliveries, claims them one by one, and sends them.

Selection and claiming are two steps. The scan is a cheap lock-free read;
each candidate is then claimed in its own short transaction, which re-reads
the row under a lock and re-checks it is still claimable. The claim commits
before the sender runs, so a crash mid-send leaves the row in ``queued``
for :meth:`QueueClaimer.reclaim_stale_claims` to recycle.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from webhook_engine.database import utcnow
from webhook_engine.exceptions import ValidationError
from webhook_engine.models.webhook_delivery import DeliveryStatus
from webhook_engine.models.webhook_endpoint import WebhookEndpoint
from webhook_engine.services.delivery_store import DeliveryStore, consecutive_failures
from webhook_engine.services.endpoint_registry import deactivate_endpoint
from webhook_engine.services.sender import Sender, SendResult

logger = logging.getLogger(__name__)


class QueueClaimer:
    """Claims due deliveries and hands them to a :class:`Sender`."""

    def __init__(
        self,
        store: DeliveryStore,
        sender: Sender,
        session_factory: Callable[[], Session],
    ):
        self._store = store
        self._sender = sender
        self._session_factory = session_factory
        self._config = store.config

    def process_queue(
        self, batch_size: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        """
        Claim and send up to ``batch_size`` due deliveries.

        A failure on one delivery is logged and the batch moves on; nothing
        raised while handling a single row escapes this method.

        Returns:
            Number of deliveries this run moved to ``queued``

        Raises:
            ValidationError: If ``batch_size`` is below 1
        """
        limit = self._config.batch_size if batch_size is None else batch_size
        if limit < 1:
            raise ValidationError(f"batch_size must be at least 1, got {limit}")

        due_ids = self._store.list_due_deliveries(limit, now=now)
        if not due_ids:
            return 0

        logger.info(f"📦 Processing {len(due_ids)} due webhook deliveries")
        claimed = 0
        for delivery_id in due_ids:
            try:
                if self.process_delivery(delivery_id, now=now):
                    claimed += 1
            except Exception as e:
                logger.error(
                    f"💥 Failed to process delivery {delivery_id}: {str(e)}", exc_info=True
                )

        logger.info(f"✅ Claimed {claimed}/{len(due_ids)} webhook deliveries")
        return claimed

    def process_delivery(self, delivery_id: str, now: Optional[datetime] = None) -> bool:
        """
        Claim one delivery, send it, and record the outcome.

        Used both by the periodic sweep and by the immediate first attempt
        scheduled after dispatch.

        Returns:
            True if this call claimed the delivery
        """
        claim = self._store.claim_delivery(delivery_id, now=now)
        if claim is None:
            return False

        try:
            result = self._sender.send(claim)
        except Exception as e:
            logger.exception(f"💥 Sender crashed on delivery {delivery_id}: {e}")
            result = SendResult(success=False, error=f"Unexpected error: {e}")

        status = self._store.record_outcome(
            delivery_id,
            success=result.success,
            error=result.error,
            response_code=result.response_code,
            now=now,
        )

        if status == DeliveryStatus.FAILED.value:
            logger.warning(
                f"❌ Delivery {delivery_id} to {claim.url} failed permanently: {result.error}"
            )
            self._maybe_disable_endpoint(claim.tenant_id, claim.endpoint_id)
        return True

    def reclaim_stale_claims(self, now: Optional[datetime] = None) -> int:
        """Recycle deliveries held in ``queued`` longer than the stale-claim timeout."""
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self._config.stale_claim_seconds)
        return self._store.reclaim_stale(cutoff, now=now)

    def _maybe_disable_endpoint(self, tenant_id: str, endpoint_id: int) -> None:
        threshold = self._config.auto_disable_threshold
        if threshold <= 0:
            return

        with self._session_factory() as db:
            failures = consecutive_failures(db, endpoint_id, threshold)
            if failures < threshold:
                return
            endpoint = db.get(WebhookEndpoint, endpoint_id)
            if endpoint is None or not endpoint.active:
                return
            deactivate_endpoint(
                db,
                tenant_id,
                endpoint_id,
                reason=f"{failures} consecutive failed deliveries",
            )
