"""Celery tasks driving webhook delivery."""
import logging
from typing import Optional

from webhook_engine.services.engine import get_queue_claimer
from webhook_engine.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task
def deliver_webhook(delivery_id: str) -> bool:
    """
    First attempt for a just-dispatched delivery.

    Goes through the same claim path as the periodic sweep, so a delivery
    already picked up by a sweep is simply skipped here.
    """
    logger.info(f"🚀 Immediate delivery attempt for {delivery_id}")
    return get_queue_claimer().process_delivery(delivery_id)


@celery_app.task
def process_webhook_queue(batch_size: Optional[int] = None) -> int:
    """Periodic sweep of due pending/retrying deliveries."""
    claimed = get_queue_claimer().process_queue(batch_size)
    if claimed:
        logger.info(f"🎉 Webhook sweep claimed {claimed} deliveries")
    return claimed


@celery_app.task
def reclaim_stale_deliveries() -> int:
    """Recycle deliveries whose worker died between claiming and recording."""
    reclaimed = get_queue_claimer().reclaim_stale_claims()
    if reclaimed:
        logger.warning(f"♻️ Reclaimed {reclaimed} stale webhook deliveries")
    return reclaimed
