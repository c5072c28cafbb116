"""Process-wide wiring of the delivery engine components."""
from functools import lru_cache

from webhook_engine.config import WebhookConfig
from webhook_engine.database import SessionLocal
from webhook_engine.services.delivery_store import DeliveryStore
from webhook_engine.services.dispatcher import Dispatcher
from webhook_engine.services.queue_claimer import QueueClaimer
from webhook_engine.services.sender import HttpSender


def schedule_delivery(delivery_id: str) -> None:
    """Queue the first attempt of a freshly committed delivery on Celery."""
    from webhook_engine.tasks.webhook_tasks import deliver_webhook

    deliver_webhook.delay(delivery_id)


@lru_cache
def get_webhook_config() -> WebhookConfig:
    return WebhookConfig.from_settings()


@lru_cache
def get_delivery_store() -> DeliveryStore:
    return DeliveryStore(SessionLocal, get_webhook_config())


@lru_cache
def get_queue_claimer() -> QueueClaimer:
    config = get_webhook_config()
    return QueueClaimer(
        get_delivery_store(),
        HttpSender(timeout=config.request_timeout_seconds),
        SessionLocal,
    )


@lru_cache
def get_dispatcher() -> Dispatcher:
    return Dispatcher(SessionLocal, get_delivery_store(), schedule=schedule_delivery)
