"""Database models."""
from webhook_engine.models.webhook_delivery import DeliveryStatus, WebhookDelivery
from webhook_engine.models.webhook_endpoint import WebhookEndpoint

__all__ = ["DeliveryStatus", "WebhookDelivery", "WebhookEndpoint"]
