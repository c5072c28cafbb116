"""Webhook endpoint model: a tenant-configured HTTP destination."""
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from webhook_engine.database import Base, utcnow


class WebhookEndpoint(Base):
    """Model for tenant webhook endpoints and their event subscriptions."""

    __tablename__ = "webhook_endpoints"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(100), nullable=False, index=True)
    url = Column(String(2048), nullable=False)
    secret = Column(String(64), nullable=False)  # issued once, never rewritten
    events = Column(JSON, nullable=False, default=list)  # exact, "prefix.*" or "*"
    active = Column(Boolean, default=True, nullable=False)
    description = Column(Text, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    deliveries = relationship("WebhookDelivery", back_populates="endpoint")

    def __repr__(self):
        return f"<WebhookEndpoint(id={self.id}, tenant='{self.tenant_id}', url='{self.url}')>"
