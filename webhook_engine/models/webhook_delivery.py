"""Webhook delivery model and its status state machine."""
import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from webhook_engine.database import Base, utcnow


class DeliveryStatus(str, enum.Enum):
    """Lifecycle states of one delivery attempt-chain."""

    PENDING = "pending"
    QUEUED = "queued"
    SUCCESS = "success"
    RETRYING = "retrying"
    FAILED = "failed"
    CANCELLED = "cancelled"


CLAIMABLE_STATUSES = (DeliveryStatus.PENDING.value, DeliveryStatus.RETRYING.value)

TERMINAL_STATUSES = (
    DeliveryStatus.SUCCESS.value,
    DeliveryStatus.FAILED.value,
    DeliveryStatus.CANCELLED.value,
)

# QUEUED -> RETRYING/FAILED is also how orphaned claims are recycled.
ALLOWED_TRANSITIONS = {
    DeliveryStatus.PENDING.value: {
        DeliveryStatus.QUEUED.value,
        DeliveryStatus.CANCELLED.value,
    },
    DeliveryStatus.QUEUED.value: {
        DeliveryStatus.SUCCESS.value,
        DeliveryStatus.RETRYING.value,
        DeliveryStatus.FAILED.value,
        DeliveryStatus.CANCELLED.value,
    },
    DeliveryStatus.RETRYING.value: {
        DeliveryStatus.QUEUED.value,
        DeliveryStatus.CANCELLED.value,
    },
    DeliveryStatus.SUCCESS.value: set(),
    DeliveryStatus.FAILED.value: set(),
    DeliveryStatus.CANCELLED.value: set(),
}


def can_transition(current: str, target: str) -> bool:
    """Return True if the state machine allows ``current -> target``."""
    return target in ALLOWED_TRANSITIONS.get(current, set())


class WebhookDelivery(Base):
    """Model for one event's delivery to one endpoint, across all attempts."""

    __tablename__ = "webhook_deliveries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    endpoint_id = Column(
        Integer, ForeignKey("webhook_endpoints.id"), nullable=False, index=True
    )
    tenant_id = Column(String(100), nullable=False, index=True)
    event_type = Column(String(255), nullable=False)
    payload = Column(Text, nullable=False)  # exact JSON body, signed and sent as-is
    status = Column(String(20), nullable=False, default=DeliveryStatus.PENDING.value)
    attempts = Column(Integer, default=0, nullable=False)
    next_attempt_at = Column(DateTime, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    response_code = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    endpoint = relationship("WebhookEndpoint", back_populates="deliveries")

    __table_args__ = (
        Index("idx_webhook_deliveries_due", "status", "next_attempt_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return (
            f"<WebhookDelivery(id={self.id}, event='{self.event_type}', "
            f"status='{self.status}', attempts={self.attempts})>"
        )
