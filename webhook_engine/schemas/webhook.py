"""Webhook request and response schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EndpointCreate(BaseModel):
    """Schema for registering a webhook endpoint."""

    url: str = Field(..., min_length=1, max_length=2048)
    events: List[str] = Field(..., min_length=1, description="Event names, 'prefix.*' or '*'")
    description: Optional[str] = Field(None, max_length=1000)


class EndpointUpdate(BaseModel):
    """Schema for updating an endpoint (all fields optional)."""

    url: Optional[str] = Field(None, min_length=1, max_length=2048)
    events: Optional[List[str]] = Field(None, min_length=1)
    description: Optional[str] = Field(None, max_length=1000)


class EndpointResponse(BaseModel):
    """Schema for endpoint responses. Never includes the secret."""

    id: int
    tenant_id: str
    url: str
    events: List[str]
    active: bool
    description: Optional[str] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EndpointCreatedResponse(EndpointResponse):
    """Returned once, on creation: the only response carrying the secret."""

    secret: str


class EventDispatchRequest(BaseModel):
    """Event emitted by tenant application code."""

    event_type: str = Field(..., min_length=1, max_length=255)
    data: Dict[str, Any] = Field(default_factory=dict)


class EventDispatchResponse(BaseModel):
    """Deliveries created for a dispatched event."""

    event_type: str
    delivery_ids: List[str]


class DeliveryResponse(BaseModel):
    """Schema for delivery status responses."""

    id: str
    endpoint_id: int
    tenant_id: str
    event_type: str
    payload: str
    status: str
    attempts: int
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    response_code: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeliveryListResponse(BaseModel):
    """Paginated delivery list."""

    items: List[DeliveryResponse]
    total: int
    limit: int
    offset: int


class DeliveryStatsResponse(BaseModel):
    """Per-status delivery counts for a tenant."""

    total: int
    pending: int
    queued: int
    success: int
    retrying: int
    failed: int
    cancelled: int
