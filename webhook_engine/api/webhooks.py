"""Webhook endpoint, event dispatch and delivery status API."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from webhook_engine.database import get_db
from webhook_engine.exceptions import (
    ConfigurationError,
    DispatchError,
    NotFoundError,
    ValidationError,
)
from webhook_engine.models.webhook_delivery import DeliveryStatus
from webhook_engine.schemas.webhook import (
    DeliveryListResponse,
    DeliveryResponse,
    DeliveryStatsResponse,
    EndpointCreate,
    EndpointCreatedResponse,
    EndpointResponse,
    EndpointUpdate,
    EventDispatchRequest,
    EventDispatchResponse,
)
from webhook_engine.services import delivery_store, endpoint_registry
from webhook_engine.services.dispatcher import Dispatcher
from webhook_engine.services.engine import get_dispatcher

router = APIRouter(prefix="/api/tenants/{tenant_id}", tags=["webhooks"])


@router.post("/webhooks", response_model=EndpointCreatedResponse, status_code=201)
def create_endpoint(tenant_id: str, endpoint: EndpointCreate, db: Session = Depends(get_db)):
    """
    Register a webhook endpoint.

    The signing secret is generated server-side and returned only here.
    """
    try:
        return endpoint_registry.create_endpoint(
            db,
            tenant_id,
            url=endpoint.url,
            events=endpoint.events,
            description=endpoint.description,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=e.message)


@router.get("/webhooks", response_model=List[EndpointResponse])
def list_endpoints(
    tenant_id: str,
    active: Optional[bool] = Query(None, description="Filter by active status"),
    db: Session = Depends(get_db),
):
    """List a tenant's webhook endpoints, newest first."""
    return endpoint_registry.list_endpoints(db, tenant_id, active=active)


@router.get("/webhooks/{endpoint_id}", response_model=EndpointResponse)
def get_endpoint(tenant_id: str, endpoint_id: int, db: Session = Depends(get_db)):
    try:
        return endpoint_registry.get_endpoint(db, tenant_id, endpoint_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.put("/webhooks/{endpoint_id}", response_model=EndpointResponse)
def update_endpoint(
    tenant_id: str,
    endpoint_id: int,
    endpoint_update: EndpointUpdate,
    db: Session = Depends(get_db),
):
    """
    Update an endpoint's URL, subscriptions or description.

    Only provided fields are changed.
    """
    try:
        return endpoint_registry.update_endpoint(
            db,
            tenant_id,
            endpoint_id,
            url=endpoint_update.url,
            events=endpoint_update.events,
            description=endpoint_update.description,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=e.message)


@router.post("/webhooks/{endpoint_id}/deactivate", response_model=EndpointResponse)
def deactivate_endpoint(tenant_id: str, endpoint_id: int, db: Session = Depends(get_db)):
    """
    Deactivate an endpoint.

    Pending and retrying deliveries are cancelled when next claimed;
    requests already in flight complete.
    """
    try:
        return endpoint_registry.deactivate_endpoint(db, tenant_id, endpoint_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/webhooks/{endpoint_id}/enable", response_model=EndpointResponse)
def enable_endpoint(tenant_id: str, endpoint_id: int, db: Session = Depends(get_db)):
    try:
        return endpoint_registry.enable_endpoint(db, tenant_id, endpoint_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/events", response_model=EventDispatchResponse, status_code=202)
def dispatch_event(
    tenant_id: str,
    event: EventDispatchRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Dispatch an event to every subscribed endpoint of the tenant.

    Delivery happens in the background; the response only lists the
    deliveries that were created.
    """
    try:
        delivery_ids = dispatcher.dispatch(tenant_id, event.event_type, event.data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)
    except DispatchError as e:
        raise HTTPException(status_code=503, detail=e.message)

    return EventDispatchResponse(event_type=event.event_type, delivery_ids=delivery_ids)


@router.get("/deliveries", response_model=DeliveryListResponse)
def list_deliveries(
    tenant_id: str,
    status: Optional[DeliveryStatus] = Query(None, description="Filter by status"),
    endpoint_id: Optional[int] = Query(None, description="Filter by endpoint"),
    limit: int = Query(50, ge=1, le=100, description="Items per page"),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List a tenant's deliveries, newest first."""
    items, total = delivery_store.list_deliveries(
        db,
        tenant_id,
        status=status.value if status is not None else None,
        endpoint_id=endpoint_id,
        limit=limit,
        offset=offset,
    )
    return DeliveryListResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/deliveries/stats", response_model=DeliveryStatsResponse)
def delivery_stats(tenant_id: str, db: Session = Depends(get_db)):
    """Delivery counts per status, computed on request."""
    return delivery_store.get_stats(db, tenant_id)


@router.get("/deliveries/{delivery_id}", response_model=DeliveryResponse)
def get_delivery(tenant_id: str, delivery_id: str, db: Session = Depends(get_db)):
    try:
        return delivery_store.get_delivery(db, tenant_id, delivery_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
