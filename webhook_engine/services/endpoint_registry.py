"""Endpoint registry: subscriber lookup plus the endpoint write path."""
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from webhook_engine.database import utcnow
from webhook_engine.exceptions import ConfigurationError, NotFoundError
from webhook_engine.models.webhook_endpoint import WebhookEndpoint
from webhook_engine.services.signature import generate_secret
from webhook_engine.services.url_safety import validate_webhook_url

logger = logging.getLogger(__name__)

WILDCARD = "*"


def matches_event(patterns: Iterable[str], event_type: str) -> bool:
    """
    Check whether any subscription pattern matches an event type.

    Patterns are exact names (``bio.created``), prefix wildcards
    (``bio.*`` matches every event starting with ``bio.``) or ``*``.
    """
    for pattern in patterns or []:
        if pattern == WILDCARD or pattern == event_type:
            return True
        if pattern.endswith(".*") and event_type.startswith(pattern[:-1]):
            return True
    return False


def resolve_subscribers(
    db: Session, tenant_id: str, event_type: str
) -> List[WebhookEndpoint]:
    """
    Active endpoints of a tenant whose subscriptions match ``event_type``.

    Read-only. Pattern matching happens in Python so exact and wildcard
    subscriptions behave identically on every database backend.
    """
    endpoints = (
        db.query(WebhookEndpoint)
        .filter(WebhookEndpoint.tenant_id == tenant_id, WebhookEndpoint.active == True)
        .order_by(WebhookEndpoint.id.asc())
        .all()
    )
    return [e for e in endpoints if matches_event(e.events, event_type)]


def normalize_events(events: Iterable[str]) -> List[str]:
    """Strip, de-duplicate and validate subscription patterns."""
    cleaned: List[str] = []
    for pattern in events or []:
        pattern = (pattern or "").strip()
        if not pattern:
            continue
        if "*" in pattern and pattern != WILDCARD and not (
            pattern.endswith(".*") and "*" not in pattern[:-2] and len(pattern) > 2
        ):
            raise ConfigurationError(f"Invalid event pattern: {pattern}")
        if pattern not in cleaned:
            cleaned.append(pattern)
    if not cleaned:
        raise ConfigurationError("At least one event type is required")
    return cleaned


def create_endpoint(
    db: Session,
    tenant_id: str,
    url: str,
    events: Iterable[str],
    description: Optional[str] = None,
) -> WebhookEndpoint:
    """
    Register a new endpoint with a freshly generated signing secret.

    Args:
        db: Database session (committed on success)
        tenant_id: Owning tenant
        url: HTTPS destination
        events: Subscription patterns
        description: Optional human-readable label

    Raises:
        ConfigurationError: If the URL or the event list is rejected
    """
    if not tenant_id:
        raise ConfigurationError("Tenant id is required")

    endpoint = WebhookEndpoint(
        tenant_id=tenant_id,
        url=validate_webhook_url(url),
        secret=generate_secret(),
        events=normalize_events(events),
        active=True,
        description=description,
    )
    db.add(endpoint)
    db.commit()
    db.refresh(endpoint)

    logger.info(
        f"✅ Registered webhook endpoint {endpoint.id} for tenant {tenant_id}: "
        f"events={endpoint.events}"
    )
    return endpoint


def get_endpoint(db: Session, tenant_id: str, endpoint_id: int) -> WebhookEndpoint:
    endpoint = (
        db.query(WebhookEndpoint)
        .filter(WebhookEndpoint.id == endpoint_id, WebhookEndpoint.tenant_id == tenant_id)
        .first()
    )
    if not endpoint:
        raise NotFoundError("Webhook endpoint not found")
    return endpoint


def list_endpoints(
    db: Session, tenant_id: str, active: Optional[bool] = None
) -> List[WebhookEndpoint]:
    query = db.query(WebhookEndpoint).filter(WebhookEndpoint.tenant_id == tenant_id)
    if active is not None:
        query = query.filter(WebhookEndpoint.active == active)
    return query.order_by(WebhookEndpoint.created_at.desc(), WebhookEndpoint.id.desc()).all()


def update_endpoint(
    db: Session,
    tenant_id: str,
    endpoint_id: int,
    url: Optional[str] = None,
    events: Optional[Iterable[str]] = None,
    description: Optional[str] = None,
) -> WebhookEndpoint:
    """Change destination, subscriptions or label. The secret is never touched."""
    endpoint = get_endpoint(db, tenant_id, endpoint_id)

    if url is not None:
        endpoint.url = validate_webhook_url(url)
    if events is not None:
        endpoint.events = normalize_events(events)
    if description is not None:
        endpoint.description = description

    db.commit()
    db.refresh(endpoint)
    return endpoint


def deactivate_endpoint(
    db: Session, tenant_id: str, endpoint_id: int, reason: Optional[str] = None
) -> WebhookEndpoint:
    """
    Soft-deactivate an endpoint.

    Takes effect for every future claim of its pending/retrying deliveries;
    sends already in flight are left to finish.
    """
    endpoint = get_endpoint(db, tenant_id, endpoint_id)
    if endpoint.active:
        endpoint.active = False
        endpoint.revoked_at = utcnow()
        db.commit()
        db.refresh(endpoint)
        logger.info(
            f"🛑 Deactivated webhook endpoint {endpoint_id} for tenant {tenant_id}"
            + (f": {reason}" if reason else "")
        )
    return endpoint


def enable_endpoint(db: Session, tenant_id: str, endpoint_id: int) -> WebhookEndpoint:
    """Re-activate a deactivated endpoint."""
    endpoint = get_endpoint(db, tenant_id, endpoint_id)
    if not endpoint.active:
        endpoint.active = True
        endpoint.revoked_at = None
        db.commit()
        db.refresh(endpoint)
        logger.info(f"✅ Re-enabled webhook endpoint {endpoint_id} for tenant {tenant_id}")
    return endpoint
