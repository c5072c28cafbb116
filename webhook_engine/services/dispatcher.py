"""Dispatcher: turns one tenant event into delivery rows for every subscriber."""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from webhook_engine.exceptions import DispatchError, ValidationError
from webhook_engine.services.delivery_store import DeliveryStore, NewDelivery
from webhook_engine.services.endpoint_registry import resolve_subscribers

logger = logging.getLogger(__name__)

ScheduleFn = Callable[[str], Any]


def serialize_payload(data: Dict[str, Any]) -> str:
    """
    Serialise event data once, at dispatch time.

    The resulting string is stored on every delivery and is exactly what gets
    signed and sent, so later changes to the source data cannot leak into an
    already-created delivery.
    """
    try:
        return json.dumps(data, separators=(",", ":"), sort_keys=True)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Event data is not JSON serialisable: {e}")


class Dispatcher:
    """Creates deliveries for an event in one transaction, then schedules them."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        store: DeliveryStore,
        schedule: Optional[ScheduleFn] = None,
    ):
        self._session_factory = session_factory
        self._store = store
        self._schedule = schedule

    def dispatch(self, tenant_id: str, event_type: str, data: Dict[str, Any]) -> List[str]:
        """
        Dispatch an event to every active endpoint subscribed to it.

        Args:
            tenant_id: Tenant the event belongs to
            event_type: Event name, e.g. "bio.created"
            data: Event payload

        Returns:
            Ids of the created deliveries; empty when nothing is subscribed

        Raises:
            ValidationError: If the event type is empty or data is not JSON
            DispatchError: If the delivery rows could not be committed
        """
        if not event_type or not event_type.strip():
            raise ValidationError("Event type is required")
        payload = serialize_payload(data if data is not None else {})

        with self._session_factory() as db:
            endpoints = resolve_subscribers(db, tenant_id, event_type)
            if not endpoints:
                logger.debug(f"No webhook endpoints subscribed to {event_type} for tenant {tenant_id}")
                return []

            try:
                delivery_ids = self._store.create_deliveries(
                    db,
                    [
                        NewDelivery(
                            endpoint_id=endpoint.id,
                            tenant_id=tenant_id,
                            event_type=event_type,
                            payload=payload,
                        )
                        for endpoint in endpoints
                    ],
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    f"💥 Dispatch of {event_type} for tenant {tenant_id} failed: {str(e)}",
                    exc_info=True,
                )
                raise DispatchError(f"Could not create deliveries for {event_type}") from e

        logger.info(
            f"🪝 Dispatched {event_type} for tenant {tenant_id} to {len(delivery_ids)} endpoint(s)"
        )

        if self._schedule is not None:
            for delivery_id in delivery_ids:
                try:
                    self._schedule(delivery_id)
                except Exception as e:
                    # The periodic sweep still picks the row up.
                    logger.warning(
                        f"⚠️ Could not schedule immediate delivery {delivery_id}: {str(e)}"
                    )
        return delivery_ids
