"""Delivery store: durable delivery rows and the delivery state machine.

Lifecycle::

    pending -> queued -> success | retrying | failed
    retrying -> queued
    pending | queued | retrying -> cancelled

Every status change goes through a status-guarded UPDATE
(``... WHERE id = :id AND status = :current``) on a row that was first
re-read with ``SELECT ... FOR UPDATE``. The row lock serialises workers on
databases that support it, and the guard makes a lost race visible as a
zero rowcount everywhere else, so a delivery is held in ``queued`` by at
most one worker.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from webhook_engine.config import WebhookConfig
from webhook_engine.database import utcnow
from webhook_engine.exceptions import InvalidTransitionError, NotFoundError
from webhook_engine.models.webhook_delivery import (
    CLAIMABLE_STATUSES,
    DeliveryStatus,
    WebhookDelivery,
    can_transition,
)
from webhook_engine.models.webhook_endpoint import WebhookEndpoint
from webhook_engine.services.endpoint_registry import matches_event

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


def backoff_seconds(attempt: int, schedule: Sequence[int]) -> int:
    """
    Delay before retry number ``attempt`` (1-based).

    Walks ``schedule`` one step per attempt and stays on the last step once
    it runs out, so the curve never decreases.
    """
    index = min(max(attempt, 1), len(schedule)) - 1
    return schedule[index]


@dataclass(frozen=True)
class NewDelivery:
    """Row to insert for one (endpoint, event) pair."""

    endpoint_id: int
    tenant_id: str
    event_type: str
    payload: str


@dataclass(frozen=True)
class ClaimedDelivery:
    """Snapshot of a delivery taken while claiming it, safe to use after commit."""

    delivery_id: str
    endpoint_id: int
    tenant_id: str
    url: str
    secret: str
    event_type: str
    payload: str
    attempts: int


class DeliveryStore:
    """Owns every transition of ``WebhookDelivery.status``.

    Methods that change state open their own short transaction from
    ``session_factory``; no network I/O ever happens inside one.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: Optional[WebhookConfig] = None,
    ):
        self._session_factory = session_factory
        self._config = config or WebhookConfig()

    @property
    def config(self) -> WebhookConfig:
        return self._config

    # -- creation ---------------------------------------------------------

    def create_deliveries(
        self, db: Session, new_deliveries: Sequence[NewDelivery]
    ) -> List[str]:
        """
        Add ``pending`` rows inside the caller's transaction.

        The rows are flushed so their ids exist, but nothing is committed;
        the caller decides whether the whole set becomes visible.
        """
        now = utcnow()
        rows = [
            WebhookDelivery(
                endpoint_id=item.endpoint_id,
                tenant_id=item.tenant_id,
                event_type=item.event_type,
                payload=item.payload,
                status=DeliveryStatus.PENDING.value,
                attempts=0,
                next_attempt_at=now,
                created_at=now,
                updated_at=now,
            )
            for item in new_deliveries
        ]
        db.add_all(rows)
        db.flush()
        return [row.id for row in rows]

    # -- claiming ---------------------------------------------------------

    def list_due_deliveries(
        self, limit: int, now: Optional[datetime] = None
    ) -> List[str]:
        """Ids of pending/retrying rows that are due, oldest-due first. Takes no locks."""
        now = now or utcnow()
        with self._session_factory() as db:
            rows = (
                db.query(WebhookDelivery.id)
                .filter(
                    WebhookDelivery.status.in_(CLAIMABLE_STATUSES),
                    WebhookDelivery.next_attempt_at <= now,
                )
                .order_by(WebhookDelivery.next_attempt_at.asc(), WebhookDelivery.created_at.asc())
                .limit(limit)
                .all()
            )
        return [row.id for row in rows]

    def claim_delivery(
        self, delivery_id: str, now: Optional[datetime] = None
    ) -> Optional[ClaimedDelivery]:
        """
        Lock, re-validate and move one delivery to ``queued``.

        Returns None when the delivery is missing, no longer claimable, not
        yet due, lost to a concurrent claimer, or was cancelled because its
        endpoint is inactive or no longer subscribed to the event.
        """
        now = now or utcnow()
        with self._session_factory() as db:
            delivery = self._lock(db, delivery_id)
            if delivery is None:
                logger.warning(f"⚠️ Delivery {delivery_id} not found, nothing to claim")
                return None

            if delivery.status not in CLAIMABLE_STATUSES:
                logger.info(
                    f"⏭️ Delivery {delivery_id} is {delivery.status}, already claimed elsewhere"
                )
                return None

            if delivery.next_attempt_at is not None and delivery.next_attempt_at > now:
                logger.debug(f"Delivery {delivery_id} not due until {delivery.next_attempt_at}")
                return None

            endpoint = db.get(WebhookEndpoint, delivery.endpoint_id)
            reason = self._cancel_reason(endpoint, delivery.event_type)
            if reason:
                cancelled = self._transition(
                    db,
                    delivery,
                    DeliveryStatus.CANCELLED,
                    last_error=reason,
                    next_attempt_at=None,
                    processed_at=now,
                    updated_at=now,
                )
                db.commit()
                if cancelled:
                    logger.info(f"🚫 Cancelled delivery {delivery_id}: {reason}")
                return None

            claim = ClaimedDelivery(
                delivery_id=delivery.id,
                endpoint_id=endpoint.id,
                tenant_id=delivery.tenant_id,
                url=endpoint.url,
                secret=endpoint.secret,
                event_type=delivery.event_type,
                payload=delivery.payload,
                attempts=delivery.attempts,
            )
            claimed = self._transition(
                db,
                delivery,
                DeliveryStatus.QUEUED,
                claimed_at=now,
                next_attempt_at=None,
                updated_at=now,
            )
            db.commit()

        if not claimed:
            logger.info(f"⏭️ Lost claim race for delivery {delivery_id}")
            return None
        return claim

    # -- outcomes ---------------------------------------------------------

    def record_outcome(
        self,
        delivery_id: str,
        success: bool,
        error: Optional[str] = None,
        response_code: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Record the result of one send attempt of a ``queued`` delivery.

        Args:
            delivery_id: Delivery that was attempted
            success: Whether the endpoint answered 2xx
            error: Failure description (ignored on success)
            response_code: HTTP status, when a response was received
            now: Clock override (tests)

        Returns:
            The new status value

        Raises:
            NotFoundError: If the delivery does not exist
            InvalidTransitionError: If the delivery is no longer queued
        """
        now = now or utcnow()
        with self._session_factory() as db:
            delivery = self._lock(db, delivery_id)
            if delivery is None:
                raise NotFoundError(f"Webhook delivery {delivery_id} not found")

            attempts = delivery.attempts + 1
            values = {"attempts": attempts, "response_code": response_code, "updated_at": now}

            if success:
                target = DeliveryStatus.SUCCESS
                values.update(last_error=None, next_attempt_at=None, processed_at=now)
            elif attempts >= self._config.max_attempts:
                target = DeliveryStatus.FAILED
                values.update(
                    last_error=_truncate(error), next_attempt_at=None, processed_at=now
                )
            else:
                target = DeliveryStatus.RETRYING
                delay = backoff_seconds(attempts, self._config.backoff_schedule)
                values.update(
                    last_error=_truncate(error),
                    next_attempt_at=now + timedelta(seconds=delay),
                )

            if not self._transition(db, delivery, target, **values):
                db.rollback()
                raise InvalidTransitionError(delivery_id, "changed concurrently", target.value)
            db.commit()

        logger.info(
            f"📬 Delivery {delivery_id} -> {target.value} (attempt {attempts}"
            + (f", HTTP {response_code}" if response_code is not None else "")
            + ")"
        )
        return target.value

    def reclaim_stale(self, claimed_before: datetime, now: Optional[datetime] = None) -> int:
        """
        Recycle deliveries stuck in ``queued`` since before ``claimed_before``.

        A worker that crashed between claiming and recording an outcome may
        or may not have sent the request, so the stuck claim counts as an
        attempt: the row goes back to ``retrying`` (due immediately) or to
        ``failed`` once the attempt ceiling is reached.

        Returns:
            Number of deliveries recycled
        """
        now = now or utcnow()
        with self._session_factory() as db:
            stale_ids = [
                row.id
                for row in db.query(WebhookDelivery.id)
                .filter(
                    WebhookDelivery.status == DeliveryStatus.QUEUED.value,
                    WebhookDelivery.claimed_at < claimed_before,
                )
                .all()
            ]

        reclaimed = 0
        for delivery_id in stale_ids:
            with self._session_factory() as db:
                delivery = self._lock(db, delivery_id)
                if delivery is None or delivery.status != DeliveryStatus.QUEUED.value:
                    continue
                if delivery.claimed_at is None or delivery.claimed_at >= claimed_before:
                    continue

                attempts = delivery.attempts + 1
                error = "Claim expired before an outcome was recorded"
                if attempts >= self._config.max_attempts:
                    target = DeliveryStatus.FAILED
                    values = {"next_attempt_at": None, "processed_at": now}
                else:
                    target = DeliveryStatus.RETRYING
                    values = {"next_attempt_at": now}

                if self._transition(
                    db,
                    delivery,
                    target,
                    attempts=attempts,
                    last_error=error,
                    updated_at=now,
                    **values,
                ):
                    db.commit()
                    reclaimed += 1
                    logger.warning(
                        f"♻️ Reclaimed stale delivery {delivery_id} -> {target.value}"
                    )
        return reclaimed

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _lock(db: Session, delivery_id: str) -> Optional[WebhookDelivery]:
        return (
            db.query(WebhookDelivery)
            .filter(WebhookDelivery.id == delivery_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def _cancel_reason(endpoint: Optional[WebhookEndpoint], event_type: str) -> Optional[str]:
        if endpoint is None:
            return "Endpoint no longer exists"
        if not endpoint.active:
            return "Endpoint is inactive"
        if not matches_event(endpoint.events, event_type):
            return f"Endpoint is no longer subscribed to {event_type}"
        return None

    @staticmethod
    def _transition(
        db: Session, delivery: WebhookDelivery, target: DeliveryStatus, **values
    ) -> bool:
        """Apply a guarded status change; False if another worker moved the row first."""
        current = delivery.status
        if not can_transition(current, target.value):
            raise InvalidTransitionError(delivery.id, current, target.value)

        values["status"] = target.value
        updated = (
            db.query(WebhookDelivery)
            .filter(WebhookDelivery.id == delivery.id, WebhookDelivery.status == current)
            .update(values, synchronize_session=False)
        )
        return updated == 1


def _truncate(error: Optional[str]) -> Optional[str]:
    if error is None:
        return None
    return error[:MAX_ERROR_LENGTH]


# -- read-only queries ----------------------------------------------------


def get_delivery(db: Session, tenant_id: str, delivery_id: str) -> WebhookDelivery:
    delivery = (
        db.query(WebhookDelivery)
        .filter(WebhookDelivery.id == delivery_id, WebhookDelivery.tenant_id == tenant_id)
        .first()
    )
    if not delivery:
        raise NotFoundError("Webhook delivery not found")
    return delivery


def list_deliveries(
    db: Session,
    tenant_id: str,
    status: Optional[str] = None,
    endpoint_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
):
    """Page of a tenant's deliveries, newest first, plus the total count."""
    query = db.query(WebhookDelivery).filter(WebhookDelivery.tenant_id == tenant_id)
    if status is not None:
        query = query.filter(WebhookDelivery.status == status)
    if endpoint_id is not None:
        query = query.filter(WebhookDelivery.endpoint_id == endpoint_id)

    total = query.count()
    items = (
        query.order_by(WebhookDelivery.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def get_stats(db: Session, tenant_id: str) -> Dict[str, int]:
    """Per-status delivery counts for a tenant, aggregated on demand."""
    rows = (
        db.query(WebhookDelivery.status, func.count(WebhookDelivery.id))
        .filter(WebhookDelivery.tenant_id == tenant_id)
        .group_by(WebhookDelivery.status)
        .all()
    )
    stats = {status.value: 0 for status in DeliveryStatus}
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(count for _, count in rows)
    return stats


def consecutive_failures(db: Session, endpoint_id: int, window: int) -> int:
    """
    How many of an endpoint's most recent finished deliveries failed in a row.

    Looks at up to ``window`` deliveries that ended in success or failure
    (cancellations say nothing about the endpoint's health) and counts the
    unbroken run of failures from the newest one.
    """
    if window <= 0:
        return 0
    statuses = (
        db.query(WebhookDelivery.status)
        .filter(
            WebhookDelivery.endpoint_id == endpoint_id,
            WebhookDelivery.status.in_(
                [DeliveryStatus.SUCCESS.value, DeliveryStatus.FAILED.value]
            ),
        )
        .order_by(WebhookDelivery.processed_at.desc(), WebhookDelivery.updated_at.desc())
        .limit(window)
        .all()
    )
    run = 0
    for (status,) in statuses:
        if status != DeliveryStatus.FAILED.value:
            break
        run += 1
    return run
