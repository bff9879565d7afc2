"""
Delivery queue - fans a domain event out to every active, subscribed webhook.

enqueue_event() only writes rows; nothing is sent here. The delivery worker
picks the rows up on its next scheduled batch, so the business operation that
fired the event never waits on (or fails because of) a receiver.

Delivery contract offered to receivers: AT-LEAST-ONCE. An attempt whose
response is lost is retried, so receivers must de-duplicate on the event id
(X-Webhook-Id header / envelope "id").
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from salonbooker.models.webhook import Webhook
from salonbooker.models.webhook_delivery import WebhookDelivery, MAX_ATTEMPTS
from salonbooker.services.webhook_envelope import build_envelope
from salonbooker.utils.logging import log_fields

logger = logging.getLogger(__name__)


async def enqueue_event(
    db: AsyncSession,
    salon_id: uuid.UUID,
    event_type: str,
    payload: Any,
) -> list[WebhookDelivery]:
    """
    Insert one pending delivery per active webhook of the salon that subscribes
    to event_type. Returns the new rows (empty list when nothing matches).
    """
    result = await db.execute(
        select(Webhook).where(
            Webhook.salon_id == salon_id,
            Webhook.is_active == True,  # noqa: E712
        )
    )
    matching = [w for w in result.scalars().all() if w.subscribes_to(event_type)]
    if not matching:
        logger.debug("No webhooks subscribed to %s for salon %s", event_type, str(salon_id)[:8])
        return []

    event_id = uuid.uuid4()
    body = build_envelope(event_id, event_type, payload)

    deliveries = []
    for webhook in matching:
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            salon_id=salon_id,
            event_id=event_id,
            event_type=event_type,
            payload=body,
            attempt_count=0,
            delivered_at=None,
        )
        db.add(delivery)
        deliveries.append(delivery)

    await db.flush()
    logger.info(
        "Queued %s for %d webhook(s)",
        event_type, len(deliveries),
        extra=log_fields(salon_id=salon_id, event_type=event_type),
    )
    return deliveries


async def notify_event(
    salon_id: uuid.UUID,
    event_type: str,
    payload: Any,
    session_factory=None,
) -> int:
    """
    Producer-facing entry point (booking created/updated/cancelled, ...).
    Uses its own session and never raises. Returns the number of rows queued.
    """
    from salonbooker.database import session_scope

    open_session = session_factory or session_scope
    try:
        async with open_session() as db:
            deliveries = await enqueue_event(db, salon_id, event_type, payload)
            await db.commit()
            return len(deliveries)
    except Exception as e:
        logger.error(
            "Failed to queue %s for salon %s: %s",
            event_type, str(salon_id)[:8], str(e),
            exc_info=True,
            extra=log_fields(salon_id=salon_id, event_type=event_type),
        )
        return 0


async def delivery_stats(
    db: AsyncSession,
    salon_id: Optional[uuid.UUID] = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> dict[str, int]:
    """
    Counts for monitoring: pending (still retryable), failed (attempts exhausted),
    skipped (webhook gone/inactive) and delivered in the last 24 hours.
    """
    D = WebhookDelivery
    since = datetime.now(timezone.utc) - timedelta(hours=24)

    conditions = {
        "pending": and_(D.delivered_at.is_(None), D.skipped_at.is_(None), D.attempt_count < max_attempts),
        "failed": and_(D.delivered_at.is_(None), D.skipped_at.is_(None), D.attempt_count >= max_attempts),
        "skipped": D.skipped_at.is_not(None),
        "delivered_today": D.delivered_at >= since,
    }

    stats = {}
    for name, condition in conditions.items():
        stmt = select(func.count(D.id)).where(condition)
        if salon_id is not None:
            stmt = stmt.where(D.salon_id == salon_id)
        result = await db.execute(stmt)
        stats[name] = result.scalar() or 0
    return stats
