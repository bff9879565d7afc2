"""
Webhook registry - per-salon subscription records.

Every query is scoped by salon_id so one salon can never see or change
another salon's webhooks. Secrets are only handed back by create_webhook;
use serialize_webhook() for anything that goes over the wire.
"""
import logging
import re
import uuid
from typing import Any, Optional
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salonbooker.models.webhook import Webhook, DEFAULT_EVENTS
from salonbooker.models.webhook_delivery import WebhookDelivery
from salonbooker.models.staff import Staff
from salonbooker.services.errors import AuthorizationError, ValidationError, NotFoundError
from salonbooker.services.webhook_envelope import build_envelope
from salonbooker.services.webhook_sender import send_test_ping
from salonbooker.utils.logging import log_fields
from salonbooker.utils.webhook_signatures import generate_secret

logger = logging.getLogger(__name__)

RECENT_DELIVERIES_LIMIT = 10
TEST_EVENT_TYPE = "test"
TEST_EVENT_DATA = {"message": "Webhook test ping"}
UPDATABLE_FIELDS = ("name", "url", "events", "is_active", "secret")

MAX_EVENT_NAME_LENGTH = 100
EVENT_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._:-]*")


def validate_url(url: Optional[str]) -> str:
    """Require an absolute http(s) URL with a host."""
    value = (url or "").strip()
    if not value:
        raise ValidationError("URL is required")
    try:
        parts = urlsplit(value)
    except ValueError:
        raise ValidationError("Invalid URL format")
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError("Invalid URL format")
    return value


def normalize_events(events: Optional[list]) -> list[str]:
    """
    Default to booking events; drop blanks and duplicates, keep order.

    Names are sent verbatim in the X-Webhook-Event header and stored in a
    100-char column, so they are limited to ASCII letters, digits and . _ : -
    """
    if not events:
        return list(DEFAULT_EVENTS)
    if isinstance(events, str) or not all(isinstance(e, str) for e in events):
        raise ValidationError("Events must be a list of strings")
    cleaned = list(dict.fromkeys(e.strip() for e in events if e.strip()))
    for name in cleaned:
        if len(name) > MAX_EVENT_NAME_LENGTH:
            raise ValidationError(f"Event name longer than {MAX_EVENT_NAME_LENGTH} characters")
        if not EVENT_NAME_RE.fullmatch(name):
            raise ValidationError(f"Invalid event name: {name!r}")
    return cleaned or list(DEFAULT_EVENTS)


def require_admin(staff: Staff) -> Staff:
    """Registry writes (create, update, delete, test) are admin-only."""
    if not staff.is_admin:
        raise AuthorizationError("Admin access required")
    return staff


def serialize_webhook(webhook: Webhook, include_secret: bool = False) -> dict[str, Any]:
    """Public representation. The secret is only included on create."""
    data = {
        "id": str(webhook.id),
        "name": webhook.name,
        "url": webhook.url,
        "events": list(webhook.events or []),
        "is_active": webhook.is_active,
        "created_at": webhook.created_at.isoformat() if webhook.created_at else None,
        "updated_at": webhook.updated_at.isoformat() if webhook.updated_at else None,
    }
    if include_secret:
        data["secret"] = webhook.secret
    return data


def serialize_delivery(delivery: WebhookDelivery) -> dict[str, Any]:
    return {
        "id": str(delivery.id),
        "event_id": str(delivery.event_id),
        "event_type": delivery.event_type,
        "status": delivery.status,
        "attempt_count": delivery.attempt_count,
        "response_status": delivery.response_status,
        "last_error": delivery.last_error,
        "delivered_at": delivery.delivered_at.isoformat() if delivery.delivered_at else None,
        "skipped_at": delivery.skipped_at.isoformat() if delivery.skipped_at else None,
        "created_at": delivery.created_at.isoformat() if delivery.created_at else None,
    }


async def create_webhook(
    db: AsyncSession,
    salon_id: uuid.UUID,
    name: str,
    url: str,
    events: Optional[list] = None,
    secret: Optional[str] = None,
) -> Webhook:
    """Validate and persist a new subscription. Raises ValidationError before any write."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Name is required")
    clean_url = validate_url(url)
    clean_events = normalize_events(events)

    webhook = Webhook(
        salon_id=salon_id,
        name=clean_name,
        url=clean_url,
        events=clean_events,
        secret=secret or generate_secret(),
        is_active=True,
    )
    db.add(webhook)
    await db.flush()

    logger.info(
        "Webhook %s created for salon %s (%d events)",
        str(webhook.id)[:8], str(salon_id)[:8], len(clean_events),
        extra=log_fields(salon_id=salon_id, webhook_id=webhook.id),
    )
    return webhook


async def list_webhooks(db: AsyncSession, salon_id: uuid.UUID) -> list[Webhook]:
    """All webhooks of a salon, newest first."""
    result = await db.execute(
        select(Webhook)
        .where(Webhook.salon_id == salon_id)
        .order_by(Webhook.created_at.desc())
    )
    return list(result.scalars().all())


async def get_webhook(db: AsyncSession, salon_id: uuid.UUID, webhook_id: uuid.UUID) -> Webhook:
    result = await db.execute(
        select(Webhook).where(Webhook.id == webhook_id, Webhook.salon_id == salon_id)
    )
    webhook = result.scalar_one_or_none()
    if not webhook:
        raise NotFoundError("Webhook not found")
    return webhook


async def get_recent_deliveries(
    db: AsyncSession,
    webhook_id: uuid.UUID,
    limit: int = RECENT_DELIVERIES_LIMIT,
) -> list[WebhookDelivery]:
    result = await db.execute(
        select(WebhookDelivery)
        .where(WebhookDelivery.webhook_id == webhook_id)
        .order_by(WebhookDelivery.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def update_webhook(
    db: AsyncSession,
    salon_id: uuid.UUID,
    webhook_id: uuid.UUID,
    changes: dict[str, Any],
) -> Webhook:
    """Partial update. Only keys present in `changes` are touched."""
    webhook = await get_webhook(db, salon_id, webhook_id)

    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Name is required")
        webhook.name = name
    if "url" in changes:
        webhook.url = validate_url(changes["url"])
    if "events" in changes:
        webhook.events = normalize_events(changes["events"])
    if "is_active" in changes:
        webhook.is_active = bool(changes["is_active"])
    if "secret" in changes:
        if not changes["secret"]:
            raise ValidationError("Secret cannot be empty")
        webhook.secret = changes["secret"]

    await db.flush()
    logger.info(
        "Webhook %s updated (%s)",
        str(webhook.id)[:8], ", ".join(sorted(changes)),
        extra=log_fields(salon_id=salon_id, webhook_id=webhook.id),
    )
    return webhook


async def delete_webhook(db: AsyncSession, salon_id: uuid.UUID, webhook_id: uuid.UUID) -> None:
    """Remove a subscription. Its pending deliveries are skipped by the worker."""
    webhook = await get_webhook(db, salon_id, webhook_id)
    await db.delete(webhook)
    await db.flush()
    logger.info(
        "Webhook %s deleted",
        str(webhook_id)[:8],
        extra=log_fields(salon_id=salon_id, webhook_id=webhook_id),
    )


async def test_webhook(
    db: AsyncSession,
    webhook_id: uuid.UUID,
    salon_id: Optional[uuid.UUID] = None,
    client=None,
) -> dict:
    """
    Send one signed test event straight to the webhook URL, bypassing the queue.
    No delivery row is written. Raises NotFoundError; transport failures are
    returned as {"success": False, "error": ...}.
    """
    from salonbooker.config import get_settings
    settings = get_settings()

    stmt = select(Webhook).where(Webhook.id == webhook_id)
    if salon_id is not None:
        stmt = stmt.where(Webhook.salon_id == salon_id)
    result = await db.execute(stmt)
    webhook = result.scalar_one_or_none()
    if not webhook:
        raise NotFoundError("Webhook not found")

    event_id = uuid.uuid4()
    body = build_envelope(event_id, TEST_EVENT_TYPE, TEST_EVENT_DATA)
    return await send_test_ping(
        url=webhook.url,
        body=body,
        secret=webhook.secret,
        event_id=str(event_id),
        user_agent=settings.webhook_user_agent,
        timeout=settings.webhook_timeout_seconds,
        client=client,
    )
