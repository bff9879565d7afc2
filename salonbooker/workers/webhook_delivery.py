"""
Webhook delivery worker - drains one bounded batch of pending deliveries.

Invoked by an external scheduler (POST /api/webhooks/process); there is no
in-process loop. Each call:

1. atomically claims up to batch_size claimable rows, oldest first
2. skips rows whose webhook is gone or inactive (terminal, no attempt counted)
3. POSTs the stored body, signed, with a per-attempt timeout and bounded parallelism
4. records each outcome with a compare-and-swap UPDATE on the claim token

Individual delivery failures are recorded on the row and counted; only a
failure to reach the delivery store raises (SystemicError).
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from salonbooker.models.webhook import Webhook
from salonbooker.models.webhook_delivery import WebhookDelivery, MAX_ATTEMPTS
from salonbooker.services.errors import SystemicError, TransientDeliveryError
from salonbooker.services.webhook_sender import send_webhook, describe_error
from salonbooker.utils.logging import log_fields
from salonbooker.utils.redis_client import record_heartbeat

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100


@dataclass(frozen=True)
class DeliveryConfig:
    """Explicit worker configuration; build from settings or pass fixed values in tests."""
    max_attempts: int = MAX_ATTEMPTS
    batch_size: int = 10
    request_timeout: float = 10.0
    concurrency: int = 5
    claim_ttl_seconds: int = 300
    user_agent: str = "SalonBooker-Webhook/1.0"

    @classmethod
    def from_settings(cls, settings=None) -> "DeliveryConfig":
        if settings is None:
            from salonbooker.config import get_settings
            settings = get_settings()
        return cls(
            max_attempts=settings.webhook_max_attempts,
            batch_size=settings.webhook_batch_size,
            request_timeout=settings.webhook_timeout_seconds,
            concurrency=settings.delivery_concurrency,
            claim_ttl_seconds=settings.delivery_claim_ttl_seconds,
            user_agent=settings.webhook_user_agent,
        )


@dataclass(frozen=True)
class ClaimedDelivery:
    """Detached snapshot of a claimed row plus its webhook (if any)."""
    id: uuid.UUID
    event_id: uuid.UUID
    event_type: str
    payload: str
    attempt_count: int
    webhook_id: Optional[uuid.UUID]
    url: Optional[str]
    secret: Optional[str]
    webhook_active: bool


@dataclass(frozen=True)
class AttemptOutcome:
    delivery: ClaimedDelivery
    outcome: str  # succeeded, failed, skipped
    status_code: Optional[int] = None
    error: Optional[str] = None


def _claimable(config: DeliveryConfig, now: datetime):
    D = WebhookDelivery
    stale_before = now - timedelta(seconds=config.claim_ttl_seconds)
    return and_(
        D.delivered_at.is_(None),
        D.skipped_at.is_(None),
        D.attempt_count < config.max_attempts,
        or_(D.claim_token.is_(None), D.claimed_at < stale_before),
    )


async def claim_batch(
    db: AsyncSession,
    token: str,
    limit: int,
    config: DeliveryConfig,
    now: Optional[datetime] = None,
) -> list[ClaimedDelivery]:
    """
    Claim up to `limit` deliveries for this invocation in a single UPDATE.

    The inner SELECT skips rows locked by a concurrent claim (Postgres) and the
    outer WHERE re-checks claimability, so a row can only carry one live claim.
    Claims older than claim_ttl_seconds are treated as abandoned.
    """
    D = WebhookDelivery
    now = now or datetime.now(timezone.utc)
    claimable = _claimable(config, now)

    candidates = (
        select(D.id)
        .where(claimable)
        .order_by(D.created_at, D.id)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    await db.execute(
        update(D)
        .where(D.id.in_(candidates), claimable)
        .values(claim_token=token, claimed_at=now)
        .execution_options(synchronize_session=False)
    )

    result = await db.execute(
        select(D, Webhook)
        .outerjoin(Webhook, Webhook.id == D.webhook_id)
        .where(D.claim_token == token)
        .order_by(D.created_at, D.id)
    )
    claimed = []
    for delivery, webhook in result.all():
        claimed.append(ClaimedDelivery(
            id=delivery.id,
            event_id=delivery.event_id,
            event_type=delivery.event_type,
            payload=delivery.payload,
            attempt_count=delivery.attempt_count,
            webhook_id=delivery.webhook_id,
            url=webhook.url if webhook else None,
            secret=webhook.secret if webhook else None,
            webhook_active=bool(webhook and webhook.is_active),
        ))
    return claimed


async def _attempt(
    client: httpx.AsyncClient,
    delivery: ClaimedDelivery,
    config: DeliveryConfig,
    semaphore: asyncio.Semaphore,
) -> AttemptOutcome:
    if delivery.url is None:
        return AttemptOutcome(delivery, "skipped", error="Webhook not found")
    if not delivery.webhook_active:
        return AttemptOutcome(delivery, "skipped", error="Webhook inactive")

    async with semaphore:
        try:
            status_code = await send_webhook(
                client,
                url=delivery.url,
                body=delivery.payload,
                secret=delivery.secret,
                event_type=delivery.event_type,
                event_id=str(delivery.event_id),
                user_agent=config.user_agent,
                timeout=config.request_timeout,
            )
        except TransientDeliveryError as e:
            return AttemptOutcome(delivery, "failed", status_code=e.status_code, error=str(e))
        except Exception as e:
            # Counted as an attempt so a row that always fails still exhausts
            logger.error(
                "Unexpected error delivering %s: %s",
                str(delivery.id)[:8], str(e),
                exc_info=True,
                extra=log_fields(delivery_id=delivery.id, webhook_id=delivery.webhook_id),
            )
            return AttemptOutcome(delivery, "failed", error=describe_error(e))

    return AttemptOutcome(delivery, "succeeded", status_code=status_code)


async def _record_outcome(
    db: AsyncSession,
    token: str,
    result: AttemptOutcome,
    config: DeliveryConfig,
    now: datetime,
) -> bool:
    """Apply one outcome if this invocation still holds the claim. Returns False if it was lost."""
    D = WebhookDelivery
    delivery = result.delivery
    release = {"claim_token": None, "claimed_at": None}

    if result.outcome == "succeeded":
        values = dict(
            attempt_count=D.attempt_count + 1,
            delivered_at=now,
            last_error=None,
            response_status=result.status_code,
            **release,
        )
    elif result.outcome == "failed":
        values = dict(
            attempt_count=D.attempt_count + 1,
            last_error=result.error,
            response_status=result.status_code,
            **release,
        )
    else:
        values = dict(skipped_at=now, last_error=result.error, **release)

    res = await db.execute(
        update(D)
        .where(D.id == delivery.id, D.claim_token == token)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        logger.warning(
            "Lost claim on delivery %s before recording %s",
            str(delivery.id)[:8], result.outcome,
            extra=log_fields(delivery_id=delivery.id),
        )
        return False

    log_extra = log_fields(
        delivery_id=delivery.id, webhook_id=delivery.webhook_id, event_type=delivery.event_type,
    )
    if result.outcome == "failed":
        attempts = delivery.attempt_count + 1
        if attempts >= config.max_attempts:
            logger.error(
                "Delivery %s exhausted attempts (%d/%d): %s",
                str(delivery.id)[:8], attempts, config.max_attempts, result.error,
                extra=log_extra,
            )
        else:
            logger.info(
                "Delivery %s attempt %d/%d failed: %s",
                str(delivery.id)[:8], attempts, config.max_attempts, result.error,
                extra=log_extra,
            )
    elif result.outcome == "skipped":
        logger.warning(
            "Delivery %s skipped: %s", str(delivery.id)[:8], result.error, extra=log_extra,
        )
    return True


async def process_deliveries(
    batch_size: Optional[int] = None,
    config: Optional[DeliveryConfig] = None,
    session_factory=None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict[str, int]:
    """
    Process one batch. Returns {"processed", "succeeded", "failed", "skipped"}.
    Raises SystemicError if the delivery store cannot be read or written.
    """
    from salonbooker.database import session_scope

    config = config or DeliveryConfig.from_settings()
    limit = max(1, min(batch_size or config.batch_size, MAX_BATCH_SIZE))
    open_session = session_factory or session_scope
    token = uuid.uuid4().hex
    counts = {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0}

    try:
        async with open_session() as db:
            claimed = await claim_batch(db, token, limit, config)
            await db.commit()
    except (SQLAlchemyError, OSError) as e:
        logger.error("Delivery store unavailable while claiming: %s", str(e), exc_info=True)
        raise SystemicError(f"Cannot claim deliveries: {e}") from e

    if not claimed:
        await record_heartbeat()
        return counts

    semaphore = asyncio.Semaphore(max(1, config.concurrency))
    if http_client is not None:
        outcomes = await asyncio.gather(
            *(_attempt(http_client, d, config, semaphore) for d in claimed)
        )
    else:
        async with httpx.AsyncClient() as client:
            outcomes = await asyncio.gather(
                *(_attempt(client, d, config, semaphore) for d in claimed)
            )

    now = datetime.now(timezone.utc)
    lost = 0
    try:
        async with open_session() as db:
            for result in outcomes:
                if await _record_outcome(db, token, result, config, now):
                    counts["processed"] += 1
                    counts[result.outcome] += 1
                else:
                    lost += 1
            await db.commit()
    except (SQLAlchemyError, OSError) as e:
        logger.error("Delivery store unavailable while recording outcomes: %s", str(e), exc_info=True)
        raise SystemicError(f"Cannot record delivery outcomes: {e}") from e

    if lost:
        logger.warning("%d claimed deliveries were reclaimed before their outcome was recorded", lost)
    logger.info(
        "Webhook batch done: %d processed, %d delivered, %d failed, %d skipped",
        counts["processed"], counts["succeeded"], counts["failed"], counts["skipped"],
    )
    await record_heartbeat()
    return counts
