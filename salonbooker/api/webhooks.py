"""
Webhook admin API and the delivery trigger.

- GET    /api/webhooks               - list (secrets redacted)
- POST   /api/webhooks               - create (admin); secret returned once
- GET    /api/webhooks/process       - delivery stats for the caller's salon
- POST   /api/webhooks/process       - scheduler trigger (Bearer CRON_SECRET)
- POST   /api/webhooks/test/{id}     - send a signed test event (admin)
- GET    /api/webhooks/{id}          - details + 10 most recent deliveries
- PATCH  /api/webhooks/{id}          - partial update (admin)
- DELETE /api/webhooks/{id}          - delete (admin)
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from salonbooker.api.auth import get_current_staff, get_current_admin, verify_scheduler
from salonbooker.database import get_db
from salonbooker.models.staff import Staff
from salonbooker.schemas.webhooks import (
    CreateWebhookRequest,
    UpdateWebhookRequest,
    ProcessResponse,
    StatsResponse,
)
from salonbooker.services import webhook_registry as registry
from salonbooker.services.errors import (
    WebhookError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    SystemicError,
)
from salonbooker.services.webhook_queue import delivery_stats
from salonbooker.workers.webhook_delivery import (
    DeliveryConfig,
    MAX_BATCH_SIZE,
    process_deliveries,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _to_http(error: WebhookError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, AuthorizationError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, SystemicError):
        return HTTPException(status_code=503, detail="Delivery store unavailable")
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("")
async def list_webhooks(
    staff: Staff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    webhooks = await registry.list_webhooks(db, staff.salon_id)
    return {"webhooks": [registry.serialize_webhook(w) for w in webhooks]}


@router.post("", status_code=201)
async def create_webhook(
    payload: CreateWebhookRequest,
    admin: Staff = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Register a webhook. The response is the only time the secret is shown."""
    try:
        webhook = await registry.create_webhook(
            db,
            salon_id=admin.salon_id,
            name=payload.name,
            url=payload.url,
            events=payload.events,
            secret=payload.secret,
        )
    except WebhookError as e:
        raise _to_http(e)

    return {
        "webhook": registry.serialize_webhook(webhook, include_secret=True),
        "message": "Webhook created successfully",
    }


@router.get("/process", response_model=StatsResponse)
async def get_delivery_stats(
    staff: Staff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    config = DeliveryConfig.from_settings()
    stats = await delivery_stats(db, staff.salon_id, max_attempts=config.max_attempts)
    return {"stats": stats}


@router.post("/process", response_model=ProcessResponse, dependencies=[Depends(verify_scheduler)])
async def process_webhooks(
    batch_size: Optional[int] = Query(default=None, ge=1, le=MAX_BATCH_SIZE),
):
    """
    Scheduler entry point: process one batch of pending deliveries.
    Returns counts even when individual deliveries failed; 503 only when the
    delivery store itself is unreachable.
    """
    try:
        results = await process_deliveries(batch_size, config=DeliveryConfig.from_settings())
    except SystemicError as e:
        raise _to_http(e)

    return {"message": "Webhook processing complete", "results": results}


@router.post("/test/{webhook_id}")
async def send_test_event(
    webhook_id: uuid.UUID,
    admin: Staff = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await registry.test_webhook(db, webhook_id, salon_id=admin.salon_id)
    except WebhookError as e:
        raise _to_http(e)

    if not result["success"]:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": result.get("error") or "Webhook test failed"},
        )
    return {"success": True, "message": "Webhook test successful"}


@router.get("/{webhook_id}")
async def get_webhook(
    webhook_id: uuid.UUID,
    staff: Staff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    try:
        webhook = await registry.get_webhook(db, staff.salon_id, webhook_id)
    except WebhookError as e:
        raise _to_http(e)

    deliveries = await registry.get_recent_deliveries(db, webhook.id)
    return {
        "webhook": registry.serialize_webhook(webhook),
        "deliveries": [registry.serialize_delivery(d) for d in deliveries],
    }


@router.patch("/{webhook_id}")
async def update_webhook(
    webhook_id: uuid.UUID,
    payload: UpdateWebhookRequest,
    admin: Staff = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        webhook = await registry.update_webhook(db, admin.salon_id, webhook_id, changes)
    except WebhookError as e:
        raise _to_http(e)

    return {
        "webhook": registry.serialize_webhook(webhook),
        "message": "Webhook updated successfully",
    }


@router.delete("/{webhook_id}")
async def delete_webhook(
    webhook_id: uuid.UUID,
    admin: Staff = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        await registry.delete_webhook(db, admin.salon_id, webhook_id)
    except WebhookError as e:
        raise _to_http(e)

    return {"message": "Webhook deleted successfully"}
