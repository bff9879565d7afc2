"""
Request/response schemas for the webhook admin API and the delivery trigger.
URL/name rules are enforced by the registry service so that every caller
gets the same ValidationError messages.
"""
from typing import Optional
from pydantic import BaseModel


class CreateWebhookRequest(BaseModel):
    name: str = ""
    url: str = ""
    events: Optional[list[str]] = None
    secret: Optional[str] = None


class UpdateWebhookRequest(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    events: Optional[list[str]] = None
    is_active: Optional[bool] = None
    secret: Optional[str] = None


class DeliveryBatchResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class ProcessResponse(BaseModel):
    message: str
    results: DeliveryBatchResult


class DeliveryStats(BaseModel):
    pending: int = 0
    failed: int = 0
    skipped: int = 0
    delivered_today: int = 0


class StatsResponse(BaseModel):
    stats: DeliveryStats
