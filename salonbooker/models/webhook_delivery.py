"""
WebhookDelivery model - one queued or attempted transmission of an event to a webhook.

Lifecycle:
- created by enqueue_event with attempt_count=0 and delivered_at NULL
- claimed by a worker invocation (claim_token/claimed_at lease)
- delivered (delivered_at set), skipped (skipped_at set) or failed once
  attempt_count reaches the max attempts; all three are terminal
Rows are never deleted here; retention is handled outside this service.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from salonbooker.database import Base

MAX_ATTEMPTS = 5


class WebhookDelivery(Base):
    __tablename__ = "webhook_deliveries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # SET NULL on delete: orphaned deliveries are skipped by the worker
    webhook_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("webhooks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Owning salon, kept after the webhook is deleted so salon stats still see the row
    salon_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # Serialized request body, sent byte-for-byte on every attempt
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    skipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    response_status: Mapped[Optional[int]] = mapped_column(Integer)

    claim_token: Mapped[Optional[str]] = mapped_column(String(64))
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_webhook_deliveries_claimable", "delivered_at", "skipped_at", "attempt_count", "created_at"),
    )

    @property
    def status(self) -> str:
        """Derived state: delivered, skipped, failed or pending."""
        if self.delivered_at is not None:
            return "delivered"
        if self.skipped_at is not None:
            return "skipped"
        if (self.attempt_count or 0) >= MAX_ATTEMPTS:
            return "failed"
        return "pending"

    def __repr__(self) -> str:
        return f"<WebhookDelivery {self.event_type} ({self.status})>"
