"""
Event envelope - the JSON body every receiver gets.

    {"id": "<event uuid>", "event": "booking.created", "created_at": "<iso8601>", "data": {...}}

The envelope is serialized once when the event is queued; retries resend the
stored string unchanged so signatures and receiver-side hashes stay stable.
"""
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional


def build_envelope(
    event_id: uuid.UUID,
    event_type: str,
    data: Any,
    created_at: Optional[datetime] = None,
) -> str:
    ts = created_at or datetime.now(timezone.utc)
    envelope = {
        "id": str(event_id),
        "event": event_type,
        "created_at": ts.isoformat(),
        "data": data,
    }
    return json.dumps(envelope, separators=(",", ":"), default=str)
