"""
Shared Redis connection plus the delivery worker heartbeat.
Redis is optional for delivery itself: every call here degrades to a log line.
"""
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

HEARTBEAT_KEY = "salonbooker:worker_health:webhook_delivery"
HEARTBEAT_TTL_SECONDS = 3600

_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from salonbooker.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def record_heartbeat() -> None:
    """Store the time of the last completed delivery batch."""
    try:
        redis = await get_redis()
        await redis.set(
            HEARTBEAT_KEY,
            datetime.now(timezone.utc).isoformat(),
            ex=HEARTBEAT_TTL_SECONDS,
        )
    except Exception as e:
        logger.debug("Heartbeat write failed: %s", str(e))

