"""
Outbound webhook HTTP call - one signed POST with its own timeout.
Used by the delivery worker and by the registry's test operation.
"""
import logging
from typing import Optional

import httpx

from salonbooker.services.errors import TransientDeliveryError
from salonbooker.utils.webhook_signatures import build_signature_headers

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


def describe_error(exc: BaseException) -> str:
    """"ExcType: message", truncated to fit last_error."""
    return f"{type(exc).__name__}: {exc}"[:MAX_ERROR_LENGTH]


async def send_webhook(
    client: httpx.AsyncClient,
    url: str,
    body: str,
    secret: str,
    event_type: str,
    event_id: str,
    user_agent: str,
    timeout: float,
) -> int:
    """
    POST a signed body to the webhook URL.

    Returns the HTTP status on 2xx. Raises TransientDeliveryError for a
    non-2xx status, a timeout or any transport error.
    """
    headers = build_signature_headers(
        secret=secret,
        body=body,
        event_type=event_type,
        event_id=event_id,
        user_agent=user_agent,
    )

    try:
        response = await client.post(
            url,
            content=body.encode("utf-8"),
            headers=headers,
            timeout=timeout,
        )
    except httpx.TimeoutException:
        raise TransientDeliveryError(f"Timeout after {timeout}s")
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransientDeliveryError(describe_error(e))

    if not 200 <= response.status_code < 300:
        raise TransientDeliveryError(
            f"HTTP {response.status_code}", status_code=response.status_code
        )

    return response.status_code


async def send_test_ping(
    url: str,
    body: str,
    secret: str,
    event_id: str,
    user_agent: str,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """
    Send a one-off test event. Never raises: returns {"success": bool, "error"?: str}.
    """
    try:
        if client is not None:
            status = await send_webhook(
                client, url, body, secret, "test", event_id, user_agent, timeout
            )
        else:
            async with httpx.AsyncClient() as own_client:
                status = await send_webhook(
                    own_client, url, body, secret, "test", event_id, user_agent, timeout
                )
    except TransientDeliveryError as e:
        logger.info("Webhook test to %s failed: %s", url, str(e))
        return {"success": False, "error": str(e)}

    return {"success": True, "status": status}
