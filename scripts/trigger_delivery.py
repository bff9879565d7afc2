"""
Run one delivery batch the way the scheduler does, or print delivery stats.

Usage:
    python scripts/trigger_delivery.py
    python scripts/trigger_delivery.py --batch-size 50
    python scripts/trigger_delivery.py --stats --token <admin session token>
"""
import argparse
import asyncio
import logging

import httpx

from salonbooker.config import get_settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


async def trigger(base_url: str, cron_secret: str, batch_size):
    params = {"batch_size": batch_size} if batch_size else None
    async with httpx.AsyncClient(timeout=120) as client:
        resp = await client.post(
            f"{base_url}/api/webhooks/process",
            params=params,
            headers={"Authorization": f"Bearer {cron_secret}"},
        )
        logger.info("Process response: %s %s", resp.status_code, resp.text)
        return resp


async def stats(base_url: str, token: str):
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.get(
            f"{base_url}/api/webhooks/process",
            headers={"Authorization": f"Bearer {token}"},
        )
        logger.info("Stats response: %s %s", resp.status_code, resp.text)
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Trigger webhook delivery")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--cron-secret", default=None, help="Defaults to CRON_SECRET from settings")
    parser.add_argument("--stats", action="store_true", help="Show delivery stats instead")
    parser.add_argument("--token", default=None, help="Staff session token (for --stats)")
    args = parser.parse_args()

    if args.stats:
        if not args.token:
            parser.error("--stats requires --token")
        await stats(args.base_url, args.token)
        return

    cron_secret = args.cron_secret or get_settings().cron_secret
    if not cron_secret:
        parser.error("No cron secret: pass --cron-secret or set CRON_SECRET")
    await trigger(args.base_url, cron_secret, args.batch_size)


if __name__ == "__main__":
    asyncio.run(main())
