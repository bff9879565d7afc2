"""
Seed a demo salon with an admin, one staff member and a webhook pointing at
a local receiver. Prints an admin session token for the API.

Usage:
    python scripts/seed_demo_salon.py
    python scripts/seed_demo_salon.py --webhook-url http://localhost:9000/hooks
"""
import argparse
import asyncio
import logging

from sqlalchemy import select

from salonbooker.api.auth import create_session_token
from salonbooker.database import get_session_factory
from salonbooker.models.salon import Salon
from salonbooker.models.staff import Staff
from salonbooker.services.webhook_registry import create_webhook

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_SALON_NAME = "Demo Hair Studio"
DEMO_ADMIN_EMAIL = "owner@demo-hair.example"
DEMO_STAFF_EMAIL = "stylist@demo-hair.example"


async def seed(webhook_url: str):
    session_factory = get_session_factory()

    async with session_factory() as session:
        result = await session.execute(select(Staff).where(Staff.email == DEMO_ADMIN_EMAIL))
        admin = result.scalar_one_or_none()

        if admin:
            logger.info("Demo salon already exists (salon_id=%s). Skipping.", admin.salon_id)
        else:
            salon = Salon(name=DEMO_SALON_NAME)
            session.add(salon)
            await session.flush()

            admin = Staff(salon_id=salon.id, email=DEMO_ADMIN_EMAIL, name="Demo Owner", role="admin")
            session.add(admin)
            session.add(Staff(salon_id=salon.id, email=DEMO_STAFF_EMAIL, name="Demo Stylist", role="staff"))

            webhook = await create_webhook(
                session,
                salon_id=salon.id,
                name="Local receiver",
                url=webhook_url,
            )
            await session.commit()
            logger.info("Seeded salon %s with webhook %s", salon.id, webhook.id)
            logger.info("Webhook signing secret: %s", webhook.secret)

    token = create_session_token(admin)
    print(f"Admin session token:\n{token}")


def main():
    parser = argparse.ArgumentParser(description="Seed a demo salon")
    parser.add_argument("--webhook-url", default="http://localhost:9000/webhooks")
    args = parser.parse_args()
    asyncio.run(seed(args.webhook_url))


if __name__ == "__main__":
    main()
