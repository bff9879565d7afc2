"""
Database models - import all models here so Alembic can discover them.
"""
from salonbooker.models.salon import Salon
from salonbooker.models.staff import Staff
from salonbooker.models.webhook import Webhook
from salonbooker.models.webhook_delivery import WebhookDelivery

__all__ = [
    "Salon",
    "Staff",
    "Webhook",
    "WebhookDelivery",
]
