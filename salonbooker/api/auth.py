"""
Session auth for the admin API.

Sessions are HS256 JWTs carrying a staff_id claim. Login itself lives outside
this service; create_session_token() exists for scripts and tests.
Also provides the scheduler check for the delivery trigger endpoint.
"""
import hmac
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from salonbooker.config import get_settings
from salonbooker.database import get_db
from salonbooker.models.staff import Staff
from salonbooker.services.errors import AuthorizationError
from salonbooker.services.webhook_registry import require_admin

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer()


def _jwt_secret() -> str:
    settings = get_settings()
    return settings.session_jwt_secret or settings.app_secret_key


def create_session_token(staff: Staff, expires_in_hours: Optional[int] = None) -> str:
    """Issue a session token for a staff member."""
    settings = get_settings()
    hours = expires_in_hours if expires_in_hours is not None else settings.session_jwt_expiry_hours
    return jwt.encode(
        {
            "staff_id": str(staff.id),
            "salon_id": str(staff.salon_id),
            "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
        },
        _jwt_secret(),
        algorithm="HS256",
    )


async def get_current_staff(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Staff:
    """Dependency to extract and verify the staff member from the Bearer token."""
    try:
        payload = jwt.decode(credentials.credentials, _jwt_secret(), algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    staff_id = payload.get("staff_id")
    try:
        staff_uuid = uuid.UUID(staff_id)
    except (TypeError, ValueError, AttributeError):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    result = await db.execute(
        select(Staff).where(and_(Staff.id == staff_uuid, Staff.is_active == True))  # noqa: E712
    )
    staff = result.scalar_one_or_none()
    if not staff:
        raise HTTPException(status_code=403, detail="Staff member not found")
    return staff


async def get_current_admin(
    staff: Staff = Depends(get_current_staff),
) -> Staff:
    """Dependency that requires the authenticated staff member to be a salon admin."""
    try:
        return require_admin(staff)
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))


def verify_scheduler(request: Request) -> None:
    """
    Dependency for the scheduler trigger: Authorization must be
    "Bearer <CRON_SECRET>". An unset CRON_SECRET rejects every call.
    """
    secret = get_settings().cron_secret
    if not secret:
        logger.error("CRON_SECRET not configured - rejecting delivery trigger")
        raise HTTPException(status_code=401, detail="Unauthorized")

    header = request.headers.get("authorization", "")
    if not hmac.compare_digest(header.encode(), f"Bearer {secret}".encode()):
        logger.warning("Delivery trigger called with invalid credentials")
        raise HTTPException(status_code=401, detail="Unauthorized")
