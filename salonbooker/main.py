"""
SalonBooker webhook service - main FastAPI application entry point.

No background workers are started here: delivery batches are driven by an
external scheduler calling POST /api/webhooks/process.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from salonbooker.config import get_settings
from salonbooker.api.router import api_router
from salonbooker.api.health import APP_VERSION
from salonbooker.database import dispose_engine
from salonbooker.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("salonbooker")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("SalonBooker webhooks starting up (env=%s)", settings.app_env)

    if not settings.session_jwt_secret:
        logger.warning(
            "SESSION_JWT_SECRET not set - falling back to APP_SECRET_KEY. "
            "Set a dedicated session secret for production."
        )
    if not settings.cron_secret:
        logger.warning(
            "CRON_SECRET not set - POST /api/webhooks/process will reject every call "
            "and no webhook deliveries will be sent."
        )

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    yield

    logger.info("SalonBooker webhooks shutting down")
    await dispose_engine()


def _cors_origins(settings) -> list[str]:
    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if settings.app_env != "production":
        origins += ["http://localhost:3000", "http://localhost:5173"]
    origins.append(settings.app_base_url)
    return list(dict.fromkeys(origins))


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level, settings.log_format)

    application = FastAPI(
        title="SalonBooker Webhooks",
        description="Webhook registry and outbound delivery for salon booking events",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Added after CORS so it runs on every request
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
