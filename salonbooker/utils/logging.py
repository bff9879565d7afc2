"""
Log setup for the webhook service.

Two output formats, picked by LOG_FORMAT:
- "json" (default): one JSON object per line for the log shipper
- "text": a single readable line for local runs

Both carry the request correlation id and the delivery identifiers passed
through `extra=log_fields(...)`.
"""
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Identifiers a record may carry; anything else passed via extra= is ignored
EXTRA_FIELDS = ("salon_id", "webhook_id", "delivery_id", "event_type", "status_code")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(correlation_id)s] %(name)s: %(message)s%(context)s"


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


def log_fields(**fields: Any) -> dict[str, Any]:
    """
    Build an `extra=` mapping from delivery identifiers.

    UUIDs become strings and None values are dropped, so callers can pass
    e.g. a deleted webhook's id without checking it first:

        logger.info("...", extra=log_fields(delivery_id=d.id, webhook_id=d.webhook_id))
    """
    unknown = set(fields) - set(EXTRA_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported log fields: {', '.join(sorted(unknown))}")
    return {
        key: value if isinstance(value, int) else str(value)
        for key, value in fields.items()
        if value is not None
    }


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in EXTRA_FIELDS
        if getattr(record, key, None) is not None
    }


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON:
    {"timestamp", "level", "correlation_id", "module", "message", [exception], [ids...]}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(_record_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Readable single-line output; identifiers are appended as key=value pairs."""

    def __init__(self):
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = get_correlation_id() or "-"
        fields = _record_fields(record)
        record.context = "".join(f" {k}={v}" for k, v in fields.items())
        return super().format(record)


def configure_structured_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Install a single stdout handler on the root logger.
    Call once at startup, before the first log call.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    if log_format == "text":
        formatter: logging.Formatter = ContextTextFormatter()
    else:
        formatter = StructuredJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    # Outbound webhook calls would otherwise log every request line
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
