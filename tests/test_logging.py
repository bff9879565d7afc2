"""
Tests for salonbooker/utils/logging.py - log_fields and the two formatters.
"""
import json
import logging
import sys
import uuid
from unittest.mock import patch

import pytest

from salonbooker.utils.logging import (
    ContextTextFormatter,
    StructuredJsonFormatter,
    configure_structured_logging,
    correlation_id_ctx,
    log_fields,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_record(message="Delivery %s failed", args=("abc12345",), extra=None, exc_info=None):
    record = logging.LogRecord(
        name="salonbooker.workers.webhook_delivery",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=args,
        exc_info=exc_info,
    )
    record.created = 1767225600.25  # 2026-01-01T00:00:00.25Z
    for key, value in (extra or {}).items():
        setattr(record, key, value)
    return record


@pytest.fixture
def correlation_id():
    token = correlation_id_ctx.set("req-42")
    yield "req-42"
    correlation_id_ctx.reset(token)


# ---------------------------------------------------------------------------
# log_fields
# ---------------------------------------------------------------------------


class TestLogFields:
    def test_stringifies_ids_and_drops_none(self):
        delivery_id = uuid.uuid4()

        fields = log_fields(delivery_id=delivery_id, webhook_id=None, status_code=502)

        assert fields == {"delivery_id": str(delivery_id), "status_code": 502}

    def test_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="message"):
            log_fields(message="clashes with LogRecord")


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class TestStructuredJsonFormatter:
    def test_uses_record_time_and_context(self, correlation_id):
        webhook_id = uuid.uuid4()
        record = _make_record(extra=log_fields(webhook_id=webhook_id, event_type="booking.created"))

        entry = json.loads(StructuredJsonFormatter().format(record))

        assert entry == {
            "timestamp": "2026-01-01T00:00:00.250000Z",
            "level": "WARNING",
            "correlation_id": "req-42",
            "module": "salonbooker.workers.webhook_delivery",
            "message": "Delivery abc12345 failed",
            "webhook_id": str(webhook_id),
            "event_type": "booking.created",
        }

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _make_record(exc_info=sys.exc_info())

        entry = json.loads(StructuredJsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


class TestContextTextFormatter:
    def test_appends_identifiers(self, correlation_id):
        record = _make_record(extra=log_fields(delivery_id="d-1", status_code=500))

        line = ContextTextFormatter().format(record)

        assert "WARNING" in line
        assert "[req-42]" in line
        assert line.endswith("Delivery abc12345 failed delivery_id=d-1 status_code=500")

    def test_without_request_context(self):
        line = ContextTextFormatter().format(_make_record(args=("x",)))
        assert "[-]" in line
        assert line.endswith("Delivery x failed")


# ---------------------------------------------------------------------------
# configure_structured_logging
# ---------------------------------------------------------------------------


class TestConfigure:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    @pytest.mark.parametrize("log_format,expected", [
        ("json", StructuredJsonFormatter),
        ("text", ContextTextFormatter),
        ("anything-else", StructuredJsonFormatter),
    ])
    def test_picks_formatter(self, log_format, expected):
        configure_structured_logging("DEBUG", log_format)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, expected)

    def test_quiets_http_client_loggers(self):
        with patch.object(logging.getLogger("httpx"), "setLevel") as set_level:
            configure_structured_logging("INFO")
        set_level.assert_called_once_with(logging.WARNING)
