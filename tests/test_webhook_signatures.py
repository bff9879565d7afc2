"""
Outbound webhook signing tests.
Receivers rely on these headers to authenticate deliveries.
"""
import hashlib
import hmac

from salonbooker.utils.webhook_signatures import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    ID_HEADER,
    EVENT_HEADER,
    generate_secret,
    compute_signature,
    build_signature_headers,
    verify_signature,
)

SECRET = "whsec_test"
BODY = '{"id":"evt","event":"booking.created","data":{"booking_id":"b1"}}'


class TestGenerateSecret:
    def test_is_64_hex_chars(self):
        secret = generate_secret()
        assert len(secret) == 64
        int(secret, 16)

    def test_is_random(self):
        assert generate_secret() != generate_secret()


class TestComputeSignature:
    def test_matches_hmac_over_timestamp_and_body(self):
        expected = hmac.new(
            SECRET.encode(), f"1700000000.{BODY}".encode(), hashlib.sha256
        ).hexdigest()
        assert compute_signature(SECRET, BODY, 1700000000) == expected

    def test_str_and_bytes_body_agree(self):
        assert compute_signature(SECRET, BODY, 1) == compute_signature(SECRET, BODY.encode(), 1)

    def test_timestamp_changes_signature(self):
        assert compute_signature(SECRET, BODY, 1) != compute_signature(SECRET, BODY, 2)


class TestBuildSignatureHeaders:
    def test_sets_all_headers(self):
        headers = build_signature_headers(
            secret=SECRET,
            body=BODY,
            event_type="booking.created",
            event_id="evt-1",
            user_agent="SalonBooker-Webhook/1.0",
            timestamp=1700000000,
        )
        assert headers["Content-Type"] == "application/json"
        assert headers["User-Agent"] == "SalonBooker-Webhook/1.0"
        assert headers[ID_HEADER] == "evt-1"
        assert headers[EVENT_HEADER] == "booking.created"
        assert headers[TIMESTAMP_HEADER] == "1700000000"
        assert headers[SIGNATURE_HEADER] == "sha256=" + compute_signature(SECRET, BODY, 1700000000)


class TestVerifySignature:
    def _signed(self, ts=1700000000):
        return str(ts), "sha256=" + compute_signature(SECRET, BODY, ts)

    def test_valid_signature(self):
        ts, sig = self._signed()
        assert verify_signature(SECRET, BODY, ts, sig, now=1700000010) is True

    def test_accepts_bare_hex(self):
        ts, sig = self._signed()
        assert verify_signature(SECRET, BODY, ts, sig[len("sha256="):], now=1700000000) is True

    def test_wrong_secret(self):
        ts, sig = self._signed()
        assert verify_signature("other", BODY, ts, sig, now=1700000000) is False

    def test_tampered_body(self):
        ts, sig = self._signed()
        assert verify_signature(SECRET, BODY + " ", ts, sig, now=1700000000) is False

    def test_stale_timestamp_rejected(self):
        ts, sig = self._signed()
        assert verify_signature(SECRET, BODY, ts, sig, now=1700000000 + 301) is False

    def test_custom_tolerance(self):
        ts, sig = self._signed()
        assert verify_signature(SECRET, BODY, ts, sig, tolerance=3600, now=1700000000 + 301) is True

    def test_malformed_timestamp(self):
        _, sig = self._signed()
        assert verify_signature(SECRET, BODY, "yesterday", sig, now=1700000000) is False

    def test_missing_values(self):
        ts, sig = self._signed()
        assert verify_signature(SECRET, BODY, ts, "", now=1700000000) is False
        assert verify_signature(SECRET, BODY, "", sig, now=1700000000) is False
        assert verify_signature("", BODY, ts, sig, now=1700000000) is False
