"""Tests for the webhook signature contract."""

import hashlib
import hmac
import re

import pytest

from beacon.webhooks.signature import (
    DEFAULT_USER_AGENT,
    build_headers,
    compute_signature,
    generate_secret,
    signature_payload,
    verification_instructions,
    verify_signature,
)

SECRET = "whsec_test"
BODY = '{"id":"evt_1","event":"mood.logged","user_id":"u1","data":{"mood":4}}'


class TestGenerateSecret:
    """Tests for secret generation."""

    def test_format(self):
        """Secrets are whsec_ followed by 64 lowercase hex characters."""
        secret = generate_secret()
        assert re.fullmatch(r"whsec_[0-9a-f]{64}", secret)

    def test_unique(self):
        """Consecutive secrets differ."""
        assert generate_secret() != generate_secret()


class TestComputeSignature:
    """Tests for compute_signature."""

    def test_matches_reference_hmac(self):
        """Signature is v1= plus hex HMAC-SHA256 over '<ts>.<body>'."""
        expected = hmac.new(
            SECRET.encode(), f"1700000000.{BODY}".encode(), hashlib.sha256
        ).hexdigest()
        assert compute_signature(BODY, 1700000000, SECRET) == f"v1={expected}"

    def test_string_and_int_timestamps_agree(self):
        """Decimal text timestamps sign identically to ints."""
        assert compute_signature(BODY, "1700000000", SECRET) == compute_signature(
            BODY, 1700000000, SECRET
        )

    def test_bytes_body_agrees_with_str(self):
        """A bytes body signs the same as its UTF-8 text."""
        body = '{"note":"café"}'
        assert compute_signature(body.encode("utf-8"), 1, SECRET) == compute_signature(
            body, 1, SECRET
        )

    def test_signature_payload_layout(self):
        """The signed bytes are the timestamp, a dot and the raw body."""
        assert signature_payload("{}", 42) == b"42.{}"

    def test_changes_with_each_input(self):
        """Body, timestamp and secret all feed the digest."""
        base = compute_signature(BODY, 1, SECRET)
        assert compute_signature(BODY + " ", 1, SECRET) != base
        assert compute_signature(BODY, 2, SECRET) != base
        assert compute_signature(BODY, 1, SECRET + "x") != base

    @pytest.mark.parametrize("timestamp", [-1, "12a", "", "1.5", True])
    def test_rejects_malformed_timestamp(self, timestamp):
        """Malformed timestamps raise instead of signing garbage."""
        with pytest.raises((TypeError, ValueError)):
            compute_signature(BODY, timestamp, SECRET)

    def test_rejects_empty_secret(self):
        """An empty secret is refused."""
        with pytest.raises(ValueError):
            compute_signature(BODY, 1, "")


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_round_trip(self):
        """A freshly computed signature verifies."""
        sig = compute_signature(BODY, 1700000000, SECRET)
        assert verify_signature(BODY, "1700000000", sig, SECRET)

    def test_wrong_secret(self):
        """A different secret does not verify."""
        sig = compute_signature(BODY, 1700000000, SECRET)
        assert not verify_signature(BODY, 1700000000, sig, "whsec_other")

    def test_tampered_body(self):
        """Any change to the body breaks verification."""
        sig = compute_signature(BODY, 1700000000, SECRET)
        assert not verify_signature(BODY.replace("4", "5"), 1700000000, sig, SECRET)

    @pytest.mark.parametrize(
        ("body", "timestamp", "signature", "secret"),
        [
            (None, 1, "v1=00", SECRET),
            (BODY, "not-a-number", "v1=00", SECRET),
            (BODY, 1, "v1=éé", SECRET),
            (BODY, 1, None, SECRET),
            (BODY, 1, "v1=00", ""),
            (BODY, 1, "v1=00", None),
        ],
    )
    def test_malformed_input_returns_false(self, body, timestamp, signature, secret):
        """Malformed input yields False rather than raising."""
        assert verify_signature(body, timestamp, signature, secret) is False

    def test_tolerance_window(self):
        """Timestamps outside the tolerance window are rejected."""
        sig = compute_signature(BODY, 1000, SECRET)
        assert verify_signature(BODY, 1000, sig, SECRET, tolerance_seconds=300, now=1200)
        assert not verify_signature(BODY, 1000, sig, SECRET, tolerance_seconds=300, now=1400)


class TestBuildHeaders:
    """Tests for outbound header construction."""

    def test_headers(self):
        """All wire headers are present and consistent."""
        headers = build_headers(BODY, "mood.logged", SECRET, "job_1", timestamp=1700000000)

        assert headers["Content-Type"] == "application/json"
        assert headers["User-Agent"] == DEFAULT_USER_AGENT == "Beacon-Webhook/1.0"
        assert headers["X-Beacon-Timestamp"] == "1700000000"
        assert headers["X-Beacon-Event"] == "mood.logged"
        assert headers["X-Beacon-Delivery"] == "job_1"
        assert headers["X-Beacon-Signature"] == compute_signature(BODY, 1700000000, SECRET)

    def test_fresh_timestamp_when_omitted(self):
        """Without a timestamp the current time is used."""
        headers = build_headers(BODY, "mood.logged", SECRET, "test")
        assert headers["X-Beacon-Timestamp"].isdigit()
        assert verify_signature(
            BODY, headers["X-Beacon-Timestamp"], headers["X-Beacon-Signature"], SECRET
        )


class TestVerificationInstructions:
    """Tests for the receiver instructions."""

    def test_describes_contract(self):
        """Instructions name the header, format and payload layout."""
        info = verification_instructions()
        assert info["algorithm"] == "HMAC-SHA256"
        assert info["header"] == "X-Beacon-Signature"
        assert info["format"] == "v1={signature}"
        assert info["signature_payload"] == "{timestamp}.{body}"
