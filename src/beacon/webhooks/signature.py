"""HMAC-SHA256 signature contract for outbound webhooks.

Receivers reproduce this exactly, so it must stay bit-compatible:

    signature_payload = f"{unix_timestamp_seconds}.{raw_json_body}"
    signature = "v1=" + hex(HMAC_SHA256(secret, signature_payload))

Secret and payload are UTF-8 encoded and the digest is lowercase hex. The
signature travels in ``X-Beacon-Signature``, the timestamp as decimal text
in ``X-Beacon-Timestamp`` and the event type verbatim in ``X-Beacon-Event``.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import time

SIGNATURE_VERSION = "v1"
SIGNATURE_HEADER = "X-Beacon-Signature"
TIMESTAMP_HEADER = "X-Beacon-Timestamp"
EVENT_HEADER = "X-Beacon-Event"
DELIVERY_HEADER = "X-Beacon-Delivery"
DEFAULT_USER_AGENT = "Beacon-Webhook/1.0"

SECRET_PREFIX = "whsec_"

_TIMESTAMP_RE = re.compile(r"^[0-9]+$")


def generate_secret() -> str:
    """Generate a new opaque webhook secret ("whsec_" + 64 hex chars)."""
    return f"{SECRET_PREFIX}{secrets.token_hex(32)}"


def _timestamp_text(timestamp: int | str) -> str:
    if isinstance(timestamp, bool):
        raise TypeError("timestamp must be an int or decimal string")
    if isinstance(timestamp, int):
        if timestamp < 0:
            raise ValueError("timestamp must not be negative")
        return str(timestamp)
    if isinstance(timestamp, str) and _TIMESTAMP_RE.match(timestamp):
        return timestamp
    raise ValueError(f"invalid timestamp: {timestamp!r}")


def _body_bytes(body: str | bytes) -> bytes:
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    raise TypeError("body must be str or bytes")


def signature_payload(body: str | bytes, timestamp: int | str) -> bytes:
    """Build the exact byte string that is signed."""
    return f"{_timestamp_text(timestamp)}.".encode() + _body_bytes(body)


def compute_signature(body: str | bytes, timestamp: int | str, secret: str) -> str:
    """Compute the versioned HMAC-SHA256 signature for a webhook body.

    Args:
        body: Raw JSON body exactly as sent on the wire.
        timestamp: Unix timestamp in seconds (int or decimal text).
        secret: Shared webhook secret.

    Returns:
        Signature in the format "v1=<hex_digest>".

    Raises:
        TypeError, ValueError: If any input is malformed.
    """
    if not isinstance(secret, str) or not secret:
        raise ValueError("secret must be a non-empty string")
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=signature_payload(body, timestamp),
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_signature(
    body: str | bytes,
    timestamp: int | str,
    signature: str,
    secret: str,
    *,
    tolerance_seconds: int | None = None,
    now: int | None = None,
) -> bool:
    """Verify a webhook signature in constant time.

    Never raises: any malformed input yields False.

    Args:
        body: Raw request body as received.
        timestamp: Value of the timestamp header.
        signature: Value of the signature header.
        secret: Shared webhook secret.
        tolerance_seconds: If set, reject timestamps further than this from now.
        now: Current unix time for the tolerance check (defaults to time.time()).

    Returns:
        True if the signature matches, False otherwise.
    """
    try:
        if not isinstance(signature, str):
            return False
        expected = compute_signature(body, timestamp, secret)
        if tolerance_seconds is not None:
            current = int(time.time()) if now is None else now
            if abs(current - int(_timestamp_text(timestamp))) > tolerance_seconds:
                return False
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii"))
    except (TypeError, ValueError, UnicodeEncodeError):
        return False


def build_headers(
    body: str | bytes,
    event_type: str,
    secret: str,
    delivery_id: str,
    timestamp: int | None = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> dict[str, str]:
    """Build the signed headers for one outbound delivery.

    A fresh timestamp is taken per attempt unless one is supplied.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        SIGNATURE_HEADER: compute_signature(body, ts, secret),
        TIMESTAMP_HEADER: str(ts),
        EVENT_HEADER: event_type,
        DELIVERY_HEADER: delivery_id,
    }


def verification_instructions() -> dict[str, object]:
    """Describe the contract for receivers (served by the info endpoint)."""
    return {
        "algorithm": "HMAC-SHA256",
        "header": SIGNATURE_HEADER,
        "timestamp_header": TIMESTAMP_HEADER,
        "event_header": EVENT_HEADER,
        "format": f"{SIGNATURE_VERSION}={{signature}}",
        "signature_payload": "{timestamp}.{body}",
        "example": {
            "python": (
                "import hmac, hashlib\n\n"
                "def verify_webhook(body: bytes, timestamp: str, signature: str, secret: str) -> bool:\n"
                "    payload = timestamp.encode() + b'.' + body\n"
                "    expected = 'v1=' + hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()\n"
                "    return hmac.compare_digest(signature, expected)\n"
            ),
        },
        "tips": [
            "Verify against the raw request body, before JSON parsing",
            "Reject requests whose timestamp is older than 5 minutes",
            "Use a constant-time comparison for signatures",
            "Deliveries are at-least-once: deduplicate on the event id",
        ],
    }
