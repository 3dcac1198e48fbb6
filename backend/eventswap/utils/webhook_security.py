"""
Webhook security utilities - HMAC signature verification and replay protection
"""

import hmac
import hashlib
import time
import logging
from typing import Optional, Tuple, Dict, Any

from eventswap.infrastructure.settings import get_settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Payment-Signature"
TIMESTAMP_HEADER = "X-Payment-Timestamp"


def compute_signature(payload_body: bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest of the exact raw body bytes"""
    return hmac.new(secret.encode("utf-8"), payload_body, hashlib.sha256).hexdigest()


def verify_hmac_signature(
    payload_body: bytes,
    signature_header: Optional[str],
    secret: str,
) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Verify HMAC-SHA256 signature using constant-time comparison.

    The signature is computed over EXACT raw request body bytes. A leading
    "sha256=" scheme marker is accepted.

    Returns:
        Tuple of (is_valid, error_code, error_details)
    """
    if not secret:
        return False, "WEBHOOK_INVALID_SIGNATURE", {
            "reason": "PAYMENT_WEBHOOK_SECRET not configured",
            "hint": "Set PAYMENT_WEBHOOK_SECRET in environment variables",
        }

    if not signature_header:
        return False, "WEBHOOK_MISSING_HEADER", {
            "missing_header": SIGNATURE_HEADER,
            "hint": f"Include {SIGNATURE_HEADER} header with HMAC-SHA256 signature of request body",
        }

    received = signature_header.strip()
    if received.lower().startswith("sha256="):
        received = received[len("sha256="):]

    expected_signature = compute_signature(payload_body, secret)

    if not hmac.compare_digest(expected_signature, received):
        return False, "WEBHOOK_INVALID_SIGNATURE", {
            "expected_length": len(expected_signature),
            "received_length": len(received),
            "body_length_bytes": len(payload_body),
            "hint": "Signature mismatch. Ensure signature is computed over exact raw body bytes (HMAC-SHA256).",
        }

    return True, None, None


def verify_timestamp(
    timestamp_header: Optional[str],
    tolerance_seconds: int,
    now: Optional[int] = None,
) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Verify timestamp to prevent replay attacks.

    A missing timestamp is accepted: replays are then caught by event-id idempotency.

    Returns:
        Tuple of (is_valid, error_code, error_details)
    """
    if not timestamp_header:
        logger.debug("No timestamp header provided - relying on idempotency protection")
        return True, None, None

    try:
        timestamp = int(timestamp_header)
    except (ValueError, TypeError):
        return False, "WEBHOOK_INVALID_TIMESTAMP", {
            "received": timestamp_header,
            "expected_format": "Unix timestamp (integer as string)",
        }

    current_time = int(time.time()) if now is None else now
    time_delta = abs(current_time - timestamp)

    if time_delta > tolerance_seconds:
        return False, "WEBHOOK_TIMESTAMP_SKEW", {
            "received_timestamp": timestamp,
            "current_timestamp": current_time,
            "time_delta_seconds": time_delta,
            "max_skew_seconds": tolerance_seconds,
        }

    return True, None, None


def verify_payment_webhook_security(
    payload_body: bytes,
    signature_header: Optional[str],
    timestamp_header: Optional[str] = None,
) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Complete webhook security verification for payment provider webhooks.

    Performs:
    1. HMAC-SHA256 signature verification (over exact raw body bytes)
    2. Timestamp/replay protection (if timestamp provided)

    Returns:
        Tuple of (is_valid, error_code, error_details)
    """
    settings = get_settings()

    is_valid, error_code, error_details = verify_hmac_signature(
        payload_body=payload_body,
        signature_header=signature_header,
        secret=settings.PAYMENT_WEBHOOK_SECRET,
    )
    if not is_valid:
        return False, error_code, error_details

    return verify_timestamp(
        timestamp_header=timestamp_header,
        tolerance_seconds=settings.PAYMENT_WEBHOOK_TOLERANCE_SECONDS,
    )
