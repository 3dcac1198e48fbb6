"""
Unit tests for webhook HMAC and timestamp verification
"""

from eventswap.utils.webhook_security import (
    compute_signature,
    verify_hmac_signature,
    verify_payment_webhook_security,
    verify_timestamp,
)

SECRET = "shared-secret"
BODY = b'{"event_id":"evt_1","event":"PAYMENT_CONFIRMED","payment_id":"pay_1"}'


class TestHmac:
    def test_valid_signature(self):
        assert verify_hmac_signature(BODY, compute_signature(BODY, SECRET), SECRET) == (True, None, None)

    def test_scheme_prefix_accepted(self):
        is_valid, _, _ = verify_hmac_signature(BODY, "sha256=" + compute_signature(BODY, SECRET), SECRET)
        assert is_valid

    def test_body_must_match_exactly(self):
        signature = compute_signature(BODY, SECRET)
        is_valid, code, details = verify_hmac_signature(BODY + b" ", signature, SECRET)
        assert not is_valid
        assert code == "WEBHOOK_INVALID_SIGNATURE"
        assert details["body_length_bytes"] == len(BODY) + 1

    def test_missing_header(self):
        is_valid, code, _ = verify_hmac_signature(BODY, None, SECRET)
        assert not is_valid
        assert code == "WEBHOOK_MISSING_HEADER"

    def test_unconfigured_secret_rejects_everything(self):
        is_valid, code, _ = verify_hmac_signature(BODY, compute_signature(BODY, ""), "")
        assert not is_valid
        assert code == "WEBHOOK_INVALID_SIGNATURE"


class TestTimestamp:
    def test_missing_timestamp_allowed(self):
        assert verify_timestamp(None, 300) == (True, None, None)

    def test_within_tolerance(self):
        assert verify_timestamp("1700000000", 300, now=1700000299)[0]

    def test_outside_tolerance(self):
        is_valid, code, details = verify_timestamp("1700000000", 300, now=1700000301)
        assert not is_valid
        assert code == "WEBHOOK_TIMESTAMP_SKEW"
        assert details["time_delta_seconds"] == 301

    def test_garbage_timestamp(self):
        is_valid, code, _ = verify_timestamp("yesterday", 300)
        assert not is_valid
        assert code == "WEBHOOK_INVALID_TIMESTAMP"


class TestCombined:
    def test_uses_configured_secret(self):
        secret = "test-webhook-secret-for-testing-only"
        assert verify_payment_webhook_security(BODY, compute_signature(BODY, secret))[0]
        assert not verify_payment_webhook_security(BODY, compute_signature(BODY, SECRET))[0]
