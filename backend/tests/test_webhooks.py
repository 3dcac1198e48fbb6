"""
Payment webhook endpoint tests - signature, idempotency and state effects
"""

import json
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from eventswap.core.compliance.models import AuditLog
from eventswap.core.listings.models import Listing, ListingStatus
from eventswap.core.transactions.models import (
    Payment,
    PaymentStatus,
    ReviewStatus,
    Transaction,
    TransactionStatus,
    WebhookEvent,
)
from eventswap.utils.webhook_security import SIGNATURE_HEADER, compute_signature
from tests.flows import accept_offer

WEBHOOK_URL = "/api/webhooks/payments"
WEBHOOK_SECRET = "test-webhook-secret-for-testing-only"


def _post(client: TestClient, payload: dict, signature: str = None):
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    headers[SIGNATURE_HEADER] = signature if signature is not None else compute_signature(body, WEBHOOK_SECRET)
    return client.post(WEBHOOK_URL, content=body, headers=headers)


def _event(event_type: str, payment_id: str = "pay_1", value: str = "850.00", event_id: str = None) -> dict:
    return {
        "event_id": event_id or f"evt_{uuid4().hex[:12]}",
        "event": event_type,
        "payment_id": payment_id,
        "value": value,
    }


@pytest.fixture
def awaiting(db_session, gateway, seller, buyer, make_listing) -> Transaction:
    listing = make_listing(seller)
    return accept_offer(db_session, gateway, listing, buyer)


def _state(db, transaction_id):
    transaction = db.get(Transaction, transaction_id, populate_existing=True)
    payment = db.execute(
        select(Payment).where(Payment.transaction_id == transaction_id).execution_options(populate_existing=True)
    ).scalar_one()
    listing = db.get(Listing, transaction.listing_id, populate_existing=True)
    return transaction, payment, listing


class TestPaymentConfirmed:
    def test_confirms_transaction(self, client: TestClient, db_session, awaiting):
        response = _post(client, _event("PAYMENT_CONFIRMED"))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "processed"
        assert data["transaction_id"] == str(awaiting.id)
        assert data["transaction_status"] == "PAYMENT_CONFIRMED"

        transaction, payment, listing = _state(db_session, awaiting.id)
        assert transaction.status == TransactionStatus.PAYMENT_CONFIRMED
        assert transaction.paid_at is not None
        assert payment.status == PaymentStatus.SUCCEEDED
        assert listing.status == ListingStatus.RESERVED

    def test_located_by_external_reference(self, client: TestClient, db_session, awaiting):
        payload = {"event_id": "evt_ref_1", "event": "PAYMENT_RECEIVED", "external_reference": str(awaiting.id)}
        response = _post(client, payload)

        assert response.status_code == 200
        assert response.json()["transaction_status"] == "PAYMENT_CONFIRMED"

    def test_replayed_event_is_duplicate(self, client: TestClient, db_session, awaiting):
        event = _event("PAYMENT_CONFIRMED", event_id="evt_replay")
        assert _post(client, event).json()["status"] == "processed"

        response = _post(client, event)
        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert response.json()["transaction_status"] == "PAYMENT_CONFIRMED"

        count = db_session.execute(
            select(func.count(WebhookEvent.id)).where(WebhookEvent.provider_event_id == "evt_replay")
        ).scalar_one()
        assert count == 1

    def test_second_success_event_is_noop(self, client: TestClient, db_session, awaiting):
        assert _post(client, _event("PAYMENT_CONFIRMED")).status_code == 200

        response = _post(client, _event("PAYMENT_RECEIVED"))
        assert response.status_code == 200
        assert response.json()["status"] == "processed"

        outcomes = db_session.execute(select(WebhookEvent.outcome).order_by(WebhookEvent.created_at)).scalars().all()
        assert sorted(outcomes) == ["already_applied", "confirmed"]

    def test_amount_mismatch_flags_for_review(self, client: TestClient, db_session, awaiting):
        response = _post(client, _event("PAYMENT_CONFIRMED", value="800.00"))

        assert response.status_code == 200
        transaction, _, _ = _state(db_session, awaiting.id)
        assert transaction.status == TransactionStatus.PAYMENT_CONFIRMED
        assert transaction.review_status == ReviewStatus.FLAGGED
        mismatch = db_session.execute(
            select(AuditLog).where(AuditLog.action == "PAYMENT_AMOUNT_MISMATCH")
        ).scalar_one()
        assert mismatch.after["received"] == "800.00"


class TestPaymentFailed:
    @pytest.mark.parametrize("event_type", ["PAYMENT_FAILED", "PAYMENT_OVERDUE", "payment_deleted"])
    def test_failure_cancels_and_frees_listing(self, client: TestClient, db_session, awaiting, event_type):
        response = _post(client, _event(event_type))

        assert response.status_code == 200
        assert response.json()["transaction_status"] == "CANCELLED"
        transaction, payment, listing = _state(db_session, awaiting.id)
        assert transaction.status == TransactionStatus.CANCELLED
        assert transaction.cancel_reason == event_type.upper()
        assert payment.status == PaymentStatus.FAILED
        assert listing.status == ListingStatus.ACTIVE
        assert listing.reserved_by_transaction_id is None

    def test_out_of_order_event_is_conflict_and_not_recorded(self, client: TestClient, db_session, awaiting):
        assert _post(client, _event("PAYMENT_FAILED")).status_code == 200

        response = _post(client, _event("PAYMENT_CONFIRMED", event_id="evt_late"))
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATE_TRANSITION"
        assert db_session.execute(
            select(WebhookEvent).where(WebhookEvent.provider_event_id == "evt_late")
        ).first() is None

        transaction, _, _ = _state(db_session, awaiting.id)
        assert transaction.status == TransactionStatus.CANCELLED


class TestUnhandledEvents:
    def test_unknown_type_is_ignored(self, client: TestClient, db_session, awaiting):
        response = _post(client, _event("PAYMENT_CREATED"))

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        transaction, _, _ = _state(db_session, awaiting.id)
        assert transaction.status == TransactionStatus.AWAITING_PAYMENT

    def test_unknown_payment_is_404(self, client: TestClient, db_session):
        response = _post(client, _event("PAYMENT_CONFIRMED", payment_id="pay_missing"))
        assert response.status_code == 404
        assert response.json()["code"] == "PAYMENT_NOT_FOUND"


class TestWebhookRejections:
    def test_bad_signature(self, client: TestClient, db_session, awaiting):
        response = _post(client, _event("PAYMENT_CONFIRMED"), signature="deadbeef")

        assert response.status_code == 401
        assert response.json()["code"] == "WEBHOOK_INVALID_SIGNATURE"
        transaction, _, _ = _state(db_session, awaiting.id)
        assert transaction.status == TransactionStatus.AWAITING_PAYMENT
        assert db_session.execute(
            select(AuditLog).where(AuditLog.action == "WEBHOOK_SIGNATURE_FAILED")
        ).first() is not None

    def test_missing_signature_header(self, client: TestClient, db_session):
        response = client.post(WEBHOOK_URL, content=json.dumps(_event("PAYMENT_CONFIRMED")))
        assert response.status_code == 401
        assert response.json()["code"] == "WEBHOOK_MISSING_HEADER"

    def test_prefixed_signature_accepted(self, client: TestClient, db_session, awaiting):
        payload = _event("PAYMENT_CONFIRMED")
        body = json.dumps(payload).encode("utf-8")
        response = client.post(
            WEBHOOK_URL,
            content=body,
            headers={SIGNATURE_HEADER: "sha256=" + compute_signature(body, WEBHOOK_SECRET)},
        )
        assert response.status_code == 200

    def test_stale_timestamp_rejected(self, client: TestClient, db_session):
        body = json.dumps(_event("PAYMENT_CONFIRMED")).encode("utf-8")
        response = client.post(
            WEBHOOK_URL,
            content=body,
            headers={
                SIGNATURE_HEADER: compute_signature(body, WEBHOOK_SECRET),
                "X-Payment-Timestamp": "1000",
            },
        )
        assert response.status_code == 401
        assert response.json()["code"] == "WEBHOOK_TIMESTAMP_SKEW"

    @pytest.mark.parametrize("payload", [
        {"event": "PAYMENT_CONFIRMED", "payment_id": "pay_1"},
        {"event_id": "evt_1", "event": "PAYMENT_CONFIRMED"},
        {"event_id": "evt_1", "event": "PAYMENT_CONFIRMED", "payment_id": "pay_1", "value": "-1"},
    ])
    def test_invalid_payload(self, client: TestClient, db_session, payload):
        response = _post(client, payload)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["details"]["errors"]
