"""
Admin override tests - forced refund and cancel
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from eventswap.core.compliance.models import AuditLog
from eventswap.core.disputes.models import Dispute, DisputeReason, DisputeResolution, DisputeStatus
from eventswap.core.listings.models import Listing, ListingStatus
from eventswap.core.security.models import Actor, Role
from eventswap.core.transactions.models import Payment, PaymentStatus, Transaction, TransactionStatus
from eventswap.services.admin.override import force_cancel, force_refund
from eventswap.services.disputes.service import PartialSplitPolicy, open_dispute, resolve_dispute, start_review
from eventswap.services.escrow.service import confirm_receipt, refund_payment
from eventswap.services.exceptions import AuthorizationError, ConflictError
from eventswap.services.transaction_engine import unit_of_work
from tests.auth_utils import auth_headers
from tests.flows import accept_offer, actor_for, paid_transaction, transferring_transaction

DESCRIPTION = "The seller never started the transfer and stopped answering messages after payment."


def _payment(db, transaction_id) -> Payment:
    return db.execute(
        select(Payment).where(Payment.transaction_id == transaction_id).execution_options(populate_existing=True)
    ).scalar_one()


def _listing(db, listing_id) -> Listing:
    return db.get(Listing, listing_id, populate_existing=True)


class TestForceRefund:
    def test_refund_before_payment_voids_charge(self, db_session, gateway, seller, buyer, make_listing, admin_actor):
        listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, listing, buyer)

        refunded = force_refund(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway, reason="Buyer request")

        assert refunded.status == TransactionStatus.REFUNDED
        assert refunded.refunded_at is not None
        assert refunded.override_actor_id == admin_actor.user_id
        assert _payment(db_session, transaction.id).status == PaymentStatus.FAILED
        assert gateway.refunds == []
        assert _listing(db_session, listing.id).status == ListingStatus.ACTIVE

    def test_refund_after_payment_goes_through_gateway(self, db_session, gateway, seller, buyer, make_listing, admin_actor):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)

        force_refund(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway)

        payment = _payment(db_session, transaction.id)
        assert payment.refund_reference == "ref_1"
        assert payment.refunded_at is not None
        assert gateway.refunds[0]["provider_payment_id"] == "pay_1"
        assert gateway.refunds[0]["amount"] == payment.gross_amount

    def test_second_refund_conflicts(self, db_session, gateway, seller, buyer, make_listing, admin_actor):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)
        force_refund(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway)

        with pytest.raises(ConflictError) as exc_info:
            force_refund(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway)
        assert exc_info.value.code == "ALREADY_TERMINAL"
        assert len(gateway.refunds) == 1

    def test_completed_trade_can_be_charged_back(self, db_session, gateway, seller, buyer, make_listing, admin_actor):
        listing = make_listing(seller)
        transaction = transferring_transaction(db_session, gateway, listing, buyer)
        confirm_receipt(db=db_session, transaction_id=transaction.id, actor=actor_for(buyer))
        assert _listing(db_session, listing.id).status == ListingStatus.SOLD

        refunded = force_refund(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway)

        assert refunded.status == TransactionStatus.REFUNDED
        assert len(gateway.refunds) == 1
        assert _listing(db_session, listing.id).status == ListingStatus.ACTIVE

    def test_requires_admin_role(self, db_session, gateway, seller, buyer, make_listing, mediator_actor):
        listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, listing, buyer)

        for actor in (mediator_actor, actor_for(buyer)):
            with pytest.raises(AuthorizationError):
                force_refund(db=db_session, transaction_id=transaction.id, actor=actor, gateway=gateway)

        transaction = db_session.get(Transaction, transaction.id, populate_existing=True)
        assert transaction.status == TransactionStatus.AWAITING_PAYMENT

    def test_override_is_audited(self, db_session, gateway, seller, buyer, make_listing, admin_actor):
        listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, listing, buyer)
        force_refund(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway, reason="Chargeback")

        entry = db_session.execute(
            select(AuditLog).where(AuditLog.action == "TRANSACTION_REFUNDED", AuditLog.entity_id == transaction.id)
        ).scalar_one()
        assert entry.actor_user_id == admin_actor.user_id
        assert entry.actor_role == Role.ADMIN
        assert entry.before == {"status": "AWAITING_PAYMENT"}
        assert entry.after["kind"] == "ADMIN_OVERRIDE"
        assert entry.reason == "Chargeback"


class TestForceCancel:
    def test_cancel_paid_transaction_refunds(self, db_session, gateway, seller, buyer, make_listing, admin_actor):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)

        cancelled = force_cancel(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway)

        assert cancelled.status == TransactionStatus.CANCELLED
        assert cancelled.cancel_reason == "ADMIN_CANCELLED"
        assert len(gateway.refunds) == 1
        assert _listing(db_session, listing.id).status == ListingStatus.ACTIVE

    def test_completed_cannot_be_cancelled(self, db_session, gateway, seller, buyer, make_listing, admin_actor):
        listing = make_listing(seller)
        transaction = transferring_transaction(db_session, gateway, listing, buyer)
        confirm_receipt(db=db_session, transaction_id=transaction.id, actor=actor_for(buyer))

        with pytest.raises(ConflictError) as exc_info:
            force_cancel(db=db_session, transaction_id=transaction.id, actor=admin_actor, gateway=gateway)
        assert exc_info.value.code == "INVALID_STATE_TRANSITION"

    def test_super_admin_may_override(self, db_session, gateway, seller, buyer, make_user, make_listing):
        listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, listing, buyer)
        super_admin = Actor(user_id=make_user().id, roles=(Role.SUPER_ADMIN,))

        cancelled = force_cancel(db=db_session, transaction_id=transaction.id, actor=super_admin, gateway=gateway)
        assert cancelled.status == TransactionStatus.CANCELLED

        with pytest.raises(ConflictError) as exc_info:
            force_refund(db=db_session, transaction_id=transaction.id, actor=super_admin, gateway=gateway)
        assert exc_info.value.code == "ALREADY_TERMINAL"


class TestOverrideOnDisputedTrade:
    @pytest.fixture
    def disputed(self, db_session, gateway, seller, buyer, make_listing):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)
        return open_dispute(
            db=db_session,
            transaction_id=transaction.id,
            actor=actor_for(buyer),
            reason=DisputeReason.TRANSFER_REJECTED,
            description=DESCRIPTION,
        )

    def test_refund_resolves_open_dispute(self, db_session, gateway, disputed, admin_actor, mediator_actor):
        force_refund(db=db_session, transaction_id=disputed.transaction_id, actor=admin_actor, gateway=gateway, reason="Seller unreachable")

        dispute = db_session.get(Dispute, disputed.id, populate_existing=True)
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution == DisputeResolution.REFUND
        assert dispute.resolved_by == admin_actor.user_id
        assert dispute.resolved_at is not None
        assert "admin refund" in dispute.resolution_notes
        assert db_session.get(Transaction, disputed.transaction_id, populate_existing=True).status == TransactionStatus.REFUNDED

        entry = db_session.execute(
            select(AuditLog).where(AuditLog.action == "DISPUTE_RESOLVED", AuditLog.entity_id == disputed.id)
        ).scalar_one()
        assert entry.after["kind"] == "ADMIN_OVERRIDE"

        with pytest.raises(ConflictError) as exc_info:
            resolve_dispute(
                db=db_session,
                dispute_id=disputed.id,
                actor=mediator_actor,
                resolution=DisputeResolution.REFUND,
                gateway=gateway,
            )
        assert exc_info.value.message == "Dispute already in state RESOLVED"
        assert len(gateway.refunds) == 1

    def test_cancel_resolves_dispute_under_review(self, db_session, gateway, disputed, admin_actor, mediator_actor):
        start_review(db=db_session, dispute_id=disputed.id, actor=mediator_actor)

        force_cancel(db=db_session, transaction_id=disputed.transaction_id, actor=admin_actor, gateway=gateway)

        dispute = db_session.get(Dispute, disputed.id, populate_existing=True)
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution == DisputeResolution.REFUND
        assert "admin cancel" in dispute.resolution_notes

    def test_chargeback_after_partial_refunds_the_remainder(self, db_session, gateway, disputed, admin_actor, mediator_actor):
        resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=mediator_actor,
            resolution=DisputeResolution.PARTIAL,
            gateway=gateway,
            policy=PartialSplitPolicy(mode="PERCENT", buyer_percent=Decimal("50")),
        )
        assert _payment(db_session, disputed.transaction_id).refunded_amount == Decimal("425.00")

        refunded = force_refund(db=db_session, transaction_id=disputed.transaction_id, actor=admin_actor, gateway=gateway)

        assert refunded.status == TransactionStatus.REFUNDED
        assert [refund["amount"] for refund in gateway.refunds] == [Decimal("425.00"), Decimal("425.00")]
        payment = _payment(db_session, disputed.transaction_id)
        assert payment.refunded_amount == payment.gross_amount
        assert payment.refund_reference == "ref_2"

    def test_fully_refunded_payment_is_not_refunded_again(self, db_session, gateway, seller, buyer, make_listing):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)
        with unit_of_work(db_session):
            first = refund_payment(db=db_session, transaction=transaction, gateway=gateway, reason="Full refund")
            second = refund_payment(db=db_session, transaction=transaction, gateway=gateway, reason="Again")

        assert first == "ref_1"
        assert second is None
        assert len(gateway.refunds) == 1


class TestAdminOverrideAPI:
    def test_refund_endpoint(self, client: TestClient, db_session, gateway, seller, buyer, make_listing, admin_user):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)

        response = client.post(
            "/api/admin/refund",
            json={"transaction_id": str(transaction.id), "reason": "Event cancelled by venue"},
            headers=auth_headers(admin_user.id, "ADMIN"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Transaction refunded"
        assert data["data"]["status"] == "REFUNDED"
        assert data["data"]["admin_id"] == str(admin_user.id)
        assert data["data"]["refunded_at"] is not None

        response = client.post(
            "/api/admin/refund",
            json={"transaction_id": str(transaction.id)},
            headers=auth_headers(admin_user.id, "ADMIN"),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_TERMINAL"

    def test_cancel_endpoint(self, client: TestClient, db_session, gateway, seller, buyer, make_listing, admin_user):
        listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, listing, buyer)

        response = client.post(
            "/api/admin/cancel",
            json={"transaction_id": str(transaction.id)},
            headers=auth_headers(admin_user.id, "ADMIN"),
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "CANCELLED"
        assert response.json()["data"]["cancelled_at"] is not None

    def test_user_token_is_forbidden(self, client: TestClient, db_session, gateway, seller, buyer, make_listing):
        listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, listing, buyer)

        response = client.post(
            "/api/admin/refund",
            json={"transaction_id": str(transaction.id)},
            headers=auth_headers(buyer.id),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_malformed_and_unknown_ids(self, client: TestClient, db_session, admin_user):
        headers = auth_headers(admin_user.id, "ADMIN")

        response = client.post("/api/admin/refund", json={"transaction_id": "not-a-uuid"}, headers=headers)
        assert response.status_code == 400
        assert response.json()["details"] == {"field": "transaction_id"}

        response = client.post("/api/admin/refund", json={"transaction_id": str(uuid4())}, headers=headers)
        assert response.status_code == 404

    def test_fraud_check_endpoint(self, client: TestClient, db_session, admin_user):
        response = client.post(
            "/api/admin/fraud-check",
            json={"account_age_days": 2, "confirmed_fraud_disputes": 1},
            headers=auth_headers(admin_user.id, "ADMIN"),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 75.0
        assert data["level"] == "CRITICAL"
        assert data["recommendation"] == "BLOCK"
        assert data["hard_signals"] == ["confirmed_fraud_disputes"]

        response = client.post("/api/admin/fraud-check", json={}, headers=auth_headers(admin_user.id))
        assert response.status_code == 403
