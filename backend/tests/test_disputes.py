"""
Dispute workflow tests - open, review and settle
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from eventswap.core.disputes.models import DisputeReason, DisputeResolution, DisputeStatus
from eventswap.core.listings.models import Listing, ListingStatus
from eventswap.core.transactions.models import (
    AdjustmentKind,
    Payment,
    PaymentAdjustment,
    ReviewStatus,
    Transaction,
    TransactionStatus,
)
from eventswap.services.disputes.service import (
    PartialSplitPolicy,
    open_dispute,
    resolve_dispute,
    seller_release_amount,
    start_review,
)
from eventswap.services.exceptions import AuthorizationError, ConflictError, ValidationError
from tests.auth_utils import auth_headers
from tests.flows import accept_offer, actor_for, paid_transaction, transferring_transaction

DESCRIPTION = "The seller transferred a reservation for a different date than the one advertised."


def _transaction(db, transaction_id) -> Transaction:
    return db.get(Transaction, transaction_id, populate_existing=True)


def _payment(db, transaction_id) -> Payment:
    return db.execute(
        select(Payment).where(Payment.transaction_id == transaction_id).execution_options(populate_existing=True)
    ).scalar_one()


@pytest.fixture
def disputed(db_session, gateway, seller, buyer, make_listing):
    """Paid transaction with an OPEN dispute raised by the buyer"""
    listing = make_listing(seller)
    transaction = paid_transaction(db_session, gateway, listing, buyer)
    dispute = open_dispute(
        db=db_session,
        transaction_id=transaction.id,
        actor=actor_for(buyer),
        reason=DisputeReason.LISTING_MISMATCH,
        description=DESCRIPTION,
    )
    return dispute


class TestOpenDispute:
    def test_buyer_opens_dispute(self, db_session, disputed, buyer):
        assert disputed.status == DisputeStatus.OPEN
        assert disputed.protocol.startswith("DSP-")
        assert disputed.raised_by == buyer.id
        assert _transaction(db_session, disputed.transaction_id).status == TransactionStatus.DISPUTED

    def test_seller_may_dispute_during_transfer(self, db_session, gateway, seller, buyer, make_listing):
        listing = make_listing(seller)
        transaction = transferring_transaction(db_session, gateway, listing, buyer)

        dispute = open_dispute(
            db=db_session,
            transaction_id=transaction.id,
            actor=actor_for(seller),
            reason=DisputeReason.TRANSFER_REJECTED,
            description=DESCRIPTION,
        )
        assert dispute.raised_by == seller.id

    @pytest.mark.parametrize("description", ["Too short", "   " + "x" * 40 + "   ", "x" * 2001])
    def test_description_length_bounds(self, db_session, gateway, seller, buyer, make_listing, description):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)

        with pytest.raises(ValidationError):
            open_dispute(
                db=db_session,
                transaction_id=transaction.id,
                actor=actor_for(buyer),
                reason=DisputeReason.OTHER,
                description=description,
            )

    def test_unpaid_transaction_not_disputable(self, db_session, gateway, seller, buyer, make_listing):
        listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, listing, buyer)

        with pytest.raises(ConflictError) as exc_info:
            open_dispute(
                db=db_session,
                transaction_id=transaction.id,
                actor=actor_for(buyer),
                reason=DisputeReason.PAYMENT_ISSUES,
                description=DESCRIPTION,
            )
        assert exc_info.value.code == "INVALID_STATE_TRANSITION"

    def test_second_dispute_conflicts(self, db_session, disputed, buyer):
        with pytest.raises(ConflictError):
            open_dispute(
                db=db_session,
                transaction_id=disputed.transaction_id,
                actor=actor_for(buyer),
                reason=DisputeReason.OTHER,
                description=DESCRIPTION,
            )

    def test_stranger_cannot_dispute(self, db_session, gateway, seller, buyer, make_user, make_listing):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)
        with pytest.raises(AuthorizationError):
            open_dispute(
                db=db_session,
                transaction_id=transaction.id,
                actor=actor_for(make_user()),
                reason=DisputeReason.OTHER,
                description=DESCRIPTION,
            )


class TestReview:
    def test_mediator_starts_review(self, db_session, disputed, mediator_actor):
        dispute = start_review(db=db_session, dispute_id=disputed.id, actor=mediator_actor)
        assert dispute.status == DisputeStatus.UNDER_REVIEW
        assert dispute.reviewer_id == mediator_actor.user_id

        with pytest.raises(ConflictError):
            start_review(db=db_session, dispute_id=disputed.id, actor=mediator_actor)

    def test_parties_cannot_review(self, db_session, disputed, seller):
        with pytest.raises(AuthorizationError):
            start_review(db=db_session, dispute_id=disputed.id, actor=actor_for(seller))


class TestResolve:
    def test_refund(self, db_session, gateway, disputed, mediator_actor):
        dispute = resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=mediator_actor,
            resolution=DisputeResolution.REFUND,
            gateway=gateway,
            notes="Wrong date",
        )

        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution == DisputeResolution.REFUND
        assert dispute.resolved_by == mediator_actor.user_id
        transaction = _transaction(db_session, disputed.transaction_id)
        assert transaction.status == TransactionStatus.REFUNDED
        assert gateway.refunds[0]["amount"] == Decimal("850.00")
        listing = db_session.get(Listing, transaction.listing_id, populate_existing=True)
        assert listing.status == ListingStatus.ACTIVE

    def test_release_after_review(self, db_session, gateway, disputed, admin_actor):
        start_review(db=db_session, dispute_id=disputed.id, actor=admin_actor)

        dispute = resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=admin_actor,
            resolution=DisputeResolution.RELEASE,
            gateway=gateway,
        )

        assert dispute.resolution == DisputeResolution.RELEASE
        transaction = _transaction(db_session, disputed.transaction_id)
        assert transaction.status == TransactionStatus.COMPLETED
        assert gateway.refunds == []
        listing = db_session.get(Listing, transaction.listing_id, populate_existing=True)
        assert listing.status == ListingStatus.SOLD

    def test_partial_percent_split(self, db_session, gateway, disputed, mediator_actor):
        resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=mediator_actor,
            resolution=DisputeResolution.PARTIAL,
            gateway=gateway,
            policy=PartialSplitPolicy(mode="PERCENT", buyer_percent=Decimal("50")),
        )

        transaction = _transaction(db_session, disputed.transaction_id)
        assert transaction.status == TransactionStatus.COMPLETED
        adjustments = {
            adjustment.kind: adjustment
            for adjustment in db_session.execute(select(PaymentAdjustment)).scalars()
        }
        assert adjustments[AdjustmentKind.BUYER_REFUND].amount == Decimal("425.00")
        assert adjustments[AdjustmentKind.BUYER_REFUND].provider_reference == "ref_1"
        assert adjustments[AdjustmentKind.SELLER_RELEASE].amount == Decimal("357.00")
        assert _payment(db_session, transaction.id).net_amount == Decimal("357.00")
        assert gateway.refunds[0]["amount"] == Decimal("425.00")

    def test_partial_fixed_split(self, db_session, gateway, disputed, mediator_actor):
        resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=mediator_actor,
            resolution=DisputeResolution.PARTIAL,
            gateway=gateway,
            buyer_refund_amount=Decimal("200"),
            policy=PartialSplitPolicy(mode="FIXED"),
        )

        release = db_session.execute(
            select(PaymentAdjustment).where(PaymentAdjustment.kind == AdjustmentKind.SELLER_RELEASE)
        ).scalar_one()
        assert release.amount == Decimal("582.00")

    @pytest.mark.parametrize("amount", [None, Decimal("0"), Decimal("850.00")])
    def test_partial_fixed_split_requires_valid_amount(self, db_session, gateway, disputed, mediator_actor, amount):
        with pytest.raises(ValidationError):
            resolve_dispute(
                db=db_session,
                dispute_id=disputed.id,
                actor=mediator_actor,
                resolution=DisputeResolution.PARTIAL,
                gateway=gateway,
                buyer_refund_amount=amount,
                policy=PartialSplitPolicy(mode="FIXED"),
            )

        db_session.expire_all()
        assert _transaction(db_session, disputed.transaction_id).status == TransactionStatus.DISPUTED
        assert db_session.execute(select(PaymentAdjustment)).first() is None

    def test_resolve_twice_conflicts(self, db_session, gateway, disputed, mediator_actor):
        resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=mediator_actor,
            resolution=DisputeResolution.RELEASE,
            gateway=gateway,
        )
        with pytest.raises(ConflictError) as exc_info:
            resolve_dispute(
                db=db_session,
                dispute_id=disputed.id,
                actor=mediator_actor,
                resolution=DisputeResolution.REFUND,
                gateway=gateway,
            )
        assert exc_info.value.message == "Dispute already in state RESOLVED"
        assert gateway.refunds == []

    def test_requires_resolver_role(self, db_session, gateway, disputed, buyer):
        with pytest.raises(AuthorizationError):
            resolve_dispute(
                db=db_session,
                dispute_id=disputed.id,
                actor=actor_for(buyer),
                resolution=DisputeResolution.REFUND,
                gateway=gateway,
            )

    def test_seller_release_floors_at_zero(self):
        assert seller_release_amount(Decimal("100"), Decimal("8"), Decimal("95")) == Decimal("0")
        assert seller_release_amount(Decimal("850"), Decimal("68"), Decimal("425")) == Decimal("357.00")


class TestConfirmedFraud:
    def test_confirmed_fraud_holds_next_trade(self, db_session, gateway, disputed, seller, make_user, make_listing, mediator_actor):
        resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=mediator_actor,
            resolution=DisputeResolution.REFUND,
            gateway=gateway,
            fraud_confirmed=True,
        )

        next_listing = make_listing(seller)
        transaction = accept_offer(db_session, gateway, next_listing, make_user())

        assert transaction.status == TransactionStatus.PENDING
        assert transaction.review_status == ReviewStatus.HELD

    def test_reporting_party_is_not_penalized(self, db_session, gateway, disputed, buyer, make_user, make_listing, mediator_actor):
        resolve_dispute(
            db=db_session,
            dispute_id=disputed.id,
            actor=mediator_actor,
            resolution=DisputeResolution.REFUND,
            gateway=gateway,
            fraud_confirmed=True,
        )

        transaction = accept_offer(db_session, gateway, make_listing(make_user()), buyer)
        assert transaction.status == TransactionStatus.AWAITING_PAYMENT


class TestDisputesAPI:
    def test_open_review_resolve(self, client: TestClient, db_session, gateway, seller, buyer, make_listing, make_user):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)
        mediator = make_user()

        response = client.post(
            f"/api/transactions/{transaction.id}/disputes",
            json={"reason": "LISTING_MISMATCH", "description": DESCRIPTION},
            headers=auth_headers(buyer.id),
        )
        assert response.status_code == 201
        dispute = response.json()
        assert dispute["status"] == "OPEN"
        assert dispute["raised_by"] == str(buyer.id)

        response = client.post(
            f"/api/admin/disputes/{dispute['id']}/review",
            headers=auth_headers(mediator.id, "MEDIATOR"),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "UNDER_REVIEW"

        response = client.post(
            f"/api/admin/disputes/{dispute['id']}/resolve",
            json={"resolution": "REFUND", "notes": "Date mismatch confirmed", "fraud_confirmed": True},
            headers=auth_headers(mediator.id, "MEDIATOR"),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["resolution"] == "REFUND"
        assert data["fraud_confirmed"] is True
        assert data["resolved_by"] == str(mediator.id)

    def test_short_description_is_400(self, client: TestClient, db_session, gateway, seller, buyer, make_listing):
        listing = make_listing(seller)
        transaction = paid_transaction(db_session, gateway, listing, buyer)

        response = client.post(
            f"/api/transactions/{transaction.id}/disputes",
            json={"reason": "OTHER", "description": "Bad"},
            headers=auth_headers(buyer.id),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_user_cannot_resolve(self, client: TestClient, db_session, disputed, buyer):
        response = client.post(
            f"/api/admin/disputes/{disputed.id}/resolve",
            json={"resolution": "REFUND"},
            headers=auth_headers(buyer.id),
        )
        assert response.status_code == 403
