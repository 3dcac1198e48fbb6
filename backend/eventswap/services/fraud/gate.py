"""
Fraud gate - Collects trade signals from the store and runs the scoring engine
"""

import logging
from dataclasses import asdict, dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from eventswap.core.common.clock import ensure_utc, utcnow
from eventswap.core.disputes.models import Dispute
from eventswap.core.fraud.models import FraudCheck
from eventswap.core.listings.models import Listing, ListingStatus
from eventswap.core.offers.models import Offer
from eventswap.core.transactions.models import Payment, PaymentStatus, Transaction, TransactionStatus
from eventswap.core.users.models import User
from eventswap.services.fraud.engine import FraudCheckParams, FraudCheckResult, score
from eventswap.utils.metrics import record_fraud_check

logger = logging.getLogger(__name__)

# How far back another listing with the same title counts as a duplicate
DUPLICATE_TITLE_WINDOW = timedelta(days=30)


def price_deviation(reference_price: Optional[Decimal], price: Optional[Decimal]) -> Optional[float]:
    """Absolute relative deviation of price from its reference, or None when undefined"""
    if reference_price is None or price is None or reference_price <= 0:
        return None
    return float(abs(Decimal(reference_price) - Decimal(price)) / Decimal(reference_price))


def _accused_confirmed_fraud_count(db: Session, user_id: UUID) -> int:
    """Confirmed-fraud disputes on trades where the user was a party but not the one who raised it"""
    return db.execute(
        select(func.count(Dispute.id))
        .join(Transaction, Transaction.id == Dispute.transaction_id)
        .where(
            Dispute.fraud_confirmed.is_(True),
            or_(Transaction.buyer_id == user_id, Transaction.seller_id == user_id),
            or_(Dispute.raised_by.is_(None), Dispute.raised_by != user_id),
        )
    ).scalar_one()


@dataclass(frozen=True)
class AccountSignals:
    """History and verification of the party being assessed"""
    account_age_days: Optional[float]
    prior_completed_transactions: int
    prior_disputes: int
    confirmed_fraud_disputes: int
    email_verified: Optional[bool]
    phone_verified: Optional[bool]
    kyc_verified: Optional[bool]


def account_signals(
    db: Session,
    user: Optional[User],
    user_id: UUID,
    exclude_transaction_id: Optional[UUID] = None,
) -> AccountSignals:
    """Seller-side history for user_id, ignoring the trade being scored"""
    now = utcnow()
    account_age_days = None
    if user is not None and user.created_at is not None:
        account_age_days = (now - ensure_utc(user.created_at)).total_seconds() / 86400

    completed = select(func.count(Transaction.id)).where(
        Transaction.seller_id == user_id,
        Transaction.status == TransactionStatus.COMPLETED,
    )
    disputes = (
        select(func.count(Dispute.id))
        .join(Transaction, Transaction.id == Dispute.transaction_id)
        .where(Transaction.seller_id == user_id)
    )
    if exclude_transaction_id is not None:
        completed = completed.where(Transaction.id != exclude_transaction_id)
        disputes = disputes.where(Transaction.id != exclude_transaction_id)

    return AccountSignals(
        account_age_days=account_age_days,
        prior_completed_transactions=db.execute(completed).scalar_one(),
        prior_disputes=db.execute(disputes).scalar_one(),
        confirmed_fraud_disputes=_accused_confirmed_fraud_count(db, user_id),
        email_verified=user.email_verified if user else None,
        phone_verified=user.phone_verified if user else None,
        kyc_verified=user.kyc_verified if user else None,
    )


def _recent_transactions(db: Session, user_id: UUID, now, exclude_transaction_id: Optional[UUID] = None) -> int:
    stmt = select(func.count(Transaction.id)).where(
        or_(Transaction.buyer_id == user_id, Transaction.seller_id == user_id),
        Transaction.created_at >= now - timedelta(hours=24),
    )
    if exclude_transaction_id is not None:
        stmt = stmt.where(Transaction.id != exclude_transaction_id)
    return db.execute(stmt).scalar_one()


def _listing_quality(db: Session, listing: Listing, now) -> dict:
    """Signals about the listing itself (price, content, event date, duplicates)"""
    listing_age_hours = None
    if listing.published_at is not None:
        listing_age_hours = (now - ensure_utc(listing.published_at)).total_seconds() / 3600

    normalized_title = (listing.title or "").strip().lower()
    duplicate_title = None
    if normalized_title:
        duplicate_title = db.execute(
            select(Listing.id).where(
                Listing.id != listing.id,
                func.lower(func.trim(Listing.title)) == normalized_title,
                Listing.created_at >= now - DUPLICATE_TITLE_WINDOW,
            ).limit(1)
        ).first() is not None

    return {
        "price_deviation": price_deviation(listing.original_price, listing.asking_price),
        "listing_age_hours": listing_age_hours,
        "event_in_past": ensure_utc(listing.event_date) < now if listing.event_date is not None else None,
        "listing_price": float(listing.asking_price) if listing.asking_price is not None else None,
        "duplicate_title": duplicate_title,
        "description_length": len((listing.description or "").strip()),
        "image_count": len(listing.images or []),
    }


def build_listing_params(db: Session, listing: Listing) -> FraudCheckParams:
    """
    Gather signals for a listing: the listing's own quality plus its
    seller's account, history and recent activity.
    """
    now = utcnow()
    seller = account_signals(db, db.get(User, listing.seller_id), listing.seller_id)
    return FraudCheckParams(
        **asdict(seller),
        **_listing_quality(db, listing, now),
        transactions_last_24h=_recent_transactions(db, listing.seller_id, now),
    )


def build_user_params(db: Session, user: User) -> Tuple[FraudCheckParams, Optional[Listing]]:
    """
    Gather signals for a user across their activity.

    The user's most recent ACTIVE or DRAFT listing, when there is one,
    contributes its listing signals. Returns the params and that listing.
    """
    now = utcnow()
    latest_listing = db.execute(
        select(Listing)
        .where(Listing.seller_id == user.id, Listing.status.in_([ListingStatus.ACTIVE, ListingStatus.DRAFT]))
        .order_by(Listing.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()

    offers_last_hour = db.execute(
        select(func.count(Offer.id)).where(
            Offer.proposer_id == user.id,
            Offer.created_at >= now - timedelta(hours=1),
        )
    ).scalar_one()

    params = FraudCheckParams(
        **asdict(account_signals(db, user, user.id)),
        **(_listing_quality(db, latest_listing, now) if latest_listing is not None else {}),
        offers_last_hour=offers_last_hour,
        transactions_last_24h=_recent_transactions(db, user.id, now),
    )
    return params, latest_listing


def build_transaction_params(db: Session, transaction: Transaction) -> FraudCheckParams:
    """
    Gather signals for a transaction.

    The seller is the assessed counterparty (account, history, verification);
    the buyer supplies velocity and payment behaviour. Confirmed fraud on
    either side is a hard signal.
    """
    now = utcnow()
    seller = db.get(User, transaction.seller_id)
    buyer = db.get(User, transaction.buyer_id)
    listing = db.get(Listing, transaction.listing_id)

    signals = account_signals(db, seller, transaction.seller_id, exclude_transaction_id=transaction.id)
    confirmed_fraud = signals.confirmed_fraud_disputes + _accused_confirmed_fraud_count(db, transaction.buyer_id)

    # Negotiation messages exchanged on this listing between the two parties
    message_count = db.execute(
        select(func.count(Offer.id)).where(
            Offer.listing_id == transaction.listing_id,
            Offer.buyer_id == transaction.buyer_id,
            Offer.message.is_not(None),
            Offer.message != "",
        )
    ).scalar_one()

    listing_age_hours = None
    if listing is not None and listing.published_at is not None:
        listing_age_hours = (now - ensure_utc(listing.published_at)).total_seconds() / 3600

    offers_last_hour = db.execute(
        select(func.count(Offer.id)).where(
            Offer.proposer_id == transaction.buyer_id,
            Offer.created_at >= now - timedelta(hours=1),
        )
    ).scalar_one()

    transactions_last_24h = db.execute(
        select(func.count(Transaction.id)).where(
            Transaction.buyer_id == transaction.buyer_id,
            Transaction.created_at >= now - timedelta(hours=24),
            Transaction.id != transaction.id,
        )
    ).scalar_one()

    failed_payments = db.execute(
        select(func.count(Payment.id)).where(
            Payment.payer_id == transaction.buyer_id,
            Payment.status == PaymentStatus.FAILED,
            Payment.transaction_id != transaction.id,
            Payment.created_at >= now - timedelta(hours=24),
        )
    ).scalar_one()

    same_ip = None
    if buyer is not None and seller is not None and buyer.last_ip and seller.last_ip:
        same_ip = buyer.last_ip == seller.last_ip

    return FraudCheckParams(
        account_age_days=signals.account_age_days,
        prior_completed_transactions=signals.prior_completed_transactions,
        prior_disputes=signals.prior_disputes,
        confirmed_fraud_disputes=confirmed_fraud,
        price_deviation=price_deviation(listing.original_price if listing else None, transaction.amount),
        message_count=message_count,
        listing_age_hours=listing_age_hours,
        email_verified=signals.email_verified,
        phone_verified=signals.phone_verified,
        kyc_verified=signals.kyc_verified,
        offers_last_hour=offers_last_hour,
        transactions_last_24h=transactions_last_24h,
        same_ip=same_ip,
        failed_payment_attempts=failed_payments,
    )


def run_fraud_check(
    *,
    db: Session,
    params: FraudCheckParams,
    subject_type: str,
    subject_id: Optional[UUID] = None,
) -> FraudCheckResult:
    """
    Score params and persist the snapshot (caller commits).
    """
    result = score(params)

    db.add(FraudCheck(
        subject_type=subject_type,
        subject_id=subject_id,
        score=Decimal(str(result.score)),
        level=result.level.value,
        recommendation=result.recommendation.value,
        signals=dict(result.signals),
        hard_signals=list(result.hard_signals),
        input_snapshot=params.snapshot(),
    ))

    record_fraud_check(level=result.level.value, recommendation=result.recommendation.value)
    logger.info(
        "Fraud check evaluated",
        extra={
            "subject_type": subject_type,
            "subject_id": str(subject_id) if subject_id else None,
            "score": result.score,
            "level": result.level.value,
            "recommendation": result.recommendation.value,
            "signals": result.signals,
            "hard_signals": list(result.hard_signals),
        },
    )
    return result
