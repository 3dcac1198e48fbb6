"""
Escrow service - Owns money from offer acceptance to completion, refund or cancellation

Lifecycle:
    PENDING -> AWAITING_PAYMENT            (offer accepted, fraud gate passed)
    AWAITING_PAYMENT -> PAYMENT_CONFIRMED  (payment webhook success)
    AWAITING_PAYMENT -> CANCELLED          (payment failure or deadline)
    PAYMENT_CONFIRMED -> TRANSFERRING      (seller starts the transfer)
    TRANSFERRING -> COMPLETED              (buyer confirms or transfer deadline passes)

Disputes and admin overrides live in their own services and reuse the
helpers defined here.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from eventswap.core.common.clock import ensure_utc, utcnow
from eventswap.core.compliance.models import AuditLog
from eventswap.core.security.models import Actor, RESOLVER_ROLES
from eventswap.core.transactions.models import (
    Payment,
    PaymentStatus,
    ReviewStatus,
    Transaction,
    TransactionStatus,
    TERMINAL_TRANSACTION_STATUSES,
)
from eventswap.infrastructure.settings import get_settings
from eventswap.services.escrow.listing_sync import mark_listing_sold, reactivate_listing, reserve_listing
from eventswap.services.exceptions import AuthorizationError, ConflictError, NotFoundError
from eventswap.services.fraud.engine import Recommendation
from eventswap.services.fraud.gate import build_transaction_params, run_fraud_check
from eventswap.services.payments.gateway import PaymentGateway
from eventswap.services.transaction_engine import ESCROW_MACHINE, TransitionKind, transition_status, unit_of_work

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class OfferAccepted:
    """Event emitted by the offer machine when a seller (or buyer, on a counter) accepts"""
    offer_id: UUID
    listing_id: UUID
    buyer_id: UUID
    seller_id: UUID
    amount: Decimal


def calculate_fees(amount: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Platform fee and seller net for a sale amount.

    fee = max(amount * SELLER_FEE_PERCENT / 100, MINIMUM_FEE), never above the amount.
    """
    settings = get_settings()
    amount = Decimal(amount)
    fee = (amount * settings.SELLER_FEE_PERCENT / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    fee = min(max(fee, settings.MINIMUM_FEE), amount)
    return fee, (amount - fee).quantize(CENT)


def generate_code(prefix: str, length: int, now: Optional[datetime] = None) -> str:
    """Human-readable reference such as TXN-2025-7K2Q"""
    year = (now or utcnow()).year
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))
    return f"{prefix}-{year}-{suffix}"


def _unique_transaction_code(db: Session) -> str:
    for _ in range(10):
        code = generate_code("TXN", 4)
        exists = db.execute(select(Transaction.id).where(Transaction.code == code)).first()
        if not exists:
            return code
    raise ConflictError("Could not allocate a transaction code", code="CODE_ALLOCATION_FAILED")


def _get_transaction(db: Session, transaction_id: UUID) -> Transaction:
    transaction = db.get(Transaction, transaction_id, populate_existing=True)
    if not transaction:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction


def _get_payment(db: Session, transaction_id: UUID) -> Optional[Payment]:
    return db.execute(
        select(Payment).where(Payment.transaction_id == transaction_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _audit(db: Session, actor: Actor, action: str, transaction: Transaction, after: dict, reason: Optional[str] = None) -> None:
    db.add(AuditLog(
        actor_user_id=actor.user_id,
        actor_role=actor.primary_role,
        action=action,
        entity_type="transaction",
        entity_id=transaction.id,
        before=None,
        after=after,
        reason=reason,
    ))


def open_transaction(
    *,
    db: Session,
    event: OfferAccepted,
    gateway: PaymentGateway,
    actor: Actor,
) -> Transaction:
    """
    Create the escrow transaction for an accepted offer and run the fraud gate.

    Caller owns the unit of work (the offer acceptance commits both together).

    Gate outcomes:
    - BLOCK: transaction stays PENDING with review_status HELD (listing untouched)
    - REVIEW: proceeds with review_status FLAGGED
    - ALLOW: proceeds

    Raises:
        ConflictError: Listing already has an open transaction, or is no longer ACTIVE
        ProviderError: Gateway refused the charge
    """
    open_exists = db.execute(
        select(Transaction.id).where(
            Transaction.listing_id == event.listing_id,
            Transaction.status.not_in(TERMINAL_TRANSACTION_STATUSES),
        )
    ).first()
    if open_exists:
        raise ConflictError("Listing already has an open transaction", code="LISTING_HAS_OPEN_TRANSACTION")

    fee, seller_net = calculate_fees(event.amount)
    transaction = Transaction(
        code=_unique_transaction_code(db),
        listing_id=event.listing_id,
        offer_id=event.offer_id,
        buyer_id=event.buyer_id,
        seller_id=event.seller_id,
        amount=Decimal(event.amount),
        platform_fee=fee,
        seller_net_amount=seller_net,
        status=TransactionStatus.PENDING,
        review_status=ReviewStatus.NONE,
    )
    db.add(transaction)
    db.flush()

    params = build_transaction_params(db, transaction)
    result = run_fraud_check(db=db, params=params, subject_type="transaction", subject_id=transaction.id)

    transaction.fraud_score = Decimal(str(result.score))
    transaction.fraud_level = result.level.value
    transaction.fraud_recommendation = result.recommendation.value

    if result.recommendation == Recommendation.BLOCK:
        transaction.review_status = ReviewStatus.HELD
        _audit(db, actor, "TRANSACTION_HELD", transaction, result.to_dict(), reason="Fraud gate recommendation BLOCK")
        db.flush()
        logger.warning(
            "Transaction held by fraud gate",
            extra={"transaction_id": str(transaction.id), "score": result.score, "hard_signals": list(result.hard_signals)},
        )
        return transaction

    if result.recommendation == Recommendation.REVIEW:
        transaction.review_status = ReviewStatus.FLAGGED
        _audit(db, actor, "TRANSACTION_FLAGGED", transaction, result.to_dict(), reason="Fraud gate recommendation REVIEW")

    db.flush()
    return _begin_payment(db=db, transaction=transaction, gateway=gateway, actor=actor)


def _begin_payment(*, db: Session, transaction: Transaction, gateway: PaymentGateway, actor: Actor) -> Transaction:
    """PENDING -> AWAITING_PAYMENT, reserve the listing, open the charge"""
    settings = get_settings()
    deadline = utcnow() + timedelta(hours=settings.PAYMENT_DEADLINE_HOURS)

    transaction = transition_status(
        db=db,
        model=Transaction,
        entity_id=transaction.id,
        machine=ESCROW_MACHINE,
        target=TransactionStatus.AWAITING_PAYMENT,
        actor=actor,
        values={"payment_deadline": deadline},
    )
    reserve_listing(db=db, listing_id=transaction.listing_id, transaction_id=transaction.id, actor=actor)

    payment = Payment(
        transaction_id=transaction.id,
        payer_id=transaction.buyer_id,
        payee_id=transaction.seller_id,
        gross_amount=transaction.amount,
        net_amount=transaction.seller_net_amount,
        status=PaymentStatus.PENDING,
    )
    db.add(payment)
    db.flush()

    payment.provider_payment_id = gateway.create_charge(
        transaction_id=transaction.id,
        payer_id=transaction.buyer_id,
        amount=transaction.amount,
        due_at=deadline,
        description=f"EventSwap {transaction.code}",
    )
    db.flush()

    logger.info(
        "Transaction awaiting payment",
        extra={"transaction_id": str(transaction.id), "code": transaction.code, "payment_deadline": deadline.isoformat()},
    )
    return transaction


def release_hold(
    *,
    db: Session,
    transaction_id: UUID,
    actor: Actor,
    gateway: PaymentGateway,
) -> Transaction:
    """
    Operator clears a fraud hold: HELD -> CLEARED and the transaction proceeds to AWAITING_PAYMENT.

    Raises:
        AuthorizationError: Actor is not an operator
        NotFoundError: Transaction absent
        ConflictError: Transaction is not held
    """
    if not actor.has_any_role(RESOLVER_ROLES):
        raise AuthorizationError("Only operators can release a fraud hold")

    with unit_of_work(db):
        transaction = _get_transaction(db, transaction_id)
        result = db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING,
                Transaction.review_status == ReviewStatus.HELD,
            )
            .values(review_status=ReviewStatus.CLEARED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(
                f"Transaction is not held (status {transaction.status.value}, review {transaction.review_status.value})",
                code="TRANSACTION_NOT_HELD",
            )
        transaction = _get_transaction(db, transaction_id)
        _audit(db, actor, "TRANSACTION_HOLD_RELEASED", transaction, {"review_status": ReviewStatus.CLEARED.value})
        transaction = _begin_payment(db=db, transaction=transaction, gateway=gateway, actor=actor)

    return _get_transaction(db, transaction_id)


def confirm_payment(*, db: Session, transaction_id: UUID, actor: Actor, paid_at: Optional[datetime] = None) -> Transaction:
    """
    AWAITING_PAYMENT -> PAYMENT_CONFIRMED and mark the payment SUCCEEDED (caller commits).

    Raises:
        ConflictError: Transaction not AWAITING_PAYMENT (out-of-order or late event)
    """
    paid_at = paid_at or utcnow()
    transaction = transition_status(
        db=db,
        model=Transaction,
        entity_id=transaction_id,
        machine=ESCROW_MACHINE,
        target=TransactionStatus.PAYMENT_CONFIRMED,
        actor=actor,
        expected=[TransactionStatus.AWAITING_PAYMENT],
        values={"paid_at": paid_at},
    )
    db.execute(
        update(Payment)
        .where(
            Payment.transaction_id == transaction_id,
            Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.PROCESSING]),
        )
        .values(status=PaymentStatus.SUCCEEDED, paid_at=paid_at)
        .execution_options(synchronize_session=False)
    )
    return transaction


def cancel_for_payment(*, db: Session, transaction_id: UUID, actor: Actor, reason: str) -> Transaction:
    """
    AWAITING_PAYMENT -> CANCELLED, payment FAILED, listing reactivated (caller commits).
    """
    transaction = transition_status(
        db=db,
        model=Transaction,
        entity_id=transaction_id,
        machine=ESCROW_MACHINE,
        target=TransactionStatus.CANCELLED,
        actor=actor,
        expected=[TransactionStatus.AWAITING_PAYMENT],
        values={"cancelled_at": utcnow(), "cancel_reason": reason},
        reason=reason,
    )
    db.execute(
        update(Payment)
        .where(
            Payment.transaction_id == transaction_id,
            Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.PROCESSING]),
        )
        .values(status=PaymentStatus.FAILED)
        .execution_options(synchronize_session=False)
    )
    reactivate_listing(db=db, listing_id=transaction.listing_id, transaction_id=transaction.id, actor=actor)
    return transaction


def complete_transaction(
    *,
    db: Session,
    transaction_id: UUID,
    actor: Actor,
    expected: Tuple[TransactionStatus, ...] = (TransactionStatus.TRANSFERRING,),
    reason: Optional[str] = None,
) -> Transaction:
    """
    -> COMPLETED and listing SOLD (caller commits).
    """
    transaction = transition_status(
        db=db,
        model=Transaction,
        entity_id=transaction_id,
        machine=ESCROW_MACHINE,
        target=TransactionStatus.COMPLETED,
        actor=actor,
        expected=list(expected),
        values={"completed_at": utcnow()},
        reason=reason,
    )
    mark_listing_sold(db=db, listing_id=transaction.listing_id, transaction_id=transaction.id, actor=actor)
    return transaction


def refund_payment(
    *,
    db: Session,
    transaction: Transaction,
    gateway: PaymentGateway,
    reason: str,
    amount: Optional[Decimal] = None,
) -> Optional[str]:
    """
    Return money to the buyer (caller commits).

    A captured payment is refunded through the gateway; a charge that was
    never paid is voided (FAILED). Without an amount the buyer gets whatever
    has not been refunded yet, so a chargeback after a partial settlement
    returns only the remainder. Refunds never exceed the gross amount.

    Returns:
        Provider refund reference, or None when nothing was sent
    """
    payment = _get_payment(db, transaction.id)
    if payment is None:
        return None

    if payment.status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
        payment.status = PaymentStatus.FAILED
        db.flush()
        return None

    if payment.status != PaymentStatus.SUCCEEDED:
        return None

    already_refunded = Decimal(payment.refunded_amount or 0)
    remaining = Decimal(payment.gross_amount) - already_refunded
    refund_amount = remaining if amount is None else min(Decimal(amount), remaining)
    if refund_amount <= 0:
        return None

    reference = gateway.refund(
        provider_payment_id=payment.provider_payment_id,
        amount=refund_amount,
        reason=reason,
    )
    payment.refunded_amount = already_refunded + refund_amount
    payment.refund_reference = reference
    payment.refunded_at = utcnow()
    db.flush()
    return reference


def start_transfer(*, db: Session, transaction_id: UUID, actor: Actor) -> Transaction:
    """
    Seller starts the reservation transfer: PAYMENT_CONFIRMED -> TRANSFERRING.

    Raises:
        AuthorizationError: Actor is not the seller
        ConflictError: Payment not confirmed (or already transferring)
    """
    settings = get_settings()
    with unit_of_work(db):
        transaction = _get_transaction(db, transaction_id)
        if transaction.seller_id != actor.user_id:
            raise AuthorizationError("Only the seller can start the transfer")
        now = utcnow()
        transition_status(
            db=db,
            model=Transaction,
            entity_id=transaction_id,
            machine=ESCROW_MACHINE,
            target=TransactionStatus.TRANSFERRING,
            actor=actor,
            expected=[TransactionStatus.PAYMENT_CONFIRMED],
            values={
                "transfer_started_at": now,
                "transfer_deadline": now + timedelta(days=settings.TRANSFER_CONFIRMATION_DAYS),
            },
        )
    return _get_transaction(db, transaction_id)


def confirm_receipt(*, db: Session, transaction_id: UUID, actor: Actor) -> Transaction:
    """
    Buyer confirms the transfer: TRANSFERRING -> COMPLETED, listing SOLD.

    Raises:
        AuthorizationError: Actor is not the buyer
        ConflictError: Transaction is not TRANSFERRING
    """
    with unit_of_work(db):
        transaction = _get_transaction(db, transaction_id)
        if transaction.buyer_id != actor.user_id:
            raise AuthorizationError("Only the buyer can confirm receipt")
        complete_transaction(db=db, transaction_id=transaction_id, actor=actor)
    return _get_transaction(db, transaction_id)


def get_transaction_for_party(*, db: Session, transaction_id: UUID, actor: Actor) -> Transaction:
    """
    Load a transaction for one of its parties (or an operator).

    An AWAITING_PAYMENT transaction past its deadline is cancelled on read.
    """
    transaction = _get_transaction(db, transaction_id)
    if actor.user_id not in (transaction.buyer_id, transaction.seller_id) and not actor.has_any_role(RESOLVER_ROLES):
        raise AuthorizationError("Not a party to this transaction")

    if _payment_overdue(transaction, utcnow()):
        try:
            with unit_of_work(db):
                cancel_for_payment(db=db, transaction_id=transaction_id, actor=Actor.system(), reason="PAYMENT_TIMEOUT")
        except ConflictError:
            # A webhook or sweep moved it first; report the current state
            pass
        transaction = _get_transaction(db, transaction_id)

    return transaction


def _payment_overdue(transaction: Transaction, now: datetime) -> bool:
    return (
        transaction.status == TransactionStatus.AWAITING_PAYMENT
        and transaction.payment_deadline is not None
        and ensure_utc(transaction.payment_deadline) < now
    )


def expire_unpaid_transactions(*, db: Session, now: Optional[datetime] = None, limit: int = 200) -> int:
    """
    Sweep: cancel AWAITING_PAYMENT transactions past their payment deadline.

    Each transaction commits independently; one lost race does not stop the sweep.

    Returns:
        Number of transactions cancelled
    """
    now = now or utcnow()
    ids = db.execute(
        select(Transaction.id)
        .where(
            Transaction.status == TransactionStatus.AWAITING_PAYMENT,
            Transaction.payment_deadline < now,
        )
        .order_by(Transaction.payment_deadline)
        .limit(limit)
    ).scalars().all()

    cancelled = 0
    for transaction_id in ids:
        try:
            with unit_of_work(db):
                cancel_for_payment(db=db, transaction_id=transaction_id, actor=Actor.system(), reason="PAYMENT_TIMEOUT")
            cancelled += 1
        except ConflictError as e:
            logger.info(
                "Skipped expiry, transaction moved concurrently",
                extra={"transaction_id": str(transaction_id), "error": e.message},
            )
    return cancelled


def auto_complete_transfers(*, db: Session, now: Optional[datetime] = None, limit: int = 200) -> int:
    """
    Sweep: complete TRANSFERRING transactions whose buyer confirmation window elapsed.

    Returns:
        Number of transactions completed
    """
    now = now or utcnow()
    ids = db.execute(
        select(Transaction.id)
        .where(
            Transaction.status == TransactionStatus.TRANSFERRING,
            Transaction.transfer_deadline < now,
        )
        .order_by(Transaction.transfer_deadline)
        .limit(limit)
    ).scalars().all()

    completed = 0
    for transaction_id in ids:
        try:
            with unit_of_work(db):
                complete_transaction(
                    db=db,
                    transaction_id=transaction_id,
                    actor=Actor.system(),
                    reason="TRANSFER_DEADLINE_ELAPSED",
                )
            completed += 1
        except ConflictError as e:
            logger.info(
                "Skipped auto-complete, transaction moved concurrently",
                extra={"transaction_id": str(transaction_id), "error": e.message},
            )
    return completed


__all__ = [
    "OfferAccepted",
    "TransitionKind",
    "auto_complete_transfers",
    "calculate_fees",
    "cancel_for_payment",
    "complete_transaction",
    "confirm_payment",
    "confirm_receipt",
    "expire_unpaid_transactions",
    "generate_code",
    "get_transaction_for_party",
    "open_transaction",
    "refund_payment",
    "release_hold",
    "start_transfer",
]
