"""
Payment webhook ingestion - Idempotent application of provider events

An event is applied at most once, keyed by the provider event id:
- Success (PAYMENT_CONFIRMED, PAYMENT_RECEIVED): AWAITING_PAYMENT -> PAYMENT_CONFIRMED
- Failure (PAYMENT_FAILED, PAYMENT_OVERDUE, PAYMENT_DELETED): AWAITING_PAYMENT -> CANCELLED
- Anything else: acknowledged and recorded as ignored

Events that hit a transaction in the wrong state raise ConflictError and are
NOT recorded, so the provider may redeliver them.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventswap.core.compliance.models import AuditLog
from eventswap.core.security.models import Actor, Role
from eventswap.core.transactions.models import (
    Payment,
    PaymentStatus,
    ReviewStatus,
    Transaction,
    WebhookEvent,
)
from eventswap.services.escrow.service import cancel_for_payment, confirm_payment
from eventswap.services.exceptions import ConflictError, NotFoundError
from eventswap.utils.metrics import record_webhook_duplicate

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = frozenset({"PAYMENT_CONFIRMED", "PAYMENT_RECEIVED"})
FAILURE_EVENTS = frozenset({"PAYMENT_FAILED", "PAYMENT_OVERDUE", "PAYMENT_DELETED"})


@dataclass(frozen=True)
class PaymentEvent:
    event_id: str
    event_type: str
    transaction_id: Optional[UUID] = None
    provider_payment_id: Optional[str] = None
    amount: Optional[Decimal] = None


@dataclass(frozen=True)
class WebhookOutcome:
    status: str  # processed | duplicate | ignored
    transaction_id: Optional[UUID] = None
    transaction_status: Optional[str] = None


def _find_payment(db: Session, event: PaymentEvent) -> Optional[Payment]:
    if event.provider_payment_id:
        payment = db.execute(
            select(Payment).where(Payment.provider_payment_id == event.provider_payment_id)
        ).scalar_one_or_none()
        if payment is not None:
            return payment
    if event.transaction_id:
        return db.execute(
            select(Payment).where(Payment.transaction_id == event.transaction_id)
        ).scalar_one_or_none()
    return None


def ingest_payment_event(*, db: Session, event: PaymentEvent) -> WebhookOutcome:
    """
    Apply one provider event and commit.

    Raises:
        NotFoundError: No payment matches the event (success/failure types)
        ConflictError: Transaction is no longer AWAITING_PAYMENT
    """
    existing = db.execute(
        select(WebhookEvent).where(WebhookEvent.provider_event_id == event.event_id)
    ).scalar_one_or_none()
    if existing is not None:
        record_webhook_duplicate()
        logger.info(
            "Duplicate payment webhook ignored",
            extra={"provider_event_id": event.event_id, "transaction_id": str(existing.transaction_id)},
        )
        transaction = db.get(Transaction, existing.transaction_id) if existing.transaction_id else None
        return WebhookOutcome(
            status="duplicate",
            transaction_id=existing.transaction_id,
            transaction_status=transaction.status.value if transaction else None,
        )

    event_type = event.event_type.upper()
    if event_type not in SUCCESS_EVENTS and event_type not in FAILURE_EVENTS:
        known = event.transaction_id and db.get(Transaction, event.transaction_id)
        return _record(db, event, transaction_id=known.id if known else None, outcome="ignored")

    payment = _find_payment(db, event)
    if payment is None:
        raise NotFoundError(
            "No payment matches this event",
            code="PAYMENT_NOT_FOUND",
            details={"provider_event_id": event.event_id},
        )

    actor = Actor.system()
    transaction_id = payment.transaction_id

    try:
        if event_type in SUCCESS_EVENTS:
            if payment.status == PaymentStatus.SUCCEEDED:
                # Same payment confirmed under a new event id
                return _record(db, event, transaction_id=transaction_id, outcome="already_applied")

            transaction = confirm_payment(db=db, transaction_id=transaction_id, actor=actor)
            if event.amount is not None and Decimal(event.amount) != Decimal(payment.gross_amount):
                transaction.review_status = ReviewStatus.FLAGGED
                db.add(AuditLog(
                    actor_user_id=None,
                    actor_role=Role.SYSTEM,
                    action="PAYMENT_AMOUNT_MISMATCH",
                    entity_type="transaction",
                    entity_id=transaction_id,
                    before={"expected": str(payment.gross_amount)},
                    after={"received": str(event.amount), "provider_event_id": event.event_id},
                ))
                logger.warning(
                    "Payment amount differs from the charge",
                    extra={"transaction_id": str(transaction_id), "expected": str(payment.gross_amount), "received": str(event.amount)},
                )
            outcome = "confirmed"
        else:
            transaction = cancel_for_payment(db=db, transaction_id=transaction_id, actor=actor, reason=event_type)
            outcome = "cancelled"
    except ConflictError:
        db.rollback()
        raise

    return _record(db, event, transaction_id=transaction_id, outcome=outcome, transaction_status=transaction.status.value)


def _record(
    db: Session,
    event: PaymentEvent,
    *,
    transaction_id: Optional[UUID],
    outcome: str,
    transaction_status: Optional[str] = None,
) -> WebhookOutcome:
    db.add(WebhookEvent(
        provider_event_id=event.event_id,
        event_type=event.event_type,
        transaction_id=transaction_id,
        outcome=outcome,
    ))
    try:
        db.commit()
    except IntegrityError:
        # Concurrent delivery of the same event committed first
        db.rollback()
        record_webhook_duplicate()
        return WebhookOutcome(status="duplicate", transaction_id=transaction_id)

    if transaction_status is None and transaction_id is not None:
        transaction = db.get(Transaction, transaction_id)
        transaction_status = transaction.status.value if transaction else None

    logger.info(
        "Payment webhook applied",
        extra={
            "provider_event_id": event.event_id,
            "event_type": event.event_type,
            "transaction_id": str(transaction_id) if transaction_id else None,
            "outcome": outcome,
        },
    )
    status = "ignored" if outcome == "ignored" else "processed"
    return WebhookOutcome(status=status, transaction_id=transaction_id, transaction_status=transaction_status)
