"""
Disputes service - Opening, reviewing and settling disputes on escrowed transactions

Lifecycle:
    OPEN -> UNDER_REVIEW -> RESOLVED   (OPEN -> RESOLVED is allowed too)

Admin overrides close any unresolved dispute of the transaction they
refund or cancel (resolution REFUND, noted as an override).

Resolutions:
    REFUND:  transaction DISPUTED -> REFUNDED, gateway refund, listing back to ACTIVE
    RELEASE: transaction DISPUTED -> COMPLETED, listing SOLD
    PARTIAL: buyer refund + seller release recorded as two PaymentAdjustments,
             then DISPUTED -> COMPLETED
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from eventswap.core.common.clock import utcnow
from eventswap.core.disputes.models import Dispute, DisputeReason, DisputeResolution, DisputeStatus
from eventswap.core.security.models import Actor, RESOLVER_ROLES
from eventswap.core.transactions.models import (
    AdjustmentKind,
    Payment,
    PaymentAdjustment,
    PaymentStatus,
    Transaction,
    TransactionStatus,
)
from eventswap.infrastructure.settings import get_settings
from eventswap.services.escrow.listing_sync import reactivate_listing
from eventswap.services.escrow.service import complete_transaction, generate_code, refund_payment
from eventswap.services.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from eventswap.services.payments.gateway import PaymentGateway
from eventswap.services.transaction_engine import (
    DISPUTE_MACHINE,
    ESCROW_MACHINE,
    TransitionKind,
    transition_status,
    unit_of_work,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DESCRIPTION_MIN_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 2000

DISPUTABLE_STATUSES = (TransactionStatus.PAYMENT_CONFIRMED, TransactionStatus.TRANSFERRING)


@dataclass(frozen=True)
class PartialSplitPolicy:
    """
    How a PARTIAL resolution divides the escrowed amount.

    PERCENT: buyer gets buyer_percent of gross
    FIXED: caller supplies the buyer refund (0 < amount < gross)
    """
    mode: str = "PERCENT"
    buyer_percent: Decimal = Decimal("50")

    @classmethod
    def from_settings(cls) -> "PartialSplitPolicy":
        settings = get_settings()
        return cls(mode=settings.DISPUTE_PARTIAL_SPLIT_MODE, buyer_percent=settings.DISPUTE_PARTIAL_BUYER_PERCENT)

    def buyer_refund(self, gross: Decimal, requested: Optional[Decimal] = None) -> Decimal:
        gross = Decimal(gross)
        if self.mode == "FIXED":
            if requested is None:
                raise ValidationError("buyer_refund_amount is required for a partial resolution")
            requested = Decimal(requested).quantize(CENT)
            if requested <= 0 or requested >= gross:
                raise ValidationError(
                    "buyer_refund_amount must be between 0 and the transaction amount (exclusive)",
                    details={"gross_amount": str(gross)},
                )
            return requested
        return (gross * Decimal(self.buyer_percent) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


def seller_release_amount(gross: Decimal, platform_fee: Decimal, buyer_refund: Decimal) -> Decimal:
    """gross - fee - buyer refund, floored at 0"""
    return max(Decimal("0"), (Decimal(gross) - Decimal(platform_fee) - Decimal(buyer_refund)).quantize(CENT))


def _get_dispute(db: Session, dispute_id: UUID) -> Dispute:
    dispute = db.get(Dispute, dispute_id, populate_existing=True)
    if not dispute:
        raise NotFoundError(f"Dispute {dispute_id} not found")
    return dispute


def _unique_protocol(db: Session) -> str:
    for _ in range(10):
        protocol = generate_code("DSP", 6)
        if not db.execute(select(Dispute.id).where(Dispute.protocol == protocol)).first():
            return protocol
    raise ConflictError("Could not allocate a dispute protocol", code="CODE_ALLOCATION_FAILED")


def open_dispute(
    *,
    db: Session,
    transaction_id: UUID,
    actor: Actor,
    reason: DisputeReason,
    description: str,
) -> Dispute:
    """
    Raise a dispute, moving the transaction to DISPUTED.

    Raises:
        ValidationError: Description length out of bounds
        NotFoundError: Transaction absent
        AuthorizationError: Actor is neither a party nor a resolver
        ConflictError: Transaction not disputable (or already disputed)
    """
    description = (description or "").strip()
    if not DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be between {DESCRIPTION_MIN_LENGTH} and {DESCRIPTION_MAX_LENGTH} characters",
        )

    transaction = db.get(Transaction, transaction_id)
    if not transaction:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    if actor.user_id not in (transaction.buyer_id, transaction.seller_id) and not actor.has_any_role(RESOLVER_ROLES):
        raise AuthorizationError("Only a party to the transaction can open a dispute")

    with unit_of_work(db):
        transition_status(
            db=db,
            model=Transaction,
            entity_id=transaction_id,
            machine=ESCROW_MACHINE,
            target=TransactionStatus.DISPUTED,
            actor=actor,
            expected=list(DISPUTABLE_STATUSES),
            reason=reason.value,
        )
        dispute = Dispute(
            protocol=_unique_protocol(db),
            transaction_id=transaction_id,
            raised_by=actor.user_id,
            reason=reason,
            description=description,
            status=DisputeStatus.OPEN,
        )
        db.add(dispute)

    db.refresh(dispute)
    logger.info(
        "Dispute opened",
        extra={"dispute_id": str(dispute.id), "protocol": dispute.protocol, "transaction_id": str(transaction_id), "reason": reason.value},
    )
    return dispute


def start_review(*, db: Session, dispute_id: UUID, actor: Actor) -> Dispute:
    """OPEN -> UNDER_REVIEW, assigning the reviewer"""
    if not actor.has_any_role(RESOLVER_ROLES):
        raise AuthorizationError("Only mediators and admins can review disputes")

    _get_dispute(db, dispute_id)
    with unit_of_work(db):
        dispute = transition_status(
            db=db,
            model=Dispute,
            entity_id=dispute_id,
            machine=DISPUTE_MACHINE,
            target=DisputeStatus.UNDER_REVIEW,
            actor=actor,
            values={"reviewer_id": actor.user_id},
        )
    db.refresh(dispute)
    return dispute


def resolve_dispute(
    *,
    db: Session,
    dispute_id: UUID,
    actor: Actor,
    resolution: DisputeResolution,
    gateway: PaymentGateway,
    notes: Optional[str] = None,
    fraud_confirmed: bool = False,
    buyer_refund_amount: Optional[Decimal] = None,
    policy: Optional[PartialSplitPolicy] = None,
) -> Dispute:
    """
    Settle a dispute and move its transaction out of DISPUTED.

    Raises:
        AuthorizationError: Actor is not ADMIN/SUPER_ADMIN/MEDIATOR
        NotFoundError: Dispute absent
        ConflictError: Dispute already RESOLVED or transaction not DISPUTED
        ValidationError: PARTIAL split inputs invalid
        ProviderError: Gateway refund failed (nothing is committed)
    """
    if not actor.has_any_role(RESOLVER_ROLES):
        raise AuthorizationError("Only mediators and admins can resolve disputes")

    dispute = _get_dispute(db, dispute_id)
    if dispute.status == DisputeStatus.RESOLVED:
        raise ConflictError(
            "Dispute already in state RESOLVED",
            code="INVALID_STATE_TRANSITION",
            details={"resolution": dispute.resolution.value if dispute.resolution else None},
        )
    transaction_id = dispute.transaction_id
    now = utcnow()

    with unit_of_work(db):
        transition_status(
            db=db,
            model=Dispute,
            entity_id=dispute_id,
            machine=DISPUTE_MACHINE,
            target=DisputeStatus.RESOLVED,
            actor=actor,
            values={
                "resolution": resolution,
                "resolution_notes": notes,
                "fraud_confirmed": bool(fraud_confirmed),
                "resolved_by": actor.user_id,
                "resolved_at": now,
            },
        )

        if resolution == DisputeResolution.REFUND:
            transaction = transition_status(
                db=db,
                model=Transaction,
                entity_id=transaction_id,
                machine=ESCROW_MACHINE,
                target=TransactionStatus.REFUNDED,
                actor=actor,
                expected=[TransactionStatus.DISPUTED],
                values={"refunded_at": now},
                reason=f"Dispute {dispute.protocol} resolved REFUND",
            )
            refund_payment(db=db, transaction=transaction, gateway=gateway, reason=f"Dispute {dispute.protocol}")
            reactivate_listing(db=db, listing_id=transaction.listing_id, transaction_id=transaction_id, actor=actor)

        elif resolution == DisputeResolution.RELEASE:
            complete_transaction(
                db=db,
                transaction_id=transaction_id,
                actor=actor,
                expected=(TransactionStatus.DISPUTED,),
                reason=f"Dispute {dispute.protocol} resolved RELEASE",
            )

        else:
            _settle_partial(
                db=db,
                dispute=dispute,
                actor=actor,
                gateway=gateway,
                policy=policy or PartialSplitPolicy.from_settings(),
                buyer_refund_amount=buyer_refund_amount,
            )

    dispute = _get_dispute(db, dispute_id)
    logger.info(
        "Dispute resolved",
        extra={
            "dispute_id": str(dispute_id),
            "transaction_id": str(transaction_id),
            "resolution": resolution.value,
            "fraud_confirmed": bool(fraud_confirmed),
        },
    )
    return dispute


def close_disputes_for_override(
    *,
    db: Session,
    transaction_id: UUID,
    actor: Actor,
    resolution: DisputeResolution,
    note: str,
) -> int:
    """
    Resolve every unresolved dispute of a transaction an admin just forced
    out of DISPUTED (caller commits). Returns how many were closed.
    """
    dispute_ids = db.execute(
        select(Dispute.id).where(
            Dispute.transaction_id == transaction_id,
            Dispute.status != DisputeStatus.RESOLVED,
        )
    ).scalars().all()

    now = utcnow()
    for dispute_id in dispute_ids:
        transition_status(
            db=db,
            model=Dispute,
            entity_id=dispute_id,
            machine=DISPUTE_MACHINE,
            target=DisputeStatus.RESOLVED,
            actor=actor,
            kind=TransitionKind.ADMIN_OVERRIDE,
            values={
                "resolution": resolution,
                "resolution_notes": note,
                "resolved_by": actor.user_id,
                "resolved_at": now,
            },
            reason=note,
        )
    return len(dispute_ids)


def _settle_partial(
    *,
    db: Session,
    dispute: Dispute,
    actor: Actor,
    gateway: PaymentGateway,
    policy: PartialSplitPolicy,
    buyer_refund_amount: Optional[Decimal],
) -> None:
    transaction = db.get(Transaction, dispute.transaction_id, populate_existing=True)
    if transaction.status != TransactionStatus.DISPUTED:
        raise ConflictError(
            f"Transaction already in state {transaction.status.value}",
            code="INVALID_STATE_TRANSITION",
        )
    payment = db.execute(
        select(Payment).where(Payment.transaction_id == transaction.id)
    ).scalar_one_or_none()
    if payment is None or payment.status != PaymentStatus.SUCCEEDED:
        raise ConflictError("A partial settlement needs a captured payment", code="PAYMENT_NOT_CAPTURED")

    gross = Decimal(payment.gross_amount)
    buyer_refund = policy.buyer_refund(gross, buyer_refund_amount)
    seller_release = seller_release_amount(gross, transaction.platform_fee, buyer_refund)

    reference = refund_payment(
        db=db,
        transaction=transaction,
        gateway=gateway,
        reason=f"Dispute {dispute.protocol} partial refund",
        amount=buyer_refund,
    )

    payment = db.get(Payment, payment.id, populate_existing=True)
    db.add_all([
        PaymentAdjustment(
            payment_id=payment.id,
            dispute_id=dispute.id,
            kind=AdjustmentKind.BUYER_REFUND,
            amount=buyer_refund,
            provider_reference=reference,
        ),
        PaymentAdjustment(
            payment_id=payment.id,
            dispute_id=dispute.id,
            kind=AdjustmentKind.SELLER_RELEASE,
            amount=seller_release,
        ),
    ])
    payment.net_amount = seller_release
    db.flush()

    complete_transaction(
        db=db,
        transaction_id=transaction.id,
        actor=actor,
        expected=(TransactionStatus.DISPUTED,),
        reason=f"Dispute {dispute.protocol} resolved PARTIAL",
    )
    logger.info(
        "Partial settlement recorded",
        extra={
            "transaction_id": str(transaction.id),
            "buyer_refund": str(buyer_refund),
            "seller_release": str(seller_release),
            "mode": policy.mode,
        },
    )
