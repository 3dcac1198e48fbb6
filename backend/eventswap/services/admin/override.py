"""
Admin override - Role-gated forced REFUNDED/CANCELLED transitions

Overrides use the ADMIN_OVERRIDE edges of the escrow transition table, so the
same compare-and-set write guards them: two concurrent refunds of the same
transaction produce one REFUNDED state and one ConflictError.
A DISPUTED transaction's open dispute is resolved in the same unit of work.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from eventswap.core.common.clock import utcnow
from eventswap.core.disputes.models import DisputeResolution
from eventswap.core.security.models import ADMIN_ROLES, Actor
from eventswap.core.transactions.models import Transaction, TransactionStatus
from eventswap.services.disputes.service import close_disputes_for_override
from eventswap.services.escrow.listing_sync import reactivate_listing
from eventswap.services.escrow.service import refund_payment
from eventswap.services.exceptions import AuthorizationError, ConflictError, NotFoundError
from eventswap.services.payments.gateway import PaymentGateway
from eventswap.services.transaction_engine import ESCROW_MACHINE, TransitionKind, transition_status, unit_of_work

logger = logging.getLogger(__name__)

_ALREADY_CLOSED = (TransactionStatus.REFUNDED, TransactionStatus.CANCELLED)


def _load_for_override(db: Session, transaction_id: UUID, actor: Actor) -> Transaction:
    if not actor.has_any_role(ADMIN_ROLES):
        raise AuthorizationError("Admin role required")

    transaction = db.get(Transaction, transaction_id, populate_existing=True)
    if not transaction:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    if transaction.status in _ALREADY_CLOSED:
        raise ConflictError(
            "Transaction was already refunded or cancelled",
            code="ALREADY_TERMINAL",
            details={"current_status": transaction.status.value},
        )
    return transaction


def force_refund(
    *,
    db: Session,
    transaction_id: UUID,
    actor: Actor,
    gateway: PaymentGateway,
    reason: Optional[str] = None,
) -> Transaction:
    """
    Force a transaction to REFUNDED.

    Allowed from any non-terminal state and from COMPLETED (chargeback).
    A captured payment is refunded through the gateway; the listing returns
    to ACTIVE if this transaction still owns it.

    Raises:
        AuthorizationError: Actor lacks ADMIN/SUPER_ADMIN
        NotFoundError: Transaction absent
        ConflictError: Already REFUNDED/CANCELLED, or a concurrent override won
    """
    _load_for_override(db, transaction_id, actor)
    now = utcnow()

    with unit_of_work(db):
        transaction = transition_status(
            db=db,
            model=Transaction,
            entity_id=transaction_id,
            machine=ESCROW_MACHINE,
            target=TransactionStatus.REFUNDED,
            actor=actor,
            kind=TransitionKind.ADMIN_OVERRIDE,
            values={"refunded_at": now, "override_actor_id": actor.user_id, "override_at": now},
            reason=reason or "Admin forced refund",
        )
        refund_payment(db=db, transaction=transaction, gateway=gateway, reason=reason or "Admin refund")
        close_disputes_for_override(
            db=db,
            transaction_id=transaction_id,
            actor=actor,
            resolution=DisputeResolution.REFUND,
            note=f"Closed by admin refund: {reason or 'no reason given'}",
        )
        reactivate_listing(db=db, listing_id=transaction.listing_id, transaction_id=transaction_id, actor=actor)

    transaction = db.get(Transaction, transaction_id, populate_existing=True)
    logger.warning(
        "Admin forced refund",
        extra={"transaction_id": str(transaction_id), "admin_id": str(actor.user_id), "reason": reason},
    )
    return transaction


def force_cancel(
    *,
    db: Session,
    transaction_id: UUID,
    actor: Actor,
    gateway: PaymentGateway,
    reason: Optional[str] = None,
) -> Transaction:
    """
    Force a non-terminal transaction to CANCELLED (held or stuck trades).

    Raises:
        AuthorizationError: Actor lacks ADMIN/SUPER_ADMIN
        NotFoundError: Transaction absent
        ConflictError: Already REFUNDED/CANCELLED, COMPLETED, or a concurrent override won
    """
    _load_for_override(db, transaction_id, actor)
    now = utcnow()

    with unit_of_work(db):
        transaction = transition_status(
            db=db,
            model=Transaction,
            entity_id=transaction_id,
            machine=ESCROW_MACHINE,
            target=TransactionStatus.CANCELLED,
            actor=actor,
            kind=TransitionKind.ADMIN_OVERRIDE,
            values={
                "cancelled_at": now,
                "cancel_reason": reason or "ADMIN_CANCELLED",
                "override_actor_id": actor.user_id,
                "override_at": now,
            },
            reason=reason or "Admin forced cancel",
        )
        refund_payment(db=db, transaction=transaction, gateway=gateway, reason=reason or "Admin cancel")
        close_disputes_for_override(
            db=db,
            transaction_id=transaction_id,
            actor=actor,
            resolution=DisputeResolution.REFUND,
            note=f"Closed by admin cancel: {reason or 'no reason given'}",
        )
        reactivate_listing(db=db, listing_id=transaction.listing_id, transaction_id=transaction_id, actor=actor)

    transaction = db.get(Transaction, transaction_id, populate_existing=True)
    logger.warning(
        "Admin forced cancel",
        extra={"transaction_id": str(transaction_id), "admin_id": str(actor.user_id), "reason": reason},
    )
    return transaction
