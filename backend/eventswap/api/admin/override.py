"""
Admin API - Forced refund/cancel and fraud hold release
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eventswap.auth.dependencies import get_current_actor
from eventswap.core.security.models import Actor
from eventswap.infrastructure.database import get_db
from eventswap.schemas.admin import (
    AdminCancelRequest,
    AdminOverrideData,
    AdminOverrideResponse,
    AdminRefundRequest,
)
from eventswap.schemas.transactions import TransactionResponse
from eventswap.services.admin.override import force_cancel, force_refund
from eventswap.services.escrow.service import release_hold
from eventswap.services.exceptions import ValidationError
from eventswap.services.payments.gateway import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_transaction_id(value: str) -> UUID:
    try:
        return UUID(value)
    except (ValueError, TypeError):
        raise ValidationError("Invalid transaction_id format", details={"field": "transaction_id"})


@router.post("/refund", response_model=AdminOverrideResponse)
async def admin_refund(
    request: AdminRefundRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> AdminOverrideResponse:
    """
    Force a transaction to REFUNDED (ADMIN/SUPER_ADMIN).

    Returns 409 if the transaction was already refunded or cancelled.
    """
    transaction = force_refund(
        db=db,
        transaction_id=_parse_transaction_id(request.transaction_id),
        actor=actor,
        gateway=gateway,
        reason=request.reason,
    )
    return AdminOverrideResponse(
        data=AdminOverrideData(
            transaction_id=str(transaction.id),
            status=transaction.status.value,
            refunded_at=transaction.refunded_at,
            admin_id=str(actor.user_id),
        ),
        message="Transaction refunded",
    )


@router.post("/cancel", response_model=AdminOverrideResponse)
async def admin_cancel(
    request: AdminCancelRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> AdminOverrideResponse:
    """Force a non-terminal transaction to CANCELLED (ADMIN/SUPER_ADMIN)"""
    transaction = force_cancel(
        db=db,
        transaction_id=_parse_transaction_id(request.transaction_id),
        actor=actor,
        gateway=gateway,
        reason=request.reason,
    )
    return AdminOverrideResponse(
        data=AdminOverrideData(
            transaction_id=str(transaction.id),
            status=transaction.status.value,
            cancelled_at=transaction.cancelled_at,
            admin_id=str(actor.user_id),
        ),
        message="Transaction cancelled",
    )


@router.post("/transactions/{transaction_id}/release-hold", response_model=TransactionResponse)
async def admin_release_hold(
    transaction_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> TransactionResponse:
    """Clear a fraud hold and open the payment"""
    transaction = release_hold(db=db, transaction_id=transaction_id, actor=actor, gateway=gateway)
    return TransactionResponse.from_model(transaction)
