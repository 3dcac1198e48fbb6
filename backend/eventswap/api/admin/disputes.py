"""
Admin API - Dispute review and resolution
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eventswap.auth.dependencies import get_current_actor
from eventswap.core.security.models import Actor
from eventswap.infrastructure.database import get_db
from eventswap.schemas.disputes import DisputeResponse, ResolveDisputeRequest
from eventswap.services.disputes.service import resolve_dispute, start_review
from eventswap.services.payments.gateway import PaymentGateway, get_payment_gateway

router = APIRouter()


@router.post("/disputes/{dispute_id}/review", response_model=DisputeResponse)
async def review_dispute(
    dispute_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> DisputeResponse:
    """Pick up an OPEN dispute"""
    return DisputeResponse.from_model(start_review(db=db, dispute_id=dispute_id, actor=actor))


@router.post("/disputes/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve(
    dispute_id: UUID,
    request: ResolveDisputeRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> DisputeResponse:
    """Settle a dispute with REFUND, RELEASE or PARTIAL"""
    dispute = resolve_dispute(
        db=db,
        dispute_id=dispute_id,
        actor=actor,
        resolution=request.resolution,
        gateway=gateway,
        notes=request.notes,
        fraud_confirmed=request.fraud_confirmed,
        buyer_refund_amount=request.buyer_refund_amount,
    )
    return DisputeResponse.from_model(dispute)
