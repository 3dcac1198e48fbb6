"""
Client API - Escrow transactions (read, transfer, confirm, dispute)
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from eventswap.auth.dependencies import get_current_actor
from eventswap.core.security.models import Actor
from eventswap.infrastructure.database import get_db
from eventswap.schemas.disputes import DisputeResponse
from eventswap.schemas.transactions import OpenDisputeRequest, TransactionResponse
from eventswap.services.disputes.service import open_dispute
from eventswap.services.escrow.service import confirm_receipt, get_transaction_for_party, start_transfer

router = APIRouter()


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> TransactionResponse:
    """Transaction detail for the buyer, the seller or an operator"""
    transaction = get_transaction_for_party(db=db, transaction_id=transaction_id, actor=actor)
    return TransactionResponse.from_model(transaction)


@router.post("/transactions/{transaction_id}/transfer", response_model=TransactionResponse)
async def post_transfer(
    transaction_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> TransactionResponse:
    """Seller starts the reservation transfer"""
    return TransactionResponse.from_model(start_transfer(db=db, transaction_id=transaction_id, actor=actor))


@router.post("/transactions/{transaction_id}/confirm", response_model=TransactionResponse)
async def post_confirm(
    transaction_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> TransactionResponse:
    """Buyer confirms the transfer was received; releases escrow"""
    return TransactionResponse.from_model(confirm_receipt(db=db, transaction_id=transaction_id, actor=actor))


@router.post(
    "/transactions/{transaction_id}/disputes",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_dispute(
    transaction_id: UUID,
    request: OpenDisputeRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> DisputeResponse:
    """Open a dispute on a paid transaction"""
    dispute = open_dispute(
        db=db,
        transaction_id=transaction_id,
        actor=actor,
        reason=request.reason,
        description=request.description,
    )
    return DisputeResponse.from_model(dispute)
