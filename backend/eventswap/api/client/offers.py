"""
Client API - Offer negotiation
"""

import logging
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from eventswap.auth.dependencies import get_current_actor
from eventswap.core.offers.models import OfferStatus
from eventswap.core.security.models import Actor
from eventswap.infrastructure.database import get_db
from eventswap.schemas.common import PaginationMeta
from eventswap.schemas.offers import (
    CreateOfferRequest,
    OfferListResponse,
    OfferResponse,
    RespondOfferRequest,
    RespondOfferResponse,
)
from eventswap.schemas.transactions import TransactionResponse
from eventswap.services.escrow.service import open_transaction
from eventswap.services.exceptions import ValidationError
from eventswap.services.offers.service import create_offer, list_offers, respond_to_offer
from eventswap.services.payments.gateway import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_uuid(value: str, field: str) -> UUID:
    try:
        return UUID(value)
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid {field} format", details={"field": field})


@router.get("/offers", response_model=OfferListResponse)
async def get_offers(
    role: Optional[Literal["buyer", "seller"]] = Query(None, description="Narrow to offers made (buyer) or received (seller)"),
    listing_id: Optional[UUID] = Query(None),
    offer_status: Optional[OfferStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=50),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> OfferListResponse:
    """List offers the caller is a party to"""
    offers, total = list_offers(
        db=db,
        user_id=actor.user_id,
        role=role,
        listing_id=listing_id,
        status=offer_status,
        page=page,
        per_page=per_page,
    )
    return OfferListResponse(
        data=[OfferResponse.from_model(o) for o in offers],
        meta=PaginationMeta(page=page, per_page=per_page, total=total),
    )


@router.post("/offers", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def post_offer(
    request: CreateOfferRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> OfferResponse:
    """Make an offer on an ACTIVE listing"""
    offer = create_offer(
        db=db,
        listing_id=_parse_uuid(request.listing_id, "listing_id"),
        buyer_id=actor.user_id,
        amount=request.amount,
        message=request.message,
    )
    return OfferResponse.from_model(offer)


@router.post("/offers/{offer_id}/respond", response_model=RespondOfferResponse)
async def respond(
    offer_id: UUID,
    request: RespondOfferRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> RespondOfferResponse:
    """
    Accept, reject or counter an offer.

    Accepting opens the escrow transaction in the same database transaction;
    a gateway failure rolls the acceptance back.
    """
    result = respond_to_offer(
        db=db,
        offer_id=offer_id,
        actor=actor,
        action=request.action,
        counter_amount=request.counter_amount,
        counter_message=request.counter_message,
        on_accepted=lambda event: open_transaction(db=db, event=event, gateway=gateway, actor=actor),
    )
    transaction = result.accepted_result
    return RespondOfferResponse(
        offer=OfferResponse.from_model(result.offer),
        counter_offer=OfferResponse.from_model(result.counter_offer) if result.counter_offer else None,
        transaction=TransactionResponse.from_model(transaction) if transaction is not None else None,
    )
