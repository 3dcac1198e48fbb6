"""
Pydantic schemas for the Offers API
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

from eventswap.core.offers.models import Offer
from eventswap.schemas.common import PaginationMeta
from eventswap.schemas.transactions import TransactionResponse


class CreateOfferRequest(BaseModel):
    listing_id: str = Field(..., description="Listing UUID")
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Offered price")
    message: Optional[str] = Field(None, max_length=1000, description="Note to the seller")


class RespondOfferRequest(BaseModel):
    action: Literal["accept", "reject", "counter"] = Field(..., description="Response to the offer")
    counter_amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2, description="Required for counter")
    counter_message: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_counter(self) -> "RespondOfferRequest":
        if self.action == "counter" and self.counter_amount is None:
            raise ValueError("counter_amount is required when action is counter")
        return self


class OfferResponse(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    proposer_id: str
    responder_id: str
    amount: Decimal
    message: Optional[str] = None
    status: str
    parent_offer_id: Optional[str] = None
    counter_amount: Optional[Decimal] = None
    expires_at: datetime
    responded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, offer: Offer) -> "OfferResponse":
        return cls(
            id=str(offer.id),
            listing_id=str(offer.listing_id),
            buyer_id=str(offer.buyer_id),
            seller_id=str(offer.seller_id),
            proposer_id=str(offer.proposer_id),
            responder_id=str(offer.responder_id),
            amount=offer.amount,
            message=offer.message,
            status=offer.status.value,
            parent_offer_id=str(offer.parent_offer_id) if offer.parent_offer_id else None,
            counter_amount=offer.counter_amount,
            expires_at=offer.expires_at,
            responded_at=offer.responded_at,
            created_at=offer.created_at,
        )


class OfferListResponse(BaseModel):
    data: List[OfferResponse]
    meta: PaginationMeta


class RespondOfferResponse(BaseModel):
    offer: OfferResponse
    counter_offer: Optional[OfferResponse] = None
    transaction: Optional[TransactionResponse] = None
