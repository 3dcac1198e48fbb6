"""
Offer models - Price negotiation between buyer and seller
"""

from sqlalchemy import Column, ForeignKey, Enum as SQLEnum, Numeric, Text, DateTime, Uuid, Index, CheckConstraint, text
from sqlalchemy.orm import relationship
import enum
from eventswap.core.common.base_model import BaseModel


class OfferStatus(str, enum.Enum):
    """Offer status enum"""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COUNTERED = "COUNTERED"
    EXPIRED = "EXPIRED"


class Offer(BaseModel):
    """
    Offer model - One step of a negotiation chain on a listing

    Features:
    - buyer_id/seller_id: the two parties of the chain (constant along the chain)
    - proposer_id: who made this offer (buyer first, alternating on counters)
    - responder_id: the only party allowed to respond
    - parent_offer_id: the COUNTERED offer this one replaces
    - At most one PENDING offer per (listing, buyer), enforced by a partial unique index
    """

    __tablename__ = "offers"

    listing_id = Column(Uuid(as_uuid=True), ForeignKey("listings.id", name="fk_offers_listing_id"), nullable=False, index=True)
    buyer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_offers_buyer_id"), nullable=False, index=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_offers_seller_id"), nullable=False, index=True)
    proposer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_offers_proposer_id"), nullable=False)
    responder_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_offers_responder_id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    message = Column(Text, nullable=True)
    status = Column(SQLEnum(OfferStatus, name="offer_status", create_constraint=True), nullable=False, default=OfferStatus.PENDING, index=True)
    parent_offer_id = Column(Uuid(as_uuid=True), ForeignKey("offers.id", name="fk_offers_parent_offer_id"), nullable=True, index=True)
    counter_amount = Column(Numeric(12, 2), nullable=True)  # Set on the COUNTERED offer
    expires_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    listing = relationship("Listing", lazy="select")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_offers_amount_positive"),
        Index(
            "uq_offers_live_per_buyer",
            "listing_id",
            "buyer_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )
