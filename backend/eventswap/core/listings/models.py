"""
Listing models - Event reservations offered for transfer
"""

from sqlalchemy import Column, String, ForeignKey, Enum as SQLEnum, Numeric, Text, DateTime, Uuid, Index, JSON
from sqlalchemy.orm import relationship
import enum
from eventswap.core.common.base_model import BaseModel


class ListingStatus(str, enum.Enum):
    """Listing status enum"""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Category(BaseModel):
    """Category model - Event type (wedding venue, concert ticket, ...)"""

    __tablename__ = "categories"

    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)


class Listing(BaseModel):
    """
    Listing model - A reservation a seller wants to transfer

    Status changes only through offer/transaction events or admin action.
    reserved_by_transaction_id records which transaction moved the listing
    to RESERVED/SOLD; only that transaction may reactivate it.
    """

    __tablename__ = "listings"

    slug = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_listings_seller_id"), nullable=False, index=True)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id", name="fk_listings_category_id"), nullable=True, index=True)
    original_price = Column(Numeric(12, 2), nullable=False)
    asking_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    city = Column(String(100), nullable=True)
    event_date = Column(DateTime(timezone=True), nullable=True)
    images = Column(JSON, nullable=True)  # Image URLs
    status = Column(SQLEnum(ListingStatus, name="listing_status", create_constraint=True), nullable=False, default=ListingStatus.DRAFT, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    reserved_by_transaction_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    seller = relationship("User", foreign_keys=[seller_id], lazy="select")
    category = relationship("Category", lazy="select")

    __table_args__ = (
        Index("idx_listings_status_published", "status", "published_at"),
    )
