"""
Dispute models
"""

from sqlalchemy import Column, String, ForeignKey, Enum as SQLEnum, Text, DateTime, Boolean, Uuid, Index, text
from sqlalchemy.orm import relationship
import enum
from eventswap.core.common.base_model import BaseModel


class DisputeStatus(str, enum.Enum):
    """Dispute status enum"""
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"


class DisputeReason(str, enum.Enum):
    """Why a party opened the dispute"""
    LISTING_MISMATCH = "LISTING_MISMATCH"
    TRANSFER_REJECTED = "TRANSFER_REJECTED"
    MISSING_DOCUMENTATION = "MISSING_DOCUMENTATION"
    PAYMENT_ISSUES = "PAYMENT_ISSUES"
    OTHER = "OTHER"


class DisputeResolution(str, enum.Enum):
    """Settlement outcome"""
    REFUND = "REFUND"  # Buyer refunded in full
    RELEASE = "RELEASE"  # Funds released to seller
    PARTIAL = "PARTIAL"  # Split settlement


class Dispute(BaseModel):
    """
    Dispute model - Opened while the parent transaction is DISPUTED

    At most one unresolved dispute per transaction (partial unique index).
    fraud_confirmed feeds the fraud engine's hard signal for future trades.
    """

    __tablename__ = "disputes"

    protocol = Column(String(20), unique=True, nullable=False, index=True)  # DSP-YYYY-XXXXXX
    transaction_id = Column(Uuid(as_uuid=True), ForeignKey("transactions.id", name="fk_disputes_transaction_id"), nullable=False, index=True)
    raised_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_disputes_raised_by"), nullable=True)
    reason = Column(SQLEnum(DisputeReason, name="dispute_reason", create_constraint=True), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(SQLEnum(DisputeStatus, name="dispute_status", create_constraint=True), nullable=False, default=DisputeStatus.OPEN, index=True)
    resolution = Column(SQLEnum(DisputeResolution, name="dispute_resolution", create_constraint=True), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    fraud_confirmed = Column(Boolean, nullable=False, default=False)
    reviewer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_disputes_reviewer_id"), nullable=True)
    resolved_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_disputes_resolved_by"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    transaction = relationship("Transaction", back_populates="disputes")

    __table_args__ = (
        Index(
            "uq_disputes_open_per_transaction",
            "transaction_id",
            unique=True,
            postgresql_where=text("status <> 'RESOLVED'"),
            sqlite_where=text("status <> 'RESOLVED'"),
        ),
    )
