"""
Transaction models - Escrowed money movement for an accepted offer
"""

from sqlalchemy import Column, String, ForeignKey, Enum as SQLEnum, Numeric, Text, DateTime, Uuid, Index, CheckConstraint, text
from sqlalchemy.orm import relationship
import enum
from eventswap.core.common.base_model import BaseModel


class TransactionStatus(str, enum.Enum):
    """Transaction status enum - escrow lifecycle"""
    PENDING = "PENDING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    TRANSFERRING = "TRANSFERRING"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


TERMINAL_TRANSACTION_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.REFUNDED,
    TransactionStatus.CANCELLED,
})


class ReviewStatus(str, enum.Enum):
    """Fraud review sub-state surfaced to operators"""
    NONE = "NONE"
    FLAGGED = "FLAGGED"  # REVIEW recommendation: proceeds, audited later
    HELD = "HELD"  # BLOCK recommendation: stays PENDING until released or cancelled
    CLEARED = "CLEARED"  # Hold released by an operator


class PaymentStatus(str, enum.Enum):
    """Payment status enum"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class AdjustmentKind(str, enum.Enum):
    """Split settlement legs"""
    BUYER_REFUND = "BUYER_REFUND"
    SELLER_RELEASE = "SELLER_RELEASE"


class Transaction(BaseModel):
    """
    Transaction model - Escrow saga from offer acceptance to settlement

    Forward-only except DISPUTED -> {COMPLETED, REFUNDED} and admin override.
    At most one non-terminal transaction per listing, enforced by a partial
    unique index.
    """

    __tablename__ = "transactions"

    code = Column(String(20), unique=True, nullable=False, index=True)  # TXN-YYYY-XXXX
    listing_id = Column(Uuid(as_uuid=True), ForeignKey("listings.id", name="fk_transactions_listing_id"), nullable=False, index=True)
    offer_id = Column(Uuid(as_uuid=True), ForeignKey("offers.id", name="fk_transactions_offer_id"), nullable=True, index=True)
    buyer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_transactions_buyer_id"), nullable=False, index=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_transactions_seller_id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False)
    seller_net_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(SQLEnum(TransactionStatus, name="transaction_status", create_constraint=True), nullable=False, default=TransactionStatus.PENDING, index=True)

    # Fraud gate outcome
    review_status = Column(SQLEnum(ReviewStatus, name="review_status", create_constraint=True), nullable=False, default=ReviewStatus.NONE, index=True)
    fraud_score = Column(Numeric(6, 3), nullable=True)
    fraud_level = Column(String(20), nullable=True)
    fraud_recommendation = Column(String(20), nullable=True)

    # Deadlines
    payment_deadline = Column(DateTime(timezone=True), nullable=True)
    transfer_deadline = Column(DateTime(timezone=True), nullable=True)

    # Lifecycle timestamps
    paid_at = Column(DateTime(timezone=True), nullable=True)
    transfer_started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Admin override stamp
    override_actor_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_transactions_override_actor_id"), nullable=True)
    override_at = Column(DateTime(timezone=True), nullable=True)

    listing = relationship("Listing", lazy="select")
    payment = relationship("Payment", back_populates="transaction", uselist=False, lazy="select")
    disputes = relationship("Dispute", back_populates="transaction", lazy="select")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_transactions_amount_positive"),
        Index(
            "uq_transactions_open_per_listing",
            "listing_id",
            unique=True,
            postgresql_where=text("status NOT IN ('COMPLETED', 'REFUNDED', 'CANCELLED')"),
            sqlite_where=text("status NOT IN ('COMPLETED', 'REFUNDED', 'CANCELLED')"),
        ),
    )


class Payment(BaseModel):
    """
    Payment model - Buyer charge held in escrow (1:1 with Transaction)

    Exists only once the transaction reached AWAITING_PAYMENT.
    net_amount is what the seller receives; never above gross_amount.
    refunded_amount accumulates every refund sent to the buyer.
    """

    __tablename__ = "payments"

    transaction_id = Column(Uuid(as_uuid=True), ForeignKey("transactions.id", name="fk_payments_transaction_id"), nullable=False, unique=True, index=True)
    payer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_payments_payer_id"), nullable=False)
    payee_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_payments_payee_id"), nullable=False)
    gross_amount = Column(Numeric(12, 2), nullable=False)
    net_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(SQLEnum(PaymentStatus, name="payment_status", create_constraint=True), nullable=False, default=PaymentStatus.PENDING, index=True)
    provider_payment_id = Column(String(255), nullable=True, unique=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_amount = Column(Numeric(12, 2), nullable=False, default=0)
    refund_reference = Column(String(255), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    transaction = relationship("Transaction", back_populates="payment")
    adjustments = relationship("PaymentAdjustment", back_populates="payment", lazy="select")

    __table_args__ = (
        CheckConstraint("net_amount <= gross_amount", name="check_payments_net_le_gross"),
        CheckConstraint("net_amount >= 0", name="check_payments_net_non_negative"),
        CheckConstraint("refunded_amount <= gross_amount", name="check_payments_refunded_le_gross"),
    )


class PaymentAdjustment(BaseModel):
    """PaymentAdjustment model - One leg of a split (PARTIAL) dispute settlement"""

    __tablename__ = "payment_adjustments"

    payment_id = Column(Uuid(as_uuid=True), ForeignKey("payments.id", name="fk_payment_adjustments_payment_id"), nullable=False, index=True)
    dispute_id = Column(Uuid(as_uuid=True), ForeignKey("disputes.id", name="fk_payment_adjustments_dispute_id"), nullable=True, index=True)
    kind = Column(SQLEnum(AdjustmentKind, name="adjustment_kind", create_constraint=True), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    provider_reference = Column(String(255), nullable=True)

    payment = relationship("Payment", back_populates="adjustments")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_adjustments_amount_non_negative"),
    )


class WebhookEvent(BaseModel):
    """
    WebhookEvent model - Idempotency ledger for payment provider events

    A row exists only for events that were applied (or acknowledged as no-op);
    rejected events are not recorded so the provider can redeliver them.
    """

    __tablename__ = "webhook_events"

    provider_event_id = Column(String(255), nullable=False, unique=True, index=True)
    event_type = Column(String(100), nullable=False)
    transaction_id = Column(Uuid(as_uuid=True), ForeignKey("transactions.id", name="fk_webhook_events_transaction_id"), nullable=True, index=True)
    outcome = Column(String(50), nullable=False)
