"""
Pydantic schemas for the Transactions API
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from eventswap.core.disputes.models import DisputeReason
from eventswap.core.transactions.models import Payment, Transaction


class PaymentSummary(BaseModel):
    status: str
    gross_amount: Decimal
    net_amount: Decimal
    refunded_amount: Decimal = Decimal("0")
    provider_payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, payment: Payment) -> "PaymentSummary":
        return cls(
            status=payment.status.value,
            gross_amount=payment.gross_amount,
            net_amount=payment.net_amount,
            refunded_amount=payment.refunded_amount or Decimal("0"),
            provider_payment_id=payment.provider_payment_id,
            paid_at=payment.paid_at,
            refunded_at=payment.refunded_at,
        )


class TransactionResponse(BaseModel):
    id: str
    code: str
    listing_id: str
    offer_id: Optional[str] = None
    buyer_id: str
    seller_id: str
    amount: Decimal
    platform_fee: Decimal
    seller_net_amount: Decimal
    status: str
    review_status: str
    payment_deadline: Optional[datetime] = None
    transfer_deadline: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    payment: Optional[PaymentSummary] = None

    @classmethod
    def from_model(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=str(transaction.id),
            code=transaction.code,
            listing_id=str(transaction.listing_id),
            offer_id=str(transaction.offer_id) if transaction.offer_id else None,
            buyer_id=str(transaction.buyer_id),
            seller_id=str(transaction.seller_id),
            amount=transaction.amount,
            platform_fee=transaction.platform_fee,
            seller_net_amount=transaction.seller_net_amount,
            status=transaction.status.value,
            review_status=transaction.review_status.value,
            payment_deadline=transaction.payment_deadline,
            transfer_deadline=transaction.transfer_deadline,
            paid_at=transaction.paid_at,
            completed_at=transaction.completed_at,
            cancelled_at=transaction.cancelled_at,
            refunded_at=transaction.refunded_at,
            payment=PaymentSummary.from_model(transaction.payment) if transaction.payment else None,
        )


class OpenDisputeRequest(BaseModel):
    reason: DisputeReason = Field(..., description="Dispute reason")
    description: str = Field(..., min_length=50, max_length=2000, description="What went wrong")
