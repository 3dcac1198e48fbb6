"""
Pydantic schemas for admin override and fraud tooling
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from eventswap.services.fraud.engine import FraudCheckParams


class AdminRefundRequest(BaseModel):
    transaction_id: str = Field(..., description="Transaction UUID")
    reason: Optional[str] = Field(None, max_length=500, description="Why the refund is forced")


class AdminCancelRequest(BaseModel):
    transaction_id: str = Field(..., description="Transaction UUID")
    reason: Optional[str] = Field(None, max_length=500, description="Why the cancellation is forced")


class AdminOverrideData(BaseModel):
    transaction_id: str
    status: str
    refunded_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    admin_id: str


class AdminOverrideResponse(BaseModel):
    data: AdminOverrideData
    message: str


class FraudCheckRequest(BaseModel):
    """Signal bundle to score; every field is optional and missing values are risk-neutral"""
    account_age_days: Optional[float] = None
    prior_completed_transactions: Optional[int] = None
    prior_disputes: Optional[int] = None
    confirmed_fraud_disputes: Optional[int] = None
    price_deviation: Optional[float] = None
    message_count: Optional[int] = None
    listing_age_hours: Optional[float] = None
    email_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None
    kyc_verified: Optional[bool] = None
    new_device: Optional[bool] = None
    geo_mismatch: Optional[bool] = None
    offers_last_hour: Optional[int] = None
    transactions_last_24h: Optional[int] = None
    event_in_past: Optional[bool] = None
    listing_price: Optional[float] = None
    duplicate_title: Optional[bool] = None
    description_length: Optional[int] = None
    image_count: Optional[int] = None
    same_ip: Optional[bool] = None
    failed_payment_attempts: Optional[int] = None

    def to_params(self) -> FraudCheckParams:
        return FraudCheckParams(**self.model_dump())


class FraudCheckResponse(BaseModel):
    score: float
    level: str
    recommendation: str
    signals: Dict[str, float]
    hard_signals: List[str]


class FraudSubjectCheckResponse(BaseModel):
    """Score of a stored listing or user, built from the signals on record"""
    target: str
    subject_id: str
    seller_id: Optional[str] = None
    listing_evaluated: Optional[str] = None
    fraud_score: FraudCheckResponse
