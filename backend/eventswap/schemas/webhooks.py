"""
Payment webhook payload schemas
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, model_validator


class PaymentWebhookPayload(BaseModel):
    """
    Payment provider event

    The transaction is located by provider payment id, falling back to the
    external reference (our transaction id) sent when the charge was created.
    """
    event_id: str = Field(..., min_length=1, max_length=255, description="Unique provider event id")
    event: str = Field(..., min_length=1, max_length=100, description="Event type, e.g. PAYMENT_CONFIRMED")
    payment_id: Optional[str] = Field(None, max_length=255, description="Provider payment id")
    external_reference: Optional[UUID] = Field(None, description="Transaction UUID")
    value: Optional[Decimal] = Field(None, ge=0, description="Amount settled")

    @model_validator(mode="after")
    def require_reference(self) -> "PaymentWebhookPayload":
        if not self.payment_id and not self.external_reference:
            raise ValueError("payment_id or external_reference is required")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "event_id": "evt_000123",
                "event": "PAYMENT_CONFIRMED",
                "payment_id": "pay_8f2a1c",
                "external_reference": "123e4567-e89b-12d3-a456-426614174000",
                "value": "250.00",
            }
        }
    }


class PaymentWebhookResponse(BaseModel):
    status: str = Field(..., description="processed, duplicate or ignored")
    transaction_id: Optional[str] = None
    transaction_status: Optional[str] = None
