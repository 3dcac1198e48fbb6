"""
Pydantic schemas for dispute review and resolution
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from eventswap.core.disputes.models import Dispute, DisputeResolution


class ResolveDisputeRequest(BaseModel):
    resolution: DisputeResolution = Field(..., description="REFUND, RELEASE or PARTIAL")
    notes: Optional[str] = Field(None, max_length=2000, description="Resolution notes")
    fraud_confirmed: bool = Field(False, description="Mark the accused party as a confirmed fraudster")
    buyer_refund_amount: Optional[Decimal] = Field(
        None, gt=0, max_digits=12, decimal_places=2,
        description="Buyer refund for a PARTIAL resolution when the split mode is FIXED",
    )


class DisputeResponse(BaseModel):
    id: str
    protocol: str
    transaction_id: str
    raised_by: Optional[str] = None
    reason: str
    description: str
    status: str
    resolution: Optional[str] = None
    resolution_notes: Optional[str] = None
    fraud_confirmed: bool
    reviewer_id: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, dispute: Dispute) -> "DisputeResponse":
        return cls(
            id=str(dispute.id),
            protocol=dispute.protocol,
            transaction_id=str(dispute.transaction_id),
            raised_by=str(dispute.raised_by) if dispute.raised_by else None,
            reason=dispute.reason.value,
            description=dispute.description,
            status=dispute.status.value,
            resolution=dispute.resolution.value if dispute.resolution else None,
            resolution_notes=dispute.resolution_notes,
            fraud_confirmed=bool(dispute.fraud_confirmed),
            reviewer_id=str(dispute.reviewer_id) if dispute.reviewer_id else None,
            resolved_by=str(dispute.resolved_by) if dispute.resolved_by else None,
            resolved_at=dispute.resolved_at,
            created_at=dispute.created_at,
        )
