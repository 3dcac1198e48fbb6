"""
Core domain models - Export all models for Alembic
"""

from eventswap.core.users.models import User
from eventswap.core.listings.models import Category, Listing
from eventswap.core.offers.models import Offer
from eventswap.core.transactions.models import Transaction, Payment, PaymentAdjustment, WebhookEvent
from eventswap.core.disputes.models import Dispute
from eventswap.core.fraud.models import FraudCheck
from eventswap.core.partners.models import ApiKey
from eventswap.core.compliance.models import AuditLog

__all__ = [
    "User",
    "Category",
    "Listing",
    "Offer",
    "Transaction",
    "Payment",
    "PaymentAdjustment",
    "WebhookEvent",
    "Dispute",
    "FraudCheck",
    "ApiKey",
    "AuditLog",
]
