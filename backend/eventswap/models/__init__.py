"""
Models registry for Alembic - Import all models here to ensure Base.metadata is complete

Import order follows foreign key dependencies:
1. Base and enums
2. Users and categories (no foreign keys to other domain models)
3. Listings, offers, transactions, disputes (in dependency order)
4. Audit and partner tables
"""

from eventswap.infrastructure.database import Base

from eventswap.core.security.models import Role
from eventswap.core.users.models import User, UserStatus
from eventswap.core.listings.models import Category, Listing, ListingStatus
from eventswap.core.offers.models import Offer, OfferStatus
from eventswap.core.transactions.models import (
    Transaction, TransactionStatus, ReviewStatus,
    Payment, PaymentStatus,
    PaymentAdjustment, AdjustmentKind,
    WebhookEvent,
)
from eventswap.core.disputes.models import Dispute, DisputeStatus, DisputeReason, DisputeResolution
from eventswap.core.fraud.models import FraudCheck
from eventswap.core.partners.models import ApiKey
from eventswap.core.compliance.models import AuditLog

__all__ = [
    "Base",
    "Role",
    "User",
    "UserStatus",
    "Category",
    "Listing",
    "ListingStatus",
    "Offer",
    "OfferStatus",
    "Transaction",
    "TransactionStatus",
    "ReviewStatus",
    "Payment",
    "PaymentStatus",
    "PaymentAdjustment",
    "AdjustmentKind",
    "WebhookEvent",
    "Dispute",
    "DisputeStatus",
    "DisputeReason",
    "DisputeResolution",
    "FraudCheck",
    "ApiKey",
    "AuditLog",
]
