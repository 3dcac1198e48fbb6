"""
User model
"""

from sqlalchemy import Column, String, Boolean, Enum as SQLEnum
import enum
from eventswap.core.common.base_model import BaseModel


class UserStatus(str, enum.Enum):
    """User status enum"""
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class User(BaseModel):
    """
    User model - marketplace participant (buyer and/or seller)

    Identity is issued by the external auth collaborator; this row holds the
    verification flags the fraud engine reads.
    """

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    status = Column(SQLEnum(UserStatus, name="user_status"), nullable=False, default=UserStatus.ACTIVE)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    last_ip = Column(String(45), nullable=True)  # Reported by the identity provider at sign-in

    # Verification flags
    email_verified = Column(Boolean, nullable=False, default=False)
    phone_verified = Column(Boolean, nullable=False, default=False)
    kyc_verified = Column(Boolean, nullable=False, default=False)
