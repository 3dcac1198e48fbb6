"""
Partner API key model
"""

from sqlalchemy import Column, String, ForeignKey, Boolean, DateTime, Uuid, JSON
from eventswap.core.common.base_model import BaseModel


class ApiKey(BaseModel):
    """
    ApiKey model - Credential for partner read access

    The raw key is shown once at creation; only its SHA-256 hash and a short
    display prefix are stored.
    """

    __tablename__ = "api_keys"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_api_keys_user_id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    key_prefix = Column(String(20), nullable=False)
    key_hash = Column(String(64), nullable=False, unique=True, index=True)
    permissions = Column(JSON, nullable=False, default=list)  # e.g. ["listings:read", "stats:read"]
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
