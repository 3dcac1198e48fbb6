"""
Partner API keys - Issuance, revocation and authentication

Raw keys look like `evtswap_<40 hex>` and are returned once at creation.
Only the SHA-256 hash and a display prefix are stored.
"""

import hashlib
import logging
import secrets
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from eventswap.core.common.clock import ensure_utc, utcnow
from eventswap.core.partners.models import ApiKey
from eventswap.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

KEY_PREFIX = "evtswap_"
DISPLAY_PREFIX_LENGTH = 12

# Scopes a key may be granted; "*" grants all of them
PERMISSIONS = frozenset({"listings:read", "categories:read", "stats:read"})
WILDCARD = "*"


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> Tuple[str, str, str]:
    """
    Returns:
        (raw_key, display_prefix, sha256 hex digest)
    """
    raw_key = KEY_PREFIX + secrets.token_hex(20)
    return raw_key, raw_key[:DISPLAY_PREFIX_LENGTH], hash_api_key(raw_key)


def create_api_key(
    *,
    db: Session,
    name: str,
    permissions: Iterable[str],
    user_id: Optional[UUID] = None,
    expires_at: Optional[datetime] = None,
) -> Tuple[ApiKey, str]:
    """
    Issue a key and commit.

    Returns:
        (ApiKey row, raw key) - the raw key is not recoverable afterwards
    """
    permissions: List[str] = sorted(set(permissions))
    unknown = [p for p in permissions if p != WILDCARD and p not in PERMISSIONS]
    if not permissions or unknown:
        raise ValidationError(
            "Invalid API key permissions",
            details={"unknown": unknown, "allowed": sorted(PERMISSIONS | {WILDCARD})},
        )

    raw_key, prefix, key_hash = generate_api_key()
    api_key = ApiKey(
        user_id=user_id,
        name=name,
        key_prefix=prefix,
        key_hash=key_hash,
        permissions=permissions,
        is_active=True,
        expires_at=expires_at,
    )
    db.add(api_key)
    db.commit()
    db.refresh(api_key)

    logger.info(
        "API key created",
        extra={"api_key_id": str(api_key.id), "api_key_prefix": prefix, "permissions": permissions},
    )
    return api_key, raw_key


def revoke_api_key(*, db: Session, api_key_id: UUID) -> ApiKey:
    api_key = db.get(ApiKey, api_key_id)
    if not api_key:
        raise NotFoundError(f"API key {api_key_id} not found")
    api_key.is_active = False
    db.commit()
    db.refresh(api_key)
    logger.info("API key revoked", extra={"api_key_id": str(api_key_id), "api_key_prefix": api_key.key_prefix})
    return api_key


def authenticate_api_key(db: Session, raw_key: Optional[str]) -> Optional[ApiKey]:
    """Active, unexpired key matching raw_key, or None"""
    if not raw_key or not raw_key.startswith(KEY_PREFIX):
        return None

    api_key = db.execute(
        select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key))
    ).scalar_one_or_none()
    if api_key is None or not api_key.is_active:
        return None
    if api_key.expires_at is not None and ensure_utc(api_key.expires_at) <= utcnow():
        return None
    return api_key


def has_permission(api_key: ApiKey, permission: str) -> bool:
    granted = api_key.permissions or []
    return WILDCARD in granted or permission in granted
