"""
Security event logging and audit
"""

import logging
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session

from eventswap.infrastructure.logging_config import trace_id_context
from eventswap.core.compliance.models import AuditLog
from eventswap.core.security.models import Role

logger = logging.getLogger(__name__)

_SENSITIVE_KEYS = (
    "secret", "password", "token", "api_key", "signature",
    "authorization", "x-payment-signature", "x-api-key",
)


def log_security_event(
    action: str,
    details: Dict[str, Any],
    trace_id: Optional[str] = None,
    db: Optional[Session] = None,
) -> None:
    """
    Log a security event and optionally write AuditLog.

    Args:
        action: Security action (e.g., "RATE_LIMIT_EXCEEDED", "WEBHOOK_SIGNATURE_FAILED")
        details: Event details (will be sanitized to remove secrets)
        trace_id: Optional trace ID (will try to get from context if not provided)
        db: Optional database session for AuditLog write (committed immediately)
    """
    if not trace_id:
        trace_id = trace_id_context.get() or "unknown"

    sanitized_details = _sanitize_details(details)

    logger.warning(
        "Security event",
        extra={"action": action, "trace_id": trace_id, "details": sanitized_details},
    )

    if db is not None:
        db.add(AuditLog(
            actor_user_id=None,
            actor_role=Role.SYSTEM,
            action=action,
            entity_type="Security",
            entity_id=None,
            before=None,
            after=sanitized_details,
            reason=f"Security event: {action}",
        ))
        db.commit()


def _sanitize_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """
    Sanitize details dictionary to remove secrets.
    """
    sanitized = {}
    for key, value in details.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        else:
            sanitized[key] = value
    return sanitized
