"""
Domain error taxonomy

Every error carries a stable machine-readable code and the HTTP status the
API layer renders it with.
"""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for errors surfaced to callers"""

    code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.details = details
        self.headers = headers
        super().__init__(self.message)


class ValidationError(DomainError):
    """Malformed or out-of-domain input"""
    code = "VALIDATION_ERROR"
    http_status = 400


class AuthenticationError(DomainError):
    """Missing or invalid identity"""
    code = "UNAUTHENTICATED"
    http_status = 401


class AuthorizationError(DomainError):
    """Identity valid, privilege insufficient for the requested transition"""
    code = "FORBIDDEN"
    http_status = 403


class NotFoundError(DomainError):
    """Referenced entity absent"""
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(DomainError):
    """Transition invalid from the current state, or lost a concurrent write"""
    code = "CONFLICT"
    http_status = 409


class RateLimitError(DomainError):
    """Quota exceeded"""
    code = "RATE_LIMITED"
    http_status = 429


class ProviderError(DomainError):
    """Payment gateway call failed or returned an unexpected shape"""
    code = "PROVIDER_ERROR"
    http_status = 502
