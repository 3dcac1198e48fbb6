"""
Authentication dependencies for FastAPI

Session issuance belongs to the identity provider; this service only verifies
the bearer JWT (HS256 shared secret) and maps its claims to an Actor.
"""

from typing import Iterable, Optional

import jwt as pyjwt
from fastapi import Depends, Header, Request

from eventswap.auth.principal import Principal
from eventswap.core.security.models import Actor, Role
from eventswap.infrastructure.settings import get_settings
from eventswap.services.exceptions import AuthenticationError, AuthorizationError

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


async def get_current_principal(
    authorization: Optional[str] = Header(None),
) -> Principal:
    """
    Extract Principal from the JWT in the Authorization header.
    """
    if not authorization:
        raise AuthenticationError(
            "Authorization header missing",
            code="AUTHORIZATION_MISSING",
            headers=_BEARER_CHALLENGE,
        )

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(
            "Invalid authorization header format",
            code="INVALID_TOKEN",
            headers=_BEARER_CHALLENGE,
        )
    if scheme.lower() != "bearer":
        raise AuthenticationError(
            "Invalid authentication scheme",
            code="INVALID_TOKEN",
            headers=_BEARER_CHALLENGE,
        )

    settings = get_settings()
    try:
        payload = pyjwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED", headers=_BEARER_CHALLENGE)
    except pyjwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {str(e)}", code="INVALID_TOKEN", headers=_BEARER_CHALLENGE)

    principal = Principal(
        subject=str(payload.get("sub") or ""),
        email=payload.get("email"),
        roles=list(payload.get("roles") or [Role.USER.value]),
        raw_claims=payload,
    )
    if principal.user_id is None:
        raise AuthenticationError(
            "Invalid principal - invalid user identifier format",
            code="INVALID_TOKEN",
            headers=_BEARER_CHALLENGE,
        )
    return principal


async def get_current_actor(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> Actor:
    """Actor for the authenticated caller; also tags the request for logging"""
    actor = Actor.from_role_names(principal.user_id, principal.roles)
    request.state.actor_id = str(actor.user_id)
    request.state.actor_roles = [role.value for role in actor.roles]
    return actor


def require_roles(allowed: Iterable[Role]):
    """Dependency factory: caller must hold one of the allowed roles"""
    allowed = frozenset(allowed)

    async def _check_role(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.has_any_role(allowed):
            raise AuthorizationError(
                "Insufficient permissions",
                details={"required_roles": sorted(role.value for role in allowed)},
            )
        return actor

    return _check_role
