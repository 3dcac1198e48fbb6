"""
Prometheus metrics endpoint
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import Response

from eventswap.auth.dependencies import get_current_principal
from eventswap.core.security.models import ADMIN_ROLES
from eventswap.infrastructure.settings import get_settings
from eventswap.services.exceptions import AuthenticationError, AuthorizationError
from eventswap.utils.metrics import get_metrics_output, CONTENT_TYPE_LATEST

logger = logging.getLogger(__name__)

router = APIRouter()

_METRICS_ROLES = {role.value for role in ADMIN_ROLES}


async def verify_metrics_access(
    request: Request,
    x_metrics_token: Optional[str] = Header(None, alias="X-Metrics-Token"),
) -> bool:
    """
    Verify access to metrics endpoint.

    Access is granted if:
    - METRICS_PUBLIC=true, OR
    - METRICS_TOKEN is set and matches X-Metrics-Token header, OR
    - Caller presents a bearer token with ADMIN/SUPER_ADMIN role
    """
    settings = get_settings()

    if settings.METRICS_PUBLIC:
        return True

    if settings.METRICS_TOKEN and x_metrics_token == settings.METRICS_TOKEN:
        return True

    authorization = request.headers.get("Authorization")
    if authorization:
        try:
            principal = await get_current_principal(authorization=authorization)
        except AuthenticationError:
            principal = None
        if principal and any(str(r).upper() in _METRICS_ROLES for r in principal.roles):
            return True

    raise AuthorizationError(
        "Access to metrics endpoint denied. Set METRICS_PUBLIC=true or provide a valid METRICS_TOKEN or admin token.",
    )


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    description="Expose Prometheus metrics for observability. Protected by default (METRICS_PUBLIC=false).",
)
async def get_metrics(_: bool = Depends(verify_metrics_access)) -> Response:
    """Prometheus metrics in exposition format"""
    return Response(content=get_metrics_output(), media_type=CONTENT_TYPE_LATEST)
