"""
Admin API - Partner API key issuance and revocation
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from eventswap.auth.dependencies import require_roles
from eventswap.core.security.models import ADMIN_ROLES, Actor
from eventswap.infrastructure.database import get_db
from eventswap.schemas.partners import ApiKeyResponse, CreateApiKeyRequest, CreatedApiKeyResponse
from eventswap.services.exceptions import ValidationError
from eventswap.services.partners.api_keys import create_api_key, revoke_api_key

router = APIRouter()


@router.post("/api-keys", response_model=CreatedApiKeyResponse, status_code=status.HTTP_201_CREATED)
async def post_api_key(
    request: CreateApiKeyRequest,
    actor: Actor = Depends(require_roles(ADMIN_ROLES)),
    db: Session = Depends(get_db),
) -> CreatedApiKeyResponse:
    """Issue a partner key; the raw key is only returned here"""
    user_id = None
    if request.user_id:
        try:
            user_id = UUID(request.user_id)
        except ValueError:
            raise ValidationError("Invalid user_id format", details={"field": "user_id"})

    api_key, raw_key = create_api_key(
        db=db,
        name=request.name,
        permissions=request.permissions,
        user_id=user_id,
        expires_at=request.expires_at,
    )
    return CreatedApiKeyResponse(**ApiKeyResponse.from_model(api_key).model_dump(), key=raw_key)


@router.delete("/api-keys/{api_key_id}", response_model=ApiKeyResponse)
async def delete_api_key(
    api_key_id: UUID,
    actor: Actor = Depends(require_roles(ADMIN_ROLES)),
    db: Session = Depends(get_db),
) -> ApiKeyResponse:
    """Revoke a partner key"""
    return ApiKeyResponse.from_model(revoke_api_key(db=db, api_key_id=api_key_id))
