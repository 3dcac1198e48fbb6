"""
Admin API - Fraud scoring of signal bundles, listings and users
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventswap.auth.dependencies import require_roles
from eventswap.core.listings.models import Listing
from eventswap.core.security.models import Actor, RESOLVER_ROLES
from eventswap.core.users.models import User
from eventswap.infrastructure.database import get_db
from eventswap.schemas.admin import FraudCheckRequest, FraudCheckResponse, FraudSubjectCheckResponse
from eventswap.services.exceptions import NotFoundError, ValidationError
from eventswap.services.fraud.gate import build_listing_params, build_user_params, run_fraud_check

router = APIRouter()


@router.post("/fraud-check", response_model=FraudCheckResponse)
async def fraud_check(
    request: FraudCheckRequest,
    actor: Actor = Depends(require_roles(RESOLVER_ROLES)),
    db: Session = Depends(get_db),
) -> FraudCheckResponse:
    """
    Score an arbitrary signal bundle.

    The result is persisted as a FraudCheck (subject_type "manual") but never
    changes any transaction.
    """
    result = run_fraud_check(db=db, params=request.to_params(), subject_type="manual")
    db.commit()
    return FraudCheckResponse(**result.to_dict())


@router.get("/fraud-check", response_model=FraudSubjectCheckResponse)
async def fraud_check_subject(
    listing_id: Optional[UUID] = Query(None, description="Listing to score"),
    user_id: Optional[UUID] = Query(None, description="User to score across their activity"),
    actor: Actor = Depends(require_roles(RESOLVER_ROLES)),
    db: Session = Depends(get_db),
) -> FraudSubjectCheckResponse:
    """
    Score a stored listing or user from the signals on record.

    listing_id wins when both are given. Read-only apart from the persisted
    FraudCheck snapshot.
    """
    if listing_id is not None:
        listing = db.get(Listing, listing_id)
        if not listing:
            raise NotFoundError(f"Listing {listing_id} not found")
        result = run_fraud_check(
            db=db,
            params=build_listing_params(db, listing),
            subject_type="listing",
            subject_id=listing.id,
        )
        db.commit()
        return FraudSubjectCheckResponse(
            target="listing",
            subject_id=str(listing.id),
            seller_id=str(listing.seller_id),
            listing_evaluated=str(listing.id),
            fraud_score=FraudCheckResponse(**result.to_dict()),
        )

    if user_id is not None:
        user = db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        params, latest_listing = build_user_params(db, user)
        result = run_fraud_check(db=db, params=params, subject_type="user", subject_id=user.id)
        db.commit()
        return FraudSubjectCheckResponse(
            target="user",
            subject_id=str(user.id),
            listing_evaluated=str(latest_listing.id) if latest_listing else None,
            fraud_score=FraudCheckResponse(**result.to_dict()),
        )

    raise ValidationError("listing_id or user_id is required")
