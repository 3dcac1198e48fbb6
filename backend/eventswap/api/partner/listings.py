"""
Partner API - Published listings, categories and marketplace stats

Only ACTIVE listings are visible to partners.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from eventswap.auth.api_keys import require_api_key
from eventswap.core.listings.models import Category, Listing, ListingStatus
from eventswap.core.partners.models import ApiKey
from eventswap.core.transactions.models import Transaction, TransactionStatus
from eventswap.infrastructure.database import get_db
from eventswap.schemas.common import PaginationMeta
from eventswap.schemas.partners import (
    CategoryItem,
    PartnerCategoriesResponse,
    PartnerListingItem,
    PartnerListingResponse,
    PartnerListingsResponse,
    PartnerStats,
    PartnerStatsResponse,
)
from eventswap.services.exceptions import NotFoundError

router = APIRouter()


@router.get("/listings", response_model=PartnerListingsResponse)
async def partner_listings(
    category: Optional[str] = Query(None, description="Category slug"),
    city: Optional[str] = Query(None),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    api_key: ApiKey = Depends(require_api_key("listings:read")),
    db: Session = Depends(get_db),
) -> PartnerListingsResponse:
    """Paginated ACTIVE listings, most recently published first"""
    filters = [Listing.status == ListingStatus.ACTIVE]
    if category:
        filters.append(Listing.category.has(Category.slug == category))
    if city:
        filters.append(func.lower(Listing.city) == city.lower())
    if min_price is not None:
        filters.append(Listing.asking_price >= min_price)
    if max_price is not None:
        filters.append(Listing.asking_price <= max_price)

    total = db.execute(select(func.count(Listing.id)).where(*filters)).scalar_one()
    listings = db.execute(
        select(Listing)
        .options(joinedload(Listing.category))
        .where(*filters)
        .order_by(Listing.published_at.desc(), Listing.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).scalars().all()

    return PartnerListingsResponse(
        data=[PartnerListingItem.from_model(listing) for listing in listings],
        meta=PaginationMeta(page=page, per_page=per_page, total=total),
    )


@router.get("/listings/{listing_id}", response_model=PartnerListingResponse)
async def partner_listing(
    listing_id: UUID,
    api_key: ApiKey = Depends(require_api_key("listings:read")),
    db: Session = Depends(get_db),
) -> PartnerListingResponse:
    listing = db.execute(
        select(Listing)
        .options(joinedload(Listing.category))
        .where(Listing.id == listing_id, Listing.status == ListingStatus.ACTIVE)
    ).scalar_one_or_none()
    if listing is None:
        raise NotFoundError(f"Listing {listing_id} not found")
    return PartnerListingResponse(data=PartnerListingItem.from_model(listing))


@router.get("/categories", response_model=PartnerCategoriesResponse)
async def partner_categories(
    api_key: ApiKey = Depends(require_api_key("categories:read")),
    db: Session = Depends(get_db),
) -> PartnerCategoriesResponse:
    categories = db.execute(select(Category).order_by(Category.name)).scalars().all()
    return PartnerCategoriesResponse(data=[CategoryItem.from_model(c) for c in categories])


@router.get("/stats", response_model=PartnerStatsResponse)
async def partner_stats(
    api_key: ApiKey = Depends(require_api_key("stats:read")),
    db: Session = Depends(get_db),
) -> PartnerStatsResponse:
    """Aggregate marketplace counters"""
    active = db.execute(
        select(func.count(Listing.id)).where(Listing.status == ListingStatus.ACTIVE)
    ).scalar_one()
    by_category = db.execute(
        select(Category.slug, func.count(Listing.id))
        .join(Listing, Listing.category_id == Category.id)
        .where(Listing.status == ListingStatus.ACTIVE)
        .group_by(Category.slug)
    ).all()
    completed = db.execute(
        select(func.count(Transaction.id)).where(Transaction.status == TransactionStatus.COMPLETED)
    ).scalar_one()

    return PartnerStatsResponse(data=PartnerStats(
        active_listings=active,
        listings_by_category={slug: count for slug, count in by_category},
        completed_transactions=completed,
    ))
