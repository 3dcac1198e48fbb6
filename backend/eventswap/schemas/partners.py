"""
Pydantic schemas for the partner read API and API key administration
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from eventswap.core.listings.models import Category, Listing
from eventswap.core.partners.models import ApiKey
from eventswap.schemas.common import PaginationMeta


class CreateApiKeyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Partner label")
    permissions: List[str] = Field(..., min_length=1, description="Scopes, e.g. listings:read")
    user_id: Optional[str] = Field(None, description="Owning user UUID")
    expires_at: Optional[datetime] = Field(None, description="Optional expiry")


class ApiKeyResponse(BaseModel):
    id: str
    name: str
    key_prefix: str
    permissions: List[str]
    is_active: bool
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, api_key: ApiKey) -> "ApiKeyResponse":
        return cls(
            id=str(api_key.id),
            name=api_key.name,
            key_prefix=api_key.key_prefix,
            permissions=list(api_key.permissions or []),
            is_active=api_key.is_active,
            expires_at=api_key.expires_at,
            last_used_at=api_key.last_used_at,
            created_at=api_key.created_at,
        )


class CreatedApiKeyResponse(ApiKeyResponse):
    key: str = Field(..., description="Raw key, shown only once")


class CategoryItem(BaseModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None

    @classmethod
    def from_model(cls, category: Category) -> "CategoryItem":
        return cls(id=str(category.id), slug=category.slug, name=category.name, description=category.description)


class PartnerListingItem(BaseModel):
    id: str
    slug: str
    title: str
    description: Optional[str] = None
    category: Optional[CategoryItem] = None
    original_price: Decimal
    asking_price: Decimal
    currency: str
    city: Optional[str] = None
    event_date: Optional[datetime] = None
    published_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, listing: Listing) -> "PartnerListingItem":
        return cls(
            id=str(listing.id),
            slug=listing.slug,
            title=listing.title,
            description=listing.description,
            category=CategoryItem.from_model(listing.category) if listing.category else None,
            original_price=listing.original_price,
            asking_price=listing.asking_price,
            currency=listing.currency,
            city=listing.city,
            event_date=listing.event_date,
            published_at=listing.published_at,
        )


class PartnerListingsResponse(BaseModel):
    data: List[PartnerListingItem]
    meta: PaginationMeta


class PartnerListingResponse(BaseModel):
    data: PartnerListingItem


class PartnerCategoriesResponse(BaseModel):
    data: List[CategoryItem]


class PartnerStats(BaseModel):
    active_listings: int
    listings_by_category: Dict[str, int]
    completed_transactions: int


class PartnerStatsResponse(BaseModel):
    data: PartnerStats
