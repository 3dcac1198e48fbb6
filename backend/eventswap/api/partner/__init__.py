"""
Partner API routes - Read-only, API key authenticated
"""

from fastapi import APIRouter
from eventswap.infrastructure.settings import get_settings
from eventswap.api.partner.listings import router as listings_router

settings = get_settings()
router = APIRouter(prefix=settings.PARTNER_API_V1_PREFIX, tags=["partner-v1"])

router.include_router(listings_router)
