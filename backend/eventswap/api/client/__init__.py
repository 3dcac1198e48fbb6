"""
Client API routes - Authenticated marketplace users
"""

from fastapi import APIRouter
from eventswap.infrastructure.settings import get_settings
from eventswap.api.client.offers import router as offers_router
from eventswap.api.client.transactions import router as transactions_router

settings = get_settings()
router = APIRouter(prefix=settings.API_PREFIX, tags=["client"])

router.include_router(offers_router, tags=["offers"])
router.include_router(transactions_router, tags=["transactions"])
