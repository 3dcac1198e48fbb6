"""
Admin API routes - Operators only
"""

from fastapi import APIRouter
from eventswap.infrastructure.settings import get_settings
from eventswap.api.admin.override import router as override_router
from eventswap.api.admin.disputes import router as disputes_router
from eventswap.api.admin.fraud import router as fraud_router
from eventswap.api.admin.api_keys import router as api_keys_router

settings = get_settings()
router = APIRouter(prefix=settings.ADMIN_PREFIX, tags=["admin"])

router.include_router(override_router, tags=["admin-override"])
router.include_router(disputes_router, tags=["admin-disputes"])
router.include_router(fraud_router, tags=["admin-fraud"])
router.include_router(api_keys_router, tags=["admin-api-keys"])
