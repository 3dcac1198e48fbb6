"""
Webhook routes - Payment provider only (HMAC signed)
"""

from fastapi import APIRouter
from eventswap.infrastructure.settings import get_settings
from eventswap.api.webhooks.payments import router as payments_router

settings = get_settings()
router = APIRouter(prefix=settings.WEBHOOKS_PREFIX, tags=["webhooks"])

router.include_router(payments_router)
