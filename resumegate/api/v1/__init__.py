"""v1 API router.

Services hold the gating logic; routers only handle HTTP.
"""

from fastapi import APIRouter

from resumegate.api.v1.admin import router as admin_router
from resumegate.api.v1.ai import router as ai_router
from resumegate.api.v1.entitlements import router as entitlements_router
from resumegate.api.v1.exports import router as exports_router
from resumegate.api.v1.subscription import router as subscription_router
from resumegate.api.v1.usage import router as usage_router

router = APIRouter(prefix="/v1")

router.include_router(entitlements_router)   # /v1/me
router.include_router(usage_router)          # /v1/usage
router.include_router(exports_router)        # /v1/exports
router.include_router(ai_router)             # /v1/ai
router.include_router(subscription_router)   # /v1/subscription
router.include_router(admin_router)          # /v1/admin
