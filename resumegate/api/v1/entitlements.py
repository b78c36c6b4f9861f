"""Entitlements of the calling account."""

from fastapi import APIRouter, Depends, Request

from resumegate.api.v1.schemas import EntitlementsOut, entitlements_out
from resumegate.auth.dependencies import get_current_identity
from resumegate.auth.identity import Identity
from resumegate.core.exceptions import NotFoundError

router = APIRouter(prefix="/me", tags=["entitlements"])


@router.get("/entitlements", response_model=EntitlementsOut)
async def my_entitlements(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> EntitlementsOut:
    """Tier, subscription, resolved permissions and current usage."""
    state = request.app.state
    await state.usage_service.sync_ai_usage(identity.account_id)
    user = await state.permission_cache.get(identity.account_id)
    if user is None:
        raise NotFoundError("User not found")
    usage = await state.usage_service.usage_snapshot(identity.account_id)
    return entitlements_out(user, usage)
