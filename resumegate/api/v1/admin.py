"""Admin views over other accounts' entitlements."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, Request

from resumegate.api.v1.schemas import EntitlementsOut, entitlements_out
from resumegate.auth.access_control import require_capability
from resumegate.auth.capabilities import Action, Resources, Scope
from resumegate.auth.identity import Identity
from resumegate.core.exceptions import NotFoundError

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users/{user_id}/entitlements", response_model=EntitlementsOut)
async def user_entitlements(
    user_id: str,
    request: Request,
    _admin: Identity = Depends(require_capability(Resources.USER, Action.READ, Scope.ANY)),
) -> EntitlementsOut:
    state = request.app.state
    user = await state.permission_cache.get(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    usage = await state.usage_service.usage_snapshot(user_id)
    return entitlements_out(user, usage)


@router.get("/users/{user_id}/premium-access")
async def premium_access_log(
    user_id: str,
    request: Request,
    limit: int = Query(default=20, ge=1, le=100),
    _admin: Identity = Depends(require_capability(Resources.USER, Action.READ, Scope.ANY)),
) -> Dict[str, List[Dict[str, Any]]]:
    entries = await request.app.state.access_log.recent(user_id, limit)
    return {"entries": entries}
