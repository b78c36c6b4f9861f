"""Quota-gated metering for résumé, AI and export consumption."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from resumegate.auth.access_control import general_rate_limit, record_usage
from resumegate.auth.dependencies import get_current_identity
from resumegate.auth.identity import Identity
from resumegate.services.entitlements import UsageKind

router = APIRouter(prefix="/usage", tags=["usage"])


@router.post("/{kind}", dependencies=[Depends(general_rate_limit())])
async def meter_usage(
    kind: UsageKind,
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> Dict[str, Any]:
    usage_service = request.app.state.usage_service
    await usage_service.enforce_quota(identity.account_id, kind)
    await record_usage(request, identity, kind)
    return {
        "kind": kind.value,
        "recorded": True,
        "usage": await usage_service.usage_snapshot(identity.account_id),
    }


@router.get("")
async def current_usage(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> Dict[str, Any]:
    return await request.app.state.usage_service.usage_snapshot(identity.account_id)
