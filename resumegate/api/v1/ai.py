"""AI request admission: feature gate, volume limit, daily/monthly quota."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from resumegate.api.v1.schemas import AIRequestBody
from resumegate.auth.access_control import ai_rate_limit, record_usage, require_feature
from resumegate.auth.capabilities import Features
from resumegate.auth.identity import Identity
from resumegate.services.entitlements import UsageKind

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/requests", dependencies=[Depends(ai_rate_limit())])
async def submit_ai_request(
    body: AIRequestBody,
    request: Request,
    identity: Identity = Depends(require_feature(Features.BASIC_AI)),
) -> Dict[str, Any]:
    if body.feature != Features.BASIC_AI:
        await require_feature(body.feature)(request, identity)
    usage_service = request.app.state.usage_service
    await usage_service.enforce_quota(identity.account_id, UsageKind.AI_REQUEST)
    await record_usage(request, identity, UsageKind.AI_REQUEST)
    usage = await usage_service.usage_snapshot(identity.account_id)
    return {"accepted": True, "feature": body.feature, "ai_requests": usage["ai_requests"]}
