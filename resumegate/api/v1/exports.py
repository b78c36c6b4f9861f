"""Export gating. Rendering happens elsewhere; this only admits and meters."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from resumegate.auth.access_control import (
    check_export_format,
    load_permissions,
    record_usage,
    tier_rate_limit,
)
from resumegate.auth.dependencies import get_current_identity
from resumegate.auth.identity import Identity
from resumegate.core.logging import get_logger
from resumegate.services.entitlements import ExportFormat, UsageKind

logger = get_logger(__name__)

router = APIRouter(prefix="/exports", tags=["exports"])


@router.post("/{fmt}", dependencies=[Depends(tier_rate_limit())])
async def request_export(
    fmt: ExportFormat,
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> Dict[str, Any]:
    check_export_format(await load_permissions(request, identity), fmt)
    kind = UsageKind.for_export(fmt)
    await request.app.state.usage_service.enforce_quota(identity.account_id, kind)
    await record_usage(request, identity, kind)
    logger.info("Export admitted", data={"account_id": identity.account_id, "format": fmt.value})
    return {"format": fmt.value, "status": "accepted"}
