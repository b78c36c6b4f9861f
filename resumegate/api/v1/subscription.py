"""Subscription transitions.

Upgrades are applied by an operator (or the billing integration acting as one)
once payment has been confirmed, so they need ``user:update:any``. The other
transitions are self-service for the calling account.
"""

from fastapi import APIRouter, Depends, Request

from resumegate.api.v1.schemas import SubscriptionOut, UpgradeRequest, subscription_out
from resumegate.auth.access_control import require_capability
from resumegate.auth.capabilities import Action, Resources, Scope
from resumegate.auth.dependencies import get_current_identity
from resumegate.auth.identity import Identity

router = APIRouter(prefix="/subscription", tags=["subscription"])


@router.post("/upgrade", response_model=SubscriptionOut)
async def upgrade(
    body: UpgradeRequest,
    request: Request,
    _operator: Identity = Depends(require_capability(Resources.USER, Action.UPDATE, Scope.ANY)),
) -> SubscriptionOut:
    user = await request.app.state.subscription_service.upgrade_to_premium(
        body.user_id,
        body.plan,
        payment_id=body.payment_id,
        payment_provider=body.payment_provider,
    )
    return subscription_out(user)


@router.post("/downgrade", response_model=SubscriptionOut)
async def downgrade(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> SubscriptionOut:
    user = await request.app.state.subscription_service.downgrade_to_free(identity.account_id)
    return subscription_out(user)


@router.post("/trial", response_model=SubscriptionOut)
async def start_trial(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> SubscriptionOut:
    user = await request.app.state.subscription_service.start_free_trial(identity.account_id)
    return subscription_out(user)


@router.post("/cancel", response_model=SubscriptionOut)
async def cancel(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> SubscriptionOut:
    user = await request.app.state.subscription_service.cancel_auto_renewal(identity.account_id)
    return subscription_out(user)


@router.post("/renew", response_model=SubscriptionOut)
async def enable_renewal(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> SubscriptionOut:
    user = await request.app.state.subscription_service.enable_auto_renewal(identity.account_id)
    return subscription_out(user)
