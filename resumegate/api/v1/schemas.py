"""Request/response models for the v1 API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from resumegate.services.entitlements import Plan, UserSnapshot
from resumegate.services.permission_service import resolve, role_for


class UpgradeRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=32)
    plan: Plan
    payment_id: Optional[str] = Field(default=None, max_length=255)
    payment_provider: Optional[str] = Field(default=None, max_length=64)


class AIRequestBody(BaseModel):
    feature: str = Field(default="basic_ai", max_length=64)
    prompt: Optional[str] = None


class SubscriptionOut(BaseModel):
    plan: str
    status: str
    start_date: Optional[str] = None
    expiry_date: Optional[str] = None
    trial_ends_at: Optional[str] = None
    auto_renew: bool
    has_trial: bool
    cancelled_at: Optional[str] = None


class PermissionsOut(BaseModel):
    max_resumes: int
    max_custom_sections: int
    allowed_features: List[str]
    allowed_export_formats: List[str]
    allowed_sections: List[str]
    ai_requests: Dict[str, Any]


class EntitlementsOut(BaseModel):
    user_id: str
    role: str
    tier: str
    subscription: SubscriptionOut
    permissions: PermissionsOut
    usage: Dict[str, Any]


def subscription_out(user: UserSnapshot) -> SubscriptionOut:
    data = user.subscription.to_dict()
    data.pop("payment_id", None)
    data.pop("payment_provider", None)
    return SubscriptionOut(**data)


def entitlements_out(user: UserSnapshot, usage: Dict[str, Any]) -> EntitlementsOut:
    resolved = resolve(user)
    return EntitlementsOut(
        user_id=user.id,
        role=role_for(user).value,
        tier=resolved.tier.value,
        subscription=subscription_out(user),
        permissions=PermissionsOut(**resolved.permissions.to_dict()),
        usage=usage,
    )
