"""Permission resolver.

Derives a user's PermissionSet from their subscription. The derivation is a
pure function of (plan, status): the same subscription always yields the same
ceilings, and the only state carried over from a previous PermissionSet is
the AI usage bookkeeping (``used_*`` / ``last_reset_*``), which belongs to
usage accounting.

A subscription counts as premium only while its plan is a paid plan and its
status is ``active`` or ``trial``. Cancelled and expired subscriptions
resolve to free limits immediately.
"""

from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Optional

from resumegate.auth.capabilities import Features, Role
from resumegate.services.entitlements import (
    AIRequestQuota,
    ExportFormat,
    PermissionSet,
    Plan,
    Subscription,
    SubscriptionStatus,
    Tier,
    UserSnapshot,
)


@dataclass(frozen=True)
class PlanLimits:
    max_resumes: int
    max_custom_sections: int
    ai_per_day: int
    ai_per_month: int
    export_formats: FrozenSet[str]
    # Lifetime exports per counted format; None means unlimited
    export_limit: Optional[int]


ALL_EXPORT_FORMATS = frozenset(fmt.value for fmt in ExportFormat)

PLAN_LIMITS: Dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(
        max_resumes=3,
        max_custom_sections=0,
        ai_per_day=10,
        ai_per_month=100,
        export_formats=frozenset({ExportFormat.PDF.value}),
        export_limit=5,
    ),
    Plan.PREMIUM_MONTHLY: PlanLimits(
        max_resumes=10,
        max_custom_sections=5,
        ai_per_day=50,
        ai_per_month=500,
        export_formats=ALL_EXPORT_FORMATS,
        export_limit=None,
    ),
    Plan.PREMIUM_YEARLY: PlanLimits(
        max_resumes=20,
        max_custom_sections=5,
        ai_per_day=100,
        ai_per_month=1000,
        export_formats=ALL_EXPORT_FORMATS,
        export_limit=None,
    ),
}

FREE_SECTIONS = frozenset({"personal", "summary", "education", "experience", "skills"})
PREMIUM_SECTIONS = FREE_SECTIONS | frozenset(
    {
        "projects",
        "certifications",
        "awards",
        "publications",
        "languages",
        "interests",
        "references",
        "custom",
    }
)

FREE_FEATURES = frozenset(
    {
        Features.BASIC_EDITOR,
        Features.BASIC_AI,
        Features.EXPORT_PDF,
        Features.BASIC_TEMPLATES,
        Features.BASIC_SUPPORT,
    }
)
PREMIUM_FEATURES = FREE_FEATURES | frozenset(
    {
        Features.ADVANCED_EDITOR,
        Features.ADVANCED_AI,
        Features.EXPORT_DOCX,
        Features.EXPORT_PNG,
        Features.EXPORT_JSON,
        Features.PREMIUM_TEMPLATES,
        Features.PRIORITY_SUPPORT,
        Features.ANALYTICS,
        Features.CUSTOM_SECTIONS,
    }
)

PREMIUM_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL})


@dataclass(frozen=True)
class ResolvedPermissions:
    tier: Tier
    permissions: PermissionSet


def derive_tier(plan: Plan, status: SubscriptionStatus) -> Tier:
    if Plan(plan).is_premium and SubscriptionStatus(status) in PREMIUM_STATUSES:
        return Tier.PREMIUM
    return Tier.FREE


def effective_plan(subscription: Subscription) -> Plan:
    """The plan whose limit table applies right now."""
    if derive_tier(subscription.plan, subscription.status) is Tier.PREMIUM:
        return subscription.plan
    return Plan.FREE


def limits_for(subscription: Subscription) -> PlanLimits:
    return PLAN_LIMITS[effective_plan(subscription)]


def compute_permissions(
    plan: Plan,
    status: SubscriptionStatus,
    previous: Optional[PermissionSet] = None,
) -> PermissionSet:
    """Build a fresh PermissionSet, carrying only AI usage from ``previous``."""
    tier = derive_tier(plan, status)
    limits = PLAN_LIMITS[Plan(plan) if tier is Tier.PREMIUM else Plan.FREE]
    quota = AIRequestQuota(max_per_day=limits.ai_per_day, max_per_month=limits.ai_per_month)
    if previous is not None:
        carried = previous.ai_requests
        quota = replace(
            quota,
            used_today=carried.used_today,
            used_this_month=carried.used_this_month,
            last_reset_day=carried.last_reset_day,
            last_reset_month=carried.last_reset_month,
        )
    premium = tier is Tier.PREMIUM
    return PermissionSet(
        max_resumes=limits.max_resumes,
        max_custom_sections=limits.max_custom_sections,
        allowed_features=PREMIUM_FEATURES if premium else FREE_FEATURES,
        allowed_export_formats=limits.export_formats,
        allowed_sections=PREMIUM_SECTIONS if premium else FREE_SECTIONS,
        ai_requests=quota,
    )


def resolve(user: UserSnapshot) -> ResolvedPermissions:
    """Resolve tier and permissions for a user snapshot."""
    sub = user.subscription
    return ResolvedPermissions(
        tier=derive_tier(sub.plan, sub.status),
        permissions=compute_permissions(sub.plan, sub.status, user.permissions),
    )


def role_for(user: UserSnapshot) -> Role:
    """Capability registry role for a user: admin accounts first, then tier."""
    if user.is_admin:
        return Role.ADMIN
    tier = derive_tier(user.subscription.plan, user.subscription.status)
    return Role.PREMIUM if tier is Tier.PREMIUM else Role.FREE
