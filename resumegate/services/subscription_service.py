"""Subscription lifecycle.

Every transition writes the new subscription together with a freshly computed
PermissionSet (usage bookkeeping carried over) and then invalidates the
user's cached snapshot. Timestamps are naive UTC, matching the database
columns.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from resumegate.core.exceptions import NotFoundError, SubscriptionStateError
from resumegate.core.logging import get_logger
from resumegate.core.time import Clock, add_months, utcnow
from resumegate.db.users import UserStore
from resumegate.services.entitlements import (
    Plan,
    Subscription,
    SubscriptionStatus,
    Tier,
    UserSnapshot,
)
from resumegate.services.permission_cache import PermissionCache
from resumegate.services.permission_service import compute_permissions, derive_tier

logger = get_logger(__name__)

RENEWAL_HORIZON = timedelta(hours=24)


class RenewalGateway(Protocol):
    """Charges a saved payment method for one more billing period."""

    async def renew(self, user: UserSnapshot) -> Optional[str]:
        """Return the new payment id, or None if the charge was declined."""
        ...


class DecliningRenewalGateway:
    """Default gateway for deployments without a payment integration."""

    async def renew(self, user: UserSnapshot) -> Optional[str]:
        logger.info("No payment integration configured; renewal declined", data={"user_id": user.id})
        return None


@dataclass
class ReconciliationReport:
    renewed: List[str] = field(default_factory=list)
    downgraded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "renewed": len(self.renewed),
            "downgraded": len(self.downgraded),
            "failed": len(self.failed),
        }


def period_end(plan: Plan, start: datetime) -> datetime:
    if plan is Plan.PREMIUM_YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


class SubscriptionService:
    def __init__(
        self,
        users: UserStore,
        cache: PermissionCache,
        *,
        renewal_gateway: Optional[RenewalGateway] = None,
        trial_duration_days: int = 14,
        clock: Clock = utcnow,
    ):
        self._users = users
        self._cache = cache
        self._gateway = renewal_gateway or DecliningRenewalGateway()
        self._trial_days = trial_duration_days
        self._clock = clock

    def _get(self, user_id: str) -> UserSnapshot:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def _apply(self, user: UserSnapshot, subscription: Subscription) -> UserSnapshot:
        tier = derive_tier(subscription.plan, subscription.status)
        permissions = compute_permissions(subscription.plan, subscription.status, user.permissions)
        updated = self._users.save_entitlements(user.id, subscription, tier, permissions)
        await self._cache.invalidate(user.id)
        return updated

    async def upgrade_to_premium(
        self,
        user_id: str,
        plan: Plan,
        payment_id: Optional[str] = None,
        payment_provider: Optional[str] = None,
    ) -> UserSnapshot:
        plan = Plan(plan)
        if not plan.is_premium:
            raise SubscriptionStateError("Upgrade requires a premium plan")
        user = self._get(user_id)
        now = self._clock()
        subscription = Subscription(
            plan=plan,
            status=SubscriptionStatus.ACTIVE,
            start_date=now,
            expiry_date=period_end(plan, now),
            trial_ends_at=None,
            auto_renew=True,
            has_trial=True,
            cancelled_at=None,
            payment_id=payment_id,
            payment_provider=payment_provider,
        )
        updated = await self._apply(user, subscription)
        logger.info(
            "Upgraded to premium",
            data={"user_id": user_id, "plan": plan.value, "expiry": subscription.expiry_date.isoformat()},
        )
        return updated

    async def downgrade_to_free(self, user_id: str) -> UserSnapshot:
        user = self._get(user_id)
        subscription = Subscription(
            plan=Plan.FREE,
            status=SubscriptionStatus.ACTIVE,
            start_date=self._clock(),
            expiry_date=None,
            auto_renew=False,
            has_trial=user.subscription.has_trial,
        )
        updated = await self._apply(user, subscription)
        logger.info("Downgraded to free", data={"user_id": user_id})
        return updated

    async def start_free_trial(self, user_id: str) -> UserSnapshot:
        user = self._get(user_id)
        current = user.subscription
        if current.has_trial:
            raise SubscriptionStateError("Free trial has already been used")
        if derive_tier(current.plan, current.status) is Tier.PREMIUM:
            raise SubscriptionStateError("A premium subscription is already active")
        now = self._clock()
        ends = now + timedelta(days=self._trial_days)
        subscription = Subscription(
            plan=Plan.PREMIUM_MONTHLY,
            status=SubscriptionStatus.TRIAL,
            start_date=now,
            expiry_date=ends,
            trial_ends_at=ends,
            auto_renew=False,
            has_trial=True,
        )
        updated = await self._apply(user, subscription)
        logger.info("Free trial started", data={"user_id": user_id, "trial_ends_at": ends.isoformat()})
        return updated

    async def cancel_auto_renewal(self, user_id: str) -> UserSnapshot:
        """Cancel the subscription; a cancelled plan resolves to free limits."""
        user = self._get(user_id)
        if not user.subscription.plan.is_premium:
            raise SubscriptionStateError("No active subscription found")
        subscription = replace(
            user.subscription,
            status=SubscriptionStatus.CANCELLED,
            auto_renew=False,
            cancelled_at=self._clock(),
        )
        updated = await self._apply(user, subscription)
        logger.info(
            "Auto-renewal cancelled",
            data={
                "user_id": user_id,
                "expiry": subscription.expiry_date.isoformat() if subscription.expiry_date else None,
            },
        )
        return updated

    async def enable_auto_renewal(self, user_id: str) -> UserSnapshot:
        user = self._get(user_id)
        current = user.subscription
        if not current.plan.is_premium:
            raise SubscriptionStateError("Cannot enable auto-renewal for non-premium subscription")
        if current.expiry_date is not None and current.expiry_date <= self._clock():
            raise SubscriptionStateError("Subscription has already expired")
        subscription = replace(
            current,
            status=SubscriptionStatus.ACTIVE,
            auto_renew=True,
            cancelled_at=None,
        )
        return await self._apply(user, subscription)

    def is_subscription_active(self, user_id: str) -> bool:
        sub = self._get(user_id).subscription
        if sub.status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL):
            return False
        return sub.expiry_date is None or sub.expiry_date > self._clock()

    async def _renew(self, user: UserSnapshot) -> bool:
        payment_id = await self._gateway.renew(user)
        if payment_id is None:
            return False
        now = self._clock()
        start = max(now, user.subscription.expiry_date or now)
        subscription = replace(
            user.subscription,
            status=SubscriptionStatus.ACTIVE,
            start_date=now,
            expiry_date=period_end(user.subscription.plan, start),
            trial_ends_at=None,
            cancelled_at=None,
            payment_id=payment_id,
        )
        await self._apply(user, subscription)
        return True

    async def process_expired_subscriptions(self, now: Optional[datetime] = None) -> ReconciliationReport:
        """Renew due auto-renewing plans and downgrade lapsed ones.

        Per-user failures are logged and counted; the sweep continues.
        """
        now = now or self._clock()
        report = ReconciliationReport()

        for user in self._users.find_renewal_candidates(now, RENEWAL_HORIZON):
            if not user.subscription.plan.is_premium:
                continue
            try:
                renewed = await self._renew(user)
            except Exception as exc:
                logger.error("Auto-renewal failed", data={"user_id": user.id, "error": str(exc)})
                report.failed.append(user.id)
                continue
            if renewed:
                report.renewed.append(user.id)
            logger.info("Auto-renewal attempted", data={"user_id": user.id, "success": renewed})

        for user in self._users.find_lapsed(now):
            try:
                if user.subscription.auto_renew and user.subscription.plan.is_premium:
                    if await self._renew(user):
                        report.renewed.append(user.id)
                        continue
                await self._apply(user, replace(user.subscription, status=SubscriptionStatus.EXPIRED))
                await self.downgrade_to_free(user.id)
                report.downgraded.append(user.id)
                logger.info(
                    "Subscription expired; downgraded to free",
                    data={"user_id": user.id, "plan": user.subscription.plan.value},
                )
            except Exception as exc:
                logger.error(
                    "Failed to process expired subscription",
                    data={"user_id": user.id, "error": str(exc)},
                )
                report.failed.append(user.id)

        logger.info("Subscription reconciliation complete", data=report.as_dict())
        return report
