"""Usage accounting.

Two kinds of counters feed quota decisions:

* durable lifetime counters on the user record (résumés created, exports per
  format, lifetime AI requests), bumped with a single atomic SQL update;
* ephemeral AI counters in the counter store, one per local day
  (``ai:count:{user_id}:{YYYY-MM-DD}``) and one per month
  (``ai:count:{user_id}:{YYYY-MM}``), each expiring at its boundary.

Quota decisions never fail open: a counter store fault surfaces as
CollaboratorUnavailableError. Check and increment are separate calls, so a
caller that retries an increment counts twice; idempotency is the caller's
concern.
"""

from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

from resumegate.core.exceptions import (
    CapabilityDeniedError,
    CollaboratorUnavailableError,
    NotFoundError,
    QuotaExceededError,
)
from resumegate.core.limits import CounterStore, CounterStoreError
from resumegate.core.logging import get_logger
from resumegate.core.time import (
    Clock,
    day_key,
    local_now,
    month_key,
    month_start,
    seconds_until_midnight,
    seconds_until_month_end,
)
from resumegate.db.users import UserStore
from resumegate.services.entitlements import (
    COUNTED_EXPORT_FORMATS,
    ExportFormat,
    PermissionSet,
    UsageKind,
    UserSnapshot,
)
from resumegate.services.permission_cache import PermissionCache
from resumegate.services.permission_service import limits_for, resolve

logger = get_logger(__name__)


def ai_day_key(user_id: str, now) -> str:
    return f"ai:count:{user_id}:{day_key(now)}"


def ai_month_key(user_id: str, now) -> str:
    return f"ai:count:{user_id}:{month_key(now)}"


class UsageService:
    def __init__(
        self,
        store: CounterStore,
        users: UserStore,
        cache: PermissionCache,
        clock: Clock = local_now,
    ):
        self._store = store
        self._users = users
        self._cache = cache
        self._clock = clock

    async def _load(self, user_id: str) -> Tuple[UserSnapshot, PermissionSet]:
        user = await self._cache.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user, resolve(user).permissions

    async def _ai_counts(self, user_id: str) -> Tuple[int, int]:
        now = self._clock()
        try:
            day = await self._store.get(ai_day_key(user_id, now))
            month = await self._store.get(ai_month_key(user_id, now))
        except CounterStoreError as exc:
            logger.error(
                "Counter store unavailable during quota check",
                data={"user_id": user_id, "error": str(exc)},
            )
            raise CollaboratorUnavailableError(collaborator="counter_store") from exc
        return int(day or 0), int(month or 0)

    async def _bump(self, key: str, ttl_seconds: int) -> int:
        count = await self._store.increment(key)
        if count == 1:
            await self._store.expire(key, ttl_seconds)
        return count

    def _quota_denial(
        self, kind: UsageKind, user: UserSnapshot, perms: PermissionSet, day: int, month: int
    ) -> Optional[QuotaExceededError]:
        if kind is UsageKind.AI_REQUEST:
            quota = perms.ai_requests
            if day >= quota.max_per_day:
                return QuotaExceededError(
                    f"You have reached your daily limit for AI requests ({quota.max_per_day} per day)",
                    kind=kind.value,
                    limit=quota.max_per_day,
                )
            if month >= quota.max_per_month:
                return QuotaExceededError(
                    f"You have reached your monthly limit for AI requests ({quota.max_per_month} per month)",
                    kind=kind.value,
                    limit=quota.max_per_month,
                )
            return None

        if kind is UsageKind.RESUME:
            if user.usage.created_resumes >= perms.max_resumes:
                return QuotaExceededError(
                    f"You have reached your resume limit ({perms.max_resumes}). "
                    "Please upgrade your plan for more.",
                    kind=kind.value,
                    limit=perms.max_resumes,
                )
            return None

        fmt = kind.export_format
        if fmt not in COUNTED_EXPORT_FORMATS:
            return None
        limit = limits_for(user.subscription).export_limit
        if limit is not None and user.usage.exports_count.get(fmt.value, 0) >= limit:
            return QuotaExceededError(
                f"You have reached your {fmt.value} export limit ({limit})",
                kind=kind.value,
                limit=limit,
            )
        return None

    async def enforce_quota(self, user_id: str, kind: UsageKind) -> None:
        """Raise if ``kind`` cannot be consumed right now; the message states the limit."""
        kind = UsageKind(kind)
        user, perms = await self._load(user_id)

        fmt = kind.export_format
        if fmt is not None and fmt.value not in perms.allowed_export_formats:
            raise CapabilityDeniedError(
                f"Export format '{fmt.value}' is not available on your plan",
                resource=f"export_{fmt.value}",
            )

        day = month = 0
        if kind is UsageKind.AI_REQUEST:
            day, month = await self._ai_counts(user_id)

        denial = self._quota_denial(kind, user, perms, day, month)
        if denial is not None:
            raise denial

    async def check_quota(self, user_id: str, kind: UsageKind) -> bool:
        try:
            await self.enforce_quota(user_id, kind)
        except (QuotaExceededError, CapabilityDeniedError):
            return False
        return True

    async def increment(self, user_id: str, kind: UsageKind) -> None:
        """Record one unit of consumption for ``kind``."""
        kind = UsageKind(kind)

        if kind is UsageKind.AI_REQUEST:
            now = self._clock()
            try:
                await self._bump(ai_day_key(user_id, now), seconds_until_midnight(now))
                await self._bump(ai_month_key(user_id, now), seconds_until_month_end(now))
            except CounterStoreError as exc:
                logger.error(
                    "Counter store unavailable while recording AI usage",
                    data={"user_id": user_id, "error": str(exc)},
                )
                raise CollaboratorUnavailableError(collaborator="counter_store") from exc
            self._users.increment_usage(user_id, kind)
            await self._cache.invalidate(user_id)
            await self.sync_ai_usage(user_id)
            return

        if kind is UsageKind.EXPORT_JSON:
            logger.debug("JSON export recorded without a durable counter", data={"user_id": user_id})
            return

        self._users.increment_usage(user_id, kind)
        await self._cache.invalidate(user_id)

    async def sync_ai_usage(self, user_id: str) -> PermissionSet:
        """Refresh the carried ``used_*`` / ``last_reset_*`` fields from the live counters.

        The counters are keyed by local day and month, so after a rollover they
        already start from zero; only the reset markers need moving.
        """
        user, perms = await self._load(user_id)
        day, month = await self._ai_counts(user_id)
        now = self._clock()
        today, this_month = now.date(), month_start(now)

        quota = replace(
            perms.ai_requests,
            used_today=day,
            used_this_month=month,
            last_reset_day=today,
            last_reset_month=this_month,
        )

        updated = replace(perms, ai_requests=quota)
        if updated != user.permissions:
            self._users.save_permissions(user_id, updated)
            await self._cache.invalidate(user_id)
        return updated

    async def usage_snapshot(self, user_id: str) -> Dict[str, Any]:
        """Current durable and ephemeral consumption next to the applicable limits."""
        user, perms = await self._load(user_id)
        day, month = await self._ai_counts(user_id)
        export_limit = limits_for(user.subscription).export_limit
        exports = {}
        for fmt in ExportFormat:
            counted = fmt in COUNTED_EXPORT_FORMATS
            exports[fmt.value] = {
                "allowed": fmt.value in perms.allowed_export_formats,
                "used": user.usage.exports_count.get(fmt.value, 0) if counted else None,
                "limit": export_limit if counted else None,
            }
        return {
            "resumes": {"used": user.usage.created_resumes, "limit": perms.max_resumes},
            "ai_requests": {
                "today": day,
                "this_month": month,
                "max_per_day": perms.ai_requests.max_per_day,
                "max_per_month": perms.ai_requests.max_per_month,
                "lifetime": user.usage.ai_requests_count,
            },
            "exports": exports,
        }
