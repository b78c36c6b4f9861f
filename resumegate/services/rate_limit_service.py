"""Rate limiting and abuse detection over the shared counter store.

Per scope key ``S`` with window ``W`` and nominal limit ``L``:

1. ``L`` drops to ``L // divisor`` while ``{S}:suspicious`` exists.
2. ``INCR {S}:count``; the TTL is set to ``W`` only when the count becomes 1,
   so sustained traffic cannot keep a window open forever.
3. The request timestamp (ms) is pushed onto ``{S}:track``, trimmed to the
   most recent ``track_size`` entries, and the list TTL refreshed to ``W``.
4. Two consecutive timestamps closer than ``burst_interval_ms`` latch
   ``{S}:suspicious`` for ``suspicious_ttl`` seconds and reject the request.
5. Otherwise the request is rejected when the count exceeds the effective limit.

Store failures never reject traffic: the limiter logs the fault and allows
the request (fail open). Composite evaluations are not atomic across keys.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from resumegate.config.settings import Settings
from resumegate.core.exceptions import (
    RateLimitedError,
    SuspiciousActivityError,
    rate_limit_headers,
)
from resumegate.core.limits import CounterStore, CounterStoreError
from resumegate.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named composite limit applied per IP, per e-mail and per e-mail+IP."""

    prefix: str
    max_requests: int
    window_seconds: int


REGISTER_POLICY = RateLimitPolicy("register", 5, 60 * 60)
LOGIN_POLICY = RateLimitPolicy("login", 5, 15 * 60)
RESEND_EMAIL_POLICY = RateLimitPolicy("resend-email", 3, 60 * 60)


@dataclass(frozen=True)
class ScopeResult:
    key: str
    count: int
    limit: int
    ttl: int
    burst_detected: bool

    @property
    def allowed(self) -> bool:
        return not self.burst_detected and self.count <= self.limit


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    suspicious: bool = False
    message: Optional[str] = None
    degraded: bool = False

    @property
    def headers(self) -> Dict[str, str]:
        return rate_limit_headers(self.limit, self.remaining, self.retry_after)

    def raise_for_rejection(self) -> None:
        if self.allowed:
            return
        error_cls = SuspiciousActivityError if self.suspicious else RateLimitedError
        raise error_cls(
            self.message,
            limit=self.limit,
            remaining=self.remaining,
            retry_after=self.retry_after,
        )


class RateLimiter:
    def __init__(
        self,
        store: CounterStore,
        *,
        burst_interval_ms: int = 100,
        track_size: int = 10,
        suspicious_divisor: int = 3,
        suspicious_ttl_seconds: int = 24 * 60 * 60,
        block_threshold: int = 3,
        block_ttl_seconds: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._burst_interval_ms = burst_interval_ms
        self._track_size = track_size
        self._divisor = suspicious_divisor
        self._suspicious_ttl = suspicious_ttl_seconds
        self._block_threshold = block_threshold
        self._block_ttl = block_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, store: CounterStore, settings: Settings, **kwargs) -> "RateLimiter":
        return cls(
            store,
            burst_interval_ms=settings.burst_interval_ms,
            track_size=settings.track_size,
            suspicious_divisor=settings.suspicious_divisor,
            suspicious_ttl_seconds=settings.suspicious_ttl_seconds,
            block_threshold=settings.block_threshold,
            block_ttl_seconds=settings.block_ttl_seconds,
            **kwargs,
        )

    async def is_suspicious(self, scope_key: str) -> bool:
        return await self._store.exists(f"{scope_key}:suspicious")

    async def flag_suspicious(self, scope_key: str, reason: str) -> None:
        await self._store.set_with_ttl(f"{scope_key}:suspicious", "1", self._suspicious_ttl)
        logger.warning(
            "Scope flagged suspicious",
            data={"scope": scope_key, "reason": reason, "ttl_seconds": self._suspicious_ttl},
        )

    async def effective_limit(self, limit: int, scope_keys: Iterable[str]) -> int:
        """``limit`` reduced by the suspicious divisor if any scope is flagged."""
        flags = await asyncio.gather(*(self.is_suspicious(key) for key in scope_keys))
        if any(flags):
            return limit // self._divisor
        return limit

    async def evaluate_scope(self, scope_key: str, limit: int, window_seconds: int) -> ScopeResult:
        """Count one request against ``scope_key`` using an already-effective limit.

        Raises CounterStoreError; callers decide how to fail.
        """
        count_key = f"{scope_key}:count"
        track_key = f"{scope_key}:track"

        count = await self._store.increment(count_key)
        if count == 1:
            await self._store.expire(count_key, window_seconds)

        now_ms = int(self._clock() * 1000)
        await self._store.push_front(track_key, str(now_ms))
        await self._store.trim_list(track_key, 0, self._track_size - 1)
        await self._store.expire(track_key, window_seconds)

        times = [int(t) for t in await self._store.read_list(track_key)]
        burst = any(
            times[i] - times[i + 1] < self._burst_interval_ms for i in range(len(times) - 1)
        )
        if burst:
            await self.flag_suspicious(scope_key, reason="burst")

        ttl = await self._store.get_ttl(count_key)
        return ScopeResult(
            key=scope_key,
            count=count,
            limit=limit,
            ttl=max(0, ttl),
            burst_detected=burst,
        )

    def _fail_open(self, limit: int, exc: Exception, scope: str) -> RateLimitDecision:
        logger.error(
            "Rate limiter store failure; allowing request",
            data={"scope": scope, "error": str(exc)},
        )
        return RateLimitDecision(
            allowed=True, limit=limit, remaining=limit, retry_after=0, degraded=True
        )

    async def check(
        self,
        scope_key: str,
        limit: int,
        window_seconds: int,
        message: Optional[str] = None,
    ) -> RateLimitDecision:
        """Single-scope limit with burst detection."""
        try:
            effective = await self.effective_limit(limit, [scope_key])
            result = await self.evaluate_scope(scope_key, effective, window_seconds)
        except CounterStoreError as exc:
            return self._fail_open(limit, exc, scope_key)

        return RateLimitDecision(
            allowed=result.allowed,
            limit=effective,
            remaining=max(0, effective - result.count),
            retry_after=result.ttl,
            message=None if result.allowed else message,
        )

    async def check_composite(
        self,
        policy: RateLimitPolicy,
        ip: str,
        email: Optional[str] = None,
    ) -> RateLimitDecision:
        """IP, e-mail and e-mail+IP scopes evaluated together; all must allow.

        Each rejection bumps ``{prefix}:blocked:{ip}``. Reaching the block
        threshold flags the IP and e-mail scopes suspicious.
        """
        email = (email or "").strip().lower() or None
        ip_key = f"{policy.prefix}:ip:{ip}"
        scope_keys: List[str] = [ip_key]
        email_key = None
        if email:
            email_key = f"{policy.prefix}:email:{email}"
            scope_keys += [email_key, f"{policy.prefix}:combined:{email}:{ip}"]

        try:
            flagged = [ip_key] + ([email_key] if email_key else [])
            effective = await self.effective_limit(policy.max_requests, flagged)
            if effective != policy.max_requests:
                logger.warning(
                    "Suspicious actor; reduced limit applied",
                    data={"policy": policy.prefix, "ip": ip, "email": email, "limit": effective},
                )

            results = await asyncio.gather(
                *(self.evaluate_scope(key, effective, policy.window_seconds) for key in scope_keys)
            )

            decision = RateLimitDecision(
                allowed=all(r.allowed for r in results),
                limit=effective,
                remaining=max(0, effective - max(r.count for r in results)),
                retry_after=max(r.ttl for r in results),
            )
            if decision.allowed:
                return decision
            return await self._escalate(policy, ip, ip_key, email_key, decision)
        except CounterStoreError as exc:
            return self._fail_open(policy.max_requests, exc, ip_key)

    async def _escalate(
        self,
        policy: RateLimitPolicy,
        ip: str,
        ip_key: str,
        email_key: Optional[str],
        decision: RateLimitDecision,
    ) -> RateLimitDecision:
        block_key = f"{policy.prefix}:blocked:{ip}"
        blocks = await self._store.increment(block_key)
        await self._store.expire(block_key, self._block_ttl)

        if blocks < self._block_threshold:
            return decision

        await self.flag_suspicious(ip_key, reason="repeated_blocks")
        if email_key:
            await self.flag_suspicious(email_key, reason="repeated_blocks")
        logger.warning(
            "Access blocked for suspicious activity",
            data={
                "policy": policy.prefix,
                "ip": ip,
                "email": email_key.split(":email:", 1)[-1] if email_key else None,
                "blocks": blocks,
            },
        )
        return RateLimitDecision(
            allowed=False,
            limit=decision.limit,
            remaining=decision.remaining,
            retry_after=decision.retry_after,
            suspicious=True,
            message=SuspiciousActivityError.default_message,
        )


def route_scope_key(identifier: str, method: str, path: str) -> str:
    """Key for per-route limits: user id when authenticated, otherwise client IP."""
    return f"rate-limit:{identifier}:{method.upper()}:{path}"


def ai_scope_key(user_id: str) -> str:
    return f"rate-limit:ai:{user_id}"
