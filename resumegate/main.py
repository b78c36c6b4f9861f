"""
resumegate application.

FastAPI application wiring the capability registry, permission resolver,
usage accounting and rate limiter onto ``app.state``.
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI
from sqlalchemy.engine import Engine

from resumegate import __version__
from resumegate.api import health_router
from resumegate.api.v1 import router as v1_router
from resumegate.auth.capabilities import build_default_registry
from resumegate.auth.session import SessionIdentityProvider
from resumegate.config import Settings, get_settings
from resumegate.core import (
    RequestContextMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from resumegate.core.limits import CounterStore
from resumegate.core.limits.factory import get_counter_store
from resumegate.db.database import build_engine, build_session_factory, create_all
from resumegate.db.users import UserStore
from resumegate.services.audit_service import PremiumAccessLog
from resumegate.services.permission_cache import PermissionCache
from resumegate.services.rate_limit_service import RateLimiter
from resumegate.services.subscription_service import RenewalGateway, SubscriptionService
from resumegate.services.usage_service import UsageService

logger = get_logger(__name__)


def configure_state(
    app: FastAPI,
    settings: Settings,
    *,
    counter_store: Optional[CounterStore] = None,
    engine: Optional[Engine] = None,
    renewal_gateway: Optional[RenewalGateway] = None,
    time_source: Optional[Callable[[], float]] = None,
) -> None:
    """Build every collaborator once and hang it on ``app.state``.

    ``time_source`` (epoch seconds) drives the limiter, the access log and
    the accounting/subscription clocks; tests substitute a controllable one.
    """
    now = time_source or time.time

    def local_clock() -> datetime:
        return datetime.fromtimestamp(now()).astimezone()

    def utc_clock() -> datetime:
        return datetime.fromtimestamp(now(), UTC).replace(tzinfo=None)

    store = counter_store or get_counter_store(settings)
    engine = engine or build_engine(settings.database_url)
    session_factory = build_session_factory(engine)

    users = UserStore(session_factory)
    cache = PermissionCache(store, users, ttl_seconds=settings.permission_cache_ttl_seconds)

    state = app.state
    state.settings = settings
    state.counter_store = store
    state.engine = engine
    state.session_factory = session_factory
    state.user_store = users
    state.capability_registry = build_default_registry()
    state.permission_cache = cache
    state.identity_provider = SessionIdentityProvider(session_factory, cache)
    state.usage_service = UsageService(store, users, cache, clock=local_clock)
    state.rate_limiter = RateLimiter.from_settings(store, settings, clock=now)
    state.access_log = PremiumAccessLog(
        store,
        max_entries=settings.premium_access_log_size,
        ttl_seconds=settings.premium_access_log_ttl_seconds,
        clock=now,
    )
    state.subscription_service = SubscriptionService(
        users,
        cache,
        renewal_gateway=renewal_gateway,
        trial_duration_days=settings.trial_duration_days,
        clock=utc_clock,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings: Settings = _app.state.settings

    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting resumegate",
        data={
            "environment": settings.environment,
            "limits_backend": settings.limits_backend,
            "debug": settings.debug,
        },
    )

    create_all(_app.state.engine)
    _app.state.start_time = datetime.now(UTC)

    yield

    logger.info("Shutting down resumegate")
    await _app.state.counter_store.aclose()
    _app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    **overrides,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Keyword overrides are passed to ``configure_state``.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="resumegate",
        description="Feature gating, usage accounting and rate limiting for a résumé SaaS",
        version=__version__,
        lifespan=lifespan,
    )

    configure_state(app, settings, **overrides)

    # Exception handlers before middleware
    setup_exception_handlers(app)

    app.add_middleware(RequestContextMiddleware)

    app.include_router(health_router)
    app.include_router(v1_router)

    return app


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "resumegate.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
