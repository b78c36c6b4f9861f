"""Pytest configuration and fixtures for resumegate tests.

Time is fully controlled: one ``FakeClock`` drives the in-memory counter store
(TTL expiry), the rate limiter (burst timestamps), usage accounting (local day
and month boundaries) and the subscription service.
"""

import itertools
import os
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from resumegate.config import Settings, get_settings


def pytest_configure(config):
    """Configure test environment before any tests run.

    ENVIRONMENT=test and the memory backend are set before any settings are
    loaded so nothing reaches for Redis by accident.
    """
    config.addinivalue_line("markers", "security: Security-related tests (required gate)")
    config.addinivalue_line("markers", "integration: Integration tests requiring external services")

    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("LIMITS_BACKEND", "memory")
    get_settings.cache_clear()


class FakeClock:
    """Manually advanced clock exposing the three views the services use."""

    def __init__(self, start: datetime):
        self._now = start

    def time(self) -> float:
        return self._now.timestamp()

    def local(self) -> datetime:
        return self._now

    def utc(self) -> datetime:
        return self._now.astimezone(UTC).replace(tzinfo=None)

    def advance(self, seconds: float = 0, ms: float = 0) -> None:
        self._now += timedelta(seconds=seconds, milliseconds=ms)

    def set(self, moment: datetime) -> None:
        self._now = moment


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def store(clock):
    from resumegate.core.limits.memory import InMemoryCounterStore

    return InMemoryCounterStore(clock=clock.time)


@pytest.fixture
def settings(tmp_path):
    db_path = tmp_path / "resumegate.db"
    return Settings(
        _env_file=None,
        environment="test",
        limits_backend="memory",
        database_url=f"sqlite:///{db_path.as_posix()}",
    )


@pytest.fixture
def engine(settings):
    from resumegate.db.database import build_engine, create_all

    engine = build_engine(settings.database_url)
    create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    from resumegate.db.database import build_session_factory

    return build_session_factory(engine)


@pytest.fixture
def users(session_factory):
    from resumegate.db.users import UserStore

    return UserStore(session_factory)


@pytest.fixture
def cache(store, users):
    from resumegate.services.permission_cache import PermissionCache

    return PermissionCache(store, users)


@pytest.fixture
def usage(store, users, cache, clock):
    from resumegate.services.usage_service import UsageService

    return UsageService(store, users, cache, clock=clock.local)


@pytest.fixture
def limiter(store, clock):
    from resumegate.services.rate_limit_service import RateLimiter

    return RateLimiter(store, clock=clock.time)


@pytest.fixture
def subscriptions(users, cache, clock):
    from resumegate.services.subscription_service import SubscriptionService

    return SubscriptionService(users, cache, clock=clock.utc)


@pytest.fixture
def make_user(users):
    """Create users with freshly computed permissions."""
    from resumegate.services.entitlements import Subscription
    from resumegate.services.permission_service import compute_permissions, derive_tier

    counter = itertools.count(1)

    def _make(email=None, *, is_admin=False, subscription=None):
        subscription = subscription or Subscription()
        return users.create(
            email or f"user{next(counter)}@example.com",
            is_admin=is_admin,
            subscription=subscription,
            tier=derive_tier(subscription.plan, subscription.status),
            permissions=compute_permissions(subscription.plan, subscription.status),
        )

    return _make


@pytest.fixture
def app(settings, store, engine, clock):
    from resumegate.main import create_app

    return create_app(settings, counter_store=store, engine=engine, time_source=clock.time)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def issue_token(session_factory, settings):
    """Create a session for a user and return its bearer header."""
    from resumegate.auth.session import create_session

    def _issue(user_id):
        db = session_factory()
        try:
            token = create_session(db, user_id, settings.session_ttl_seconds)
        finally:
            db.close()
        return {"Authorization": f"Bearer {token}"}

    return _issue


class BrokenCounterStore:
    """Counter store whose every call fails like an unreachable Redis."""

    async def _fail(self, *args, **kwargs):
        from resumegate.core.limits import CounterStoreError

        raise CounterStoreError("connection refused")

    increment = expire = get_ttl = get = set_with_ttl = _fail
    push_front = trim_list = read_list = delete = exists = _fail

    async def aclose(self):
        return None


@pytest.fixture
def broken_store():
    return BrokenCounterStore()
