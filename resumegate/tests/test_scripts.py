"""Tests for the operational CLI scripts."""

import json
import sys
from datetime import timedelta

import pytest

from resumegate.config import get_settings
from resumegate.core.time import utcnow
from resumegate.db import dispose_engine
from resumegate.db.database import create_all, get_engine, get_session_local
from resumegate.db.users import UserStore
from resumegate.services.entitlements import Plan, Subscription, SubscriptionStatus


@pytest.fixture
def script_db(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{(tmp_path / 'scripts.db').as_posix()}")
    monkeypatch.setenv("LIMITS_BACKEND", "memory")
    get_settings.cache_clear()
    dispose_engine()
    create_all(get_engine())
    yield UserStore(get_session_local())
    dispose_engine()
    get_settings.cache_clear()


def _lapsed(users):
    expiry = utcnow() - timedelta(days=1)
    return users.create(
        "lapsed@example.com",
        subscription=Subscription(
            plan=Plan.PREMIUM_MONTHLY,
            status=SubscriptionStatus.ACTIVE,
            start_date=expiry - timedelta(days=30),
            expiry_date=expiry,
            auto_renew=False,
        ),
    )


@pytest.mark.asyncio
async def test_reconcile_dry_run_changes_nothing(script_db, capsys):
    from resumegate.scripts.reconcile_subscriptions import _run

    user = _lapsed(script_db)

    assert await _run(dry_run=True) == 0

    out = json.loads(capsys.readouterr().out)
    assert out == {"lapsed": [user.id], "due_for_renewal": []}
    assert script_db.get(user.id).subscription.plan is Plan.PREMIUM_MONTHLY


@pytest.mark.asyncio
async def test_reconcile_downgrades_lapsed(script_db, capsys):
    from resumegate.scripts.reconcile_subscriptions import _run

    user = _lapsed(script_db)

    assert await _run(dry_run=False) == 0

    assert json.loads(capsys.readouterr().out) == {"renewed": 0, "downgraded": 1, "failed": 0}
    assert script_db.get(user.id).subscription.plan is Plan.FREE


def test_create_user(script_db, monkeypatch, capsys):
    from resumegate.scripts import create_user

    monkeypatch.setattr(sys, "argv", ["create_user", "--email", "Ops@Example.com", "--admin"])
    create_user.main()

    lines = dict(line.split("=", 1) for line in capsys.readouterr().out.strip().splitlines())
    user = script_db.get(lines["user_id"])
    assert user.email == "ops@example.com"
    assert user.is_admin
    assert lines["session_token"]

    with pytest.raises(SystemExit) as exc_info:
        create_user.main()
    assert exc_info.value.code == 1
