"""CLI script to expire lapsed subscriptions and attempt due renewals.

Usage:
    python -m resumegate.scripts.reconcile_subscriptions [--dry-run]

Intended to run from cron (hourly is plenty). Without a payment integration
every renewal is declined and lapsed premium plans are downgraded to free.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from resumegate.config import get_settings
from resumegate.core.limits.factory import get_counter_store
from resumegate.core.logging import setup_logging
from resumegate.core.time import utcnow
from resumegate.db.database import create_all, get_engine, get_session_local
from resumegate.db.users import UserStore
from resumegate.services.permission_cache import PermissionCache
from resumegate.services.subscription_service import RENEWAL_HORIZON, SubscriptionService


async def _run(dry_run: bool) -> int:
    settings = get_settings()
    create_all(get_engine())
    users = UserStore(get_session_local())
    now = utcnow()

    if dry_run:
        lapsed = users.find_lapsed(now)
        due = users.find_renewal_candidates(now, RENEWAL_HORIZON)
        print(json.dumps({"lapsed": [u.id for u in lapsed], "due_for_renewal": [u.id for u in due]}, indent=2))
        return 0

    store = get_counter_store(settings)
    try:
        cache = PermissionCache(store, users, ttl_seconds=settings.permission_cache_ttl_seconds)
        service = SubscriptionService(users, cache, trial_duration_days=settings.trial_duration_days)
        report = await service.process_expired_subscriptions(now)
    finally:
        await store.aclose()

    print(json.dumps(report.as_dict(), indent=2))
    return 1 if report.failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile expired resumegate subscriptions")
    parser.add_argument("--dry-run", action="store_true", help="List affected users without changing anything")
    args = parser.parse_args()

    setup_logging(level=get_settings().log_level, json_output=True)
    sys.exit(asyncio.run(_run(args.dry_run)))


if __name__ == "__main__":
    main()
