"""CLI script to create a user and print a session token for it.

Usage:
    python -m resumegate.scripts.create_user --email jane@example.com [--admin]

Token issuance normally belongs to the login service; this exists for local
development and smoke tests.
"""

from __future__ import annotations

import argparse
import sys

from resumegate.auth.session import create_session
from resumegate.config import get_settings
from resumegate.db.database import create_all, get_engine, get_session_local
from resumegate.db.users import UserStore
from resumegate.services.entitlements import Plan, SubscriptionStatus
from resumegate.services.permission_service import compute_permissions


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a resumegate user")
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--admin", action="store_true", help="Grant admin role")
    args = parser.parse_args()

    settings = get_settings()
    create_all(get_engine())
    session_local = get_session_local()
    users = UserStore(session_local)

    if users.get_by_email(args.email):
        print(f"A user with email '{args.email}' already exists.", file=sys.stderr)
        sys.exit(1)

    user = users.create(
        args.email,
        is_admin=args.admin,
        permissions=compute_permissions(Plan.FREE, SubscriptionStatus.ACTIVE),
    )

    db = session_local()
    try:
        token = create_session(db, user.id, settings.session_ttl_seconds)
    finally:
        db.close()

    print(f"user_id={user.id}")
    print(f"session_token={token}")


if __name__ == "__main__":
    main()
