"""Session tokens backing the default identity provider."""

import hashlib
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import sessionmaker

from resumegate.auth.identity import Identity
from resumegate.core.time import utcnow
from resumegate.db.models import Session
from resumegate.services.permission_cache import PermissionCache
from resumegate.services.permission_service import derive_tier, role_for


def _hash_token(token: str) -> str:
    """Hash a session token."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_session(db: DBSession, user_id: str, ttl_seconds: int) -> str:
    """Create a new session for a user and return the raw token.

    Only the token's hash is stored.
    """
    session_token = secrets.token_urlsafe(32)
    db.add(
        Session(
            user_id=user_id,
            token_hash=_hash_token(session_token),
            expires_at=utcnow() + timedelta(seconds=ttl_seconds),
        )
    )
    db.commit()
    return session_token


def validate_session(db: DBSession, session_token: str) -> Optional[Session]:
    """Validate a session token and return the session if valid."""
    if not session_token:
        return None

    return db.query(Session).filter(
        Session.token_hash == _hash_token(session_token),
        Session.expires_at > utcnow(),
    ).first()


def invalidate_session(db: DBSession, session_token: str) -> bool:
    if not session_token:
        return False

    result = db.query(Session).filter(Session.token_hash == _hash_token(session_token)).delete()
    db.commit()
    return result > 0


def cleanup_expired_sessions(db: DBSession) -> int:
    """Remove expired sessions."""
    result = db.query(Session).filter(Session.expires_at <= utcnow()).delete()
    db.commit()
    return result


class SessionIdentityProvider:
    """Resolves session tokens to identities via the sessions table and the permission cache."""

    def __init__(self, session_factory: sessionmaker, cache: PermissionCache):
        self._session_factory = session_factory
        self._cache = cache

    async def resolve(self, token: str) -> Optional[Identity]:
        db = self._session_factory()
        try:
            session = validate_session(db, token)
            user_id = session.user_id if session else None
        finally:
            db.close()
        if user_id is None:
            return None

        user = await self._cache.get(user_id)
        if user is None or not user.is_active:
            return None
        sub = user.subscription
        return Identity(
            account_id=user.id,
            email=user.email,
            role=role_for(user),
            tier=derive_tier(sub.plan, sub.status),
            subscription_status=sub.status,
        )
