"""User store: the durable side of subscriptions, permissions and usage."""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import sessionmaker

from resumegate.core.exceptions import CollaboratorUnavailableError, NotFoundError
from resumegate.core.logging import get_logger
from resumegate.db.database import session_scope
from resumegate.db.models import User
from resumegate.services.entitlements import (
    PermissionSet,
    Plan,
    Subscription,
    SubscriptionStatus,
    Tier,
    UsageKind,
    UsageRecord,
    UserSnapshot,
)

logger = get_logger(__name__)

USAGE_COLUMNS = {
    UsageKind.RESUME: User.created_resumes,
    UsageKind.AI_REQUEST: User.ai_requests_count,
    UsageKind.EXPORT_PDF: User.exports_pdf,
    UsageKind.EXPORT_DOCX: User.exports_docx,
    UsageKind.EXPORT_PNG: User.exports_png,
}


def snapshot_from_row(user: User) -> UserSnapshot:
    return UserSnapshot(
        id=user.id,
        email=user.email,
        is_admin=bool(user.is_admin),
        is_active=bool(user.is_active),
        subscription=Subscription(
            plan=Plan(user.subscription_plan),
            status=SubscriptionStatus(user.subscription_status),
            start_date=user.subscription_start_date,
            expiry_date=user.subscription_expiry_date,
            trial_ends_at=user.trial_ends_at,
            auto_renew=bool(user.auto_renew),
            has_trial=bool(user.has_trial),
            cancelled_at=user.cancelled_at,
            payment_id=user.payment_id,
            payment_provider=user.payment_provider,
        ),
        permissions=PermissionSet.from_dict(user.permissions) if user.permissions else None,
        usage=UsageRecord(
            created_resumes=user.created_resumes or 0,
            ai_requests_count=user.ai_requests_count or 0,
            exports_count={
                "pdf": user.exports_pdf or 0,
                "docx": user.exports_docx or 0,
                "png": user.exports_png or 0,
            },
        ),
    )


def _apply_subscription(user: User, subscription: Subscription) -> None:
    user.subscription_plan = subscription.plan.value
    user.subscription_status = subscription.status.value
    user.subscription_start_date = subscription.start_date
    user.subscription_expiry_date = subscription.expiry_date
    user.trial_ends_at = subscription.trial_ends_at
    user.auto_renew = subscription.auto_renew
    user.has_trial = subscription.has_trial
    user.cancelled_at = subscription.cancelled_at
    user.payment_id = subscription.payment_id
    user.payment_provider = subscription.payment_provider


class UserStore:
    """SQLAlchemy-backed user records.

    Database failures are reported as CollaboratorUnavailableError so the
    gating layer fails closed on them.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _scope(self) -> Iterator[DBSession]:
        try:
            with session_scope(self._session_factory) as db:
                yield db
        except SQLAlchemyError as exc:
            logger.error("User store unavailable", data={"error": str(exc)})
            raise CollaboratorUnavailableError(collaborator="user_store") from exc

    def _require(self, db: DBSession, user_id: str) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get(self, user_id: str) -> Optional[UserSnapshot]:
        with self._scope() as db:
            user = db.get(User, user_id)
            return snapshot_from_row(user) if user else None

    def get_by_email(self, email: str) -> Optional[UserSnapshot]:
        with self._scope() as db:
            user = db.execute(
                select(User).where(User.email == email.strip().lower())
            ).scalar_one_or_none()
            return snapshot_from_row(user) if user else None

    def create(
        self,
        email: str,
        *,
        is_admin: bool = False,
        subscription: Optional[Subscription] = None,
        tier: Tier = Tier.FREE,
        permissions: Optional[PermissionSet] = None,
    ) -> UserSnapshot:
        with self._scope() as db:
            user = User(email=email.strip().lower(), is_admin=is_admin)
            _apply_subscription(user, subscription or Subscription())
            user.tier = Tier(tier).value
            user.permissions = permissions.to_dict() if permissions else None
            db.add(user)
            db.flush()
            return snapshot_from_row(user)

    def save_entitlements(
        self,
        user_id: str,
        subscription: Subscription,
        tier: Tier,
        permissions: PermissionSet,
    ) -> UserSnapshot:
        """Persist a subscription change together with its recomputed permissions."""
        with self._scope() as db:
            user = self._require(db, user_id)
            _apply_subscription(user, subscription)
            user.tier = Tier(tier).value
            user.permissions = permissions.to_dict()
            db.flush()
            return snapshot_from_row(user)

    def save_permissions(self, user_id: str, permissions: PermissionSet) -> None:
        with self._scope() as db:
            user = self._require(db, user_id)
            user.permissions = permissions.to_dict()

    def increment_usage(self, user_id: str, kind: UsageKind) -> int:
        """Atomically bump a durable usage counter and return the new value."""
        column = USAGE_COLUMNS.get(UsageKind(kind))
        if column is None:
            raise ValueError(f"{kind} has no durable counter")
        with self._scope() as db:
            result = db.execute(
                update(User).where(User.id == user_id).values({column: column + 1})
            )
            if result.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found")
            return int(db.execute(select(column).where(User.id == user_id)).scalar_one())

    def find_lapsed(self, now: datetime) -> List[UserSnapshot]:
        """Users still marked active or trial whose expiry has passed."""
        with self._scope() as db:
            rows = db.execute(
                select(User).where(
                    User.subscription_status.in_(
                        [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIAL.value]
                    ),
                    User.subscription_expiry_date.is_not(None),
                    User.subscription_expiry_date < now,
                )
            ).scalars().all()
            return [snapshot_from_row(row) for row in rows]

    def find_renewal_candidates(self, now: datetime, horizon: timedelta) -> List[UserSnapshot]:
        """Active auto-renewing subscriptions expiring within ``horizon``."""
        with self._scope() as db:
            rows = db.execute(
                select(User).where(
                    User.subscription_status == SubscriptionStatus.ACTIVE.value,
                    User.auto_renew.is_(True),
                    User.subscription_expiry_date.is_not(None),
                    User.subscription_expiry_date >= now,
                    User.subscription_expiry_date <= now + horizon,
                )
            ).scalars().all()
            return [snapshot_from_row(row) for row in rows]
