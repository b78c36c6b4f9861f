"""SQLAlchemy database models."""

import secrets
from typing import List

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, relationship

from resumegate.core.time import utcnow
from resumegate.db.database import Base


def generate_id() -> str:
    """Generate a unique ID."""
    return secrets.token_urlsafe(16)


class User(Base):
    """User account with subscription state, derived permissions and durable usage."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Subscription
    subscription_plan = Column(String(32), default="free", nullable=False)
    subscription_status = Column(String(32), default="active", nullable=False)
    subscription_start_date = Column(DateTime, default=utcnow)
    subscription_expiry_date = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    auto_renew = Column(Boolean, default=False, nullable=False)
    has_trial = Column(Boolean, default=False, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)
    payment_id = Column(String(255), nullable=True)
    payment_provider = Column(String(64), nullable=True)

    # Derived tier and PermissionSet (JSON), rewritten on every subscription change
    tier = Column(String(16), default="free", nullable=False)
    permissions = Column(JSON, nullable=True)

    # Durable usage counters
    created_resumes = Column(Integer, default=0, nullable=False)
    ai_requests_count = Column(Integer, default=0, nullable=False)
    exports_pdf = Column(Integer, default=0, nullable=False)
    exports_docx = Column(Integer, default=0, nullable=False)
    exports_png = Column(Integer, default=0, nullable=False)

    sessions: Mapped[List["Session"]] = relationship(
        "Session", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_subscription_sweep", "subscription_status", "subscription_expiry_date"),
    )

    def __repr__(self) -> str:
        return f"<User {self.id[:8]}... {self.subscription_plan}/{self.subscription_status}>"


class Session(Base):
    """User session model for authentication."""

    __tablename__ = "sessions"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="sessions")

    def __repr__(self) -> str:
        return f"<Session {self.id[:8]}...>"
