"""Entitlement value types shared by the resolver, accounting and cache."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class Plan(str, Enum):
    FREE = "free"
    PREMIUM_MONTHLY = "premium_monthly"
    PREMIUM_YEARLY = "premium_yearly"

    @property
    def is_premium(self) -> bool:
        return self is not Plan.FREE


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ExportFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    PNG = "png"
    JSON = "json"


class UsageKind(str, Enum):
    RESUME = "resume"
    AI_REQUEST = "ai_request"
    EXPORT_PDF = "export_pdf"
    EXPORT_DOCX = "export_docx"
    EXPORT_PNG = "export_png"
    EXPORT_JSON = "export_json"

    @property
    def export_format(self) -> Optional[ExportFormat]:
        if self.value.startswith("export_"):
            return ExportFormat(self.value[len("export_"):])
        return None

    @classmethod
    def for_export(cls, fmt: ExportFormat) -> "UsageKind":
        return cls(f"export_{ExportFormat(fmt).value}")


# Formats with a durable lifetime counter on the user record
COUNTED_EXPORT_FORMATS = (ExportFormat.PDF, ExportFormat.DOCX, ExportFormat.PNG)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class AIRequestQuota:
    """Daily and monthly AI ceilings plus the usage carried alongside them."""

    max_per_day: int
    max_per_month: int
    used_today: int = 0
    used_this_month: int = 0
    last_reset_day: Optional[date] = None
    last_reset_month: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_reset_day"] = _iso(self.last_reset_day)
        data["last_reset_month"] = _iso(self.last_reset_month)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIRequestQuota":
        return cls(
            max_per_day=int(data["max_per_day"]),
            max_per_month=int(data["max_per_month"]),
            used_today=int(data.get("used_today", 0)),
            used_this_month=int(data.get("used_this_month", 0)),
            last_reset_day=_parse_date(data.get("last_reset_day")),
            last_reset_month=_parse_date(data.get("last_reset_month")),
        )


@dataclass(frozen=True)
class PermissionSet:
    """Derived entitlements for one user. Never patched in place."""

    max_resumes: int
    max_custom_sections: int
    allowed_features: FrozenSet[str]
    allowed_export_formats: FrozenSet[str]
    allowed_sections: FrozenSet[str]
    ai_requests: AIRequestQuota

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_resumes": self.max_resumes,
            "max_custom_sections": self.max_custom_sections,
            "allowed_features": sorted(self.allowed_features),
            "allowed_export_formats": sorted(self.allowed_export_formats),
            "allowed_sections": sorted(self.allowed_sections),
            "ai_requests": self.ai_requests.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PermissionSet":
        return cls(
            max_resumes=int(data["max_resumes"]),
            max_custom_sections=int(data["max_custom_sections"]),
            allowed_features=frozenset(data.get("allowed_features", [])),
            allowed_export_formats=frozenset(data.get("allowed_export_formats", [])),
            allowed_sections=frozenset(data.get("allowed_sections", [])),
            ai_requests=AIRequestQuota.from_dict(data["ai_requests"]),
        )


@dataclass(frozen=True)
class Subscription:
    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    start_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    auto_renew: bool = False
    has_trial: bool = False
    cancelled_at: Optional[datetime] = None
    payment_id: Optional[str] = None
    payment_provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.value,
            "status": self.status.value,
            "start_date": _iso(self.start_date),
            "expiry_date": _iso(self.expiry_date),
            "trial_ends_at": _iso(self.trial_ends_at),
            "auto_renew": self.auto_renew,
            "has_trial": self.has_trial,
            "cancelled_at": _iso(self.cancelled_at),
            "payment_id": self.payment_id,
            "payment_provider": self.payment_provider,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subscription":
        return cls(
            plan=Plan(data.get("plan", Plan.FREE.value)),
            status=SubscriptionStatus(data.get("status", SubscriptionStatus.ACTIVE.value)),
            start_date=_parse_datetime(data.get("start_date")),
            expiry_date=_parse_datetime(data.get("expiry_date")),
            trial_ends_at=_parse_datetime(data.get("trial_ends_at")),
            auto_renew=bool(data.get("auto_renew", False)),
            has_trial=bool(data.get("has_trial", False)),
            cancelled_at=_parse_datetime(data.get("cancelled_at")),
            payment_id=data.get("payment_id"),
            payment_provider=data.get("payment_provider"),
        )


@dataclass(frozen=True)
class UsageRecord:
    """Durable lifetime counters. Monotonically non-decreasing."""

    created_resumes: int = 0
    ai_requests_count: int = 0
    exports_count: Dict[str, int] = field(
        default_factory=lambda: {fmt.value: 0 for fmt in COUNTED_EXPORT_FORMATS}
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created_resumes": self.created_resumes,
            "ai_requests_count": self.ai_requests_count,
            "exports_count": dict(self.exports_count),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageRecord":
        return cls(
            created_resumes=int(data.get("created_resumes", 0)),
            ai_requests_count=int(data.get("ai_requests_count", 0)),
            exports_count={k: int(v) for k, v in data.get("exports_count", {}).items()},
        )


@dataclass(frozen=True)
class UserSnapshot:
    """What the gating layer needs to know about a user; cached as JSON."""

    id: str
    email: str
    is_admin: bool = False
    is_active: bool = True
    subscription: Subscription = field(default_factory=Subscription)
    permissions: Optional[PermissionSet] = None
    usage: UsageRecord = field(default_factory=UsageRecord)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "is_admin": self.is_admin,
            "is_active": self.is_active,
            "subscription": self.subscription.to_dict(),
            "permissions": self.permissions.to_dict() if self.permissions else None,
            "usage": self.usage.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSnapshot":
        permissions = data.get("permissions")
        return cls(
            id=data["id"],
            email=data["email"],
            is_admin=bool(data.get("is_admin", False)),
            is_active=bool(data.get("is_active", True)),
            subscription=Subscription.from_dict(data.get("subscription", {})),
            permissions=PermissionSet.from_dict(permissions) if permissions else None,
            usage=UsageRecord.from_dict(data.get("usage", {})),
        )
