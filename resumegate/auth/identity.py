"""Authenticated identity and the provider interface that produces it."""

from dataclasses import dataclass
from typing import Optional, Protocol

from resumegate.auth.capabilities import Role
from resumegate.services.entitlements import SubscriptionStatus, Tier


@dataclass(frozen=True)
class Identity:
    account_id: str
    email: str
    role: Role
    tier: Tier
    subscription_status: SubscriptionStatus


class IdentityProvider(Protocol):
    """Turns an opaque bearer/session token into an Identity."""

    async def resolve(self, token: str) -> Optional[Identity]:
        ...
