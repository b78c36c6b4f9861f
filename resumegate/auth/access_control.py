"""Per-route guards composing capabilities, permissions, quotas and rate limits.

Each guard is a FastAPI dependency (or dependency factory) that can be used on
its own. A failing guard raises a scoped ResumeGateError and the request stops
there. Rate-limit guards set ``X-RateLimit-Limit``, ``X-RateLimit-Remaining``
and ``Retry-After`` on allowed responses; rejected responses carry the same
headers through the exception handler.
"""

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request, Response

from resumegate.auth.capabilities import Action, CapabilityRegistry, Scope
from resumegate.auth.dependencies import get_current_identity, get_optional_identity
from resumegate.auth.identity import Identity
from resumegate.core.exceptions import CapabilityDeniedError, NotFoundError, QuotaExceededError
from resumegate.core.logging import get_logger
from resumegate.core.middleware import get_client_ip
from resumegate.services.entitlements import ExportFormat, PermissionSet, Tier, UsageKind
from resumegate.services.permission_service import resolve
from resumegate.services.rate_limit_service import (
    LOGIN_POLICY,
    REGISTER_POLICY,
    RESEND_EMAIL_POLICY,
    RateLimitDecision,
    RateLimitPolicy,
    ai_scope_key,
    route_scope_key,
)

logger = get_logger(__name__)


async def load_permissions(request: Request, identity: Identity) -> PermissionSet:
    user = await request.app.state.permission_cache.get(identity.account_id)
    if user is None:
        raise NotFoundError("User not found")
    return resolve(user).permissions


def ensure_can_access(
    registry: CapabilityRegistry,
    identity: Identity,
    resource: str,
    action: str,
    owner_id: Optional[str] = None,
) -> None:
    """Ownership-aware check: ``own`` scope when the caller owns the resource, else ``any``."""
    scope = Scope.OWN if owner_id is not None and owner_id == identity.account_id else Scope.ANY
    if not registry.can(identity.role, resource, action, scope):
        logger.info(
            "Capability denied",
            data={"account_id": identity.account_id, "resource": resource, "action": str(action), "scope": scope.value},
        )
        raise CapabilityDeniedError(
            f"You don't have permission to {Action(action).value} this {resource}",
            resource=resource,
        )


def require_capability(resource: str, action: str, scope: str = Scope.ANY):
    async def dependency(
        request: Request,
        identity: Identity = Depends(get_current_identity),
    ) -> Identity:
        registry: CapabilityRegistry = request.app.state.capability_registry
        if not registry.can(identity.role, resource, action, scope):
            raise CapabilityDeniedError(
                f"You don't have permission to {Action(action).value} {resource}",
                resource=resource,
            )
        return identity

    return dependency


def require_feature(feature: str):
    """Role grant (create, any) on the feature AND the feature in the user's PermissionSet."""

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_current_identity),
    ) -> Identity:
        registry: CapabilityRegistry = request.app.state.capability_registry
        granted = registry.can(identity.role, feature, Action.CREATE, Scope.ANY)
        if not granted or feature not in (await load_permissions(request, identity)).allowed_features:
            raise CapabilityDeniedError(
                f"Your plan does not include the '{feature}' feature",
                resource=feature,
            )
        return identity

    return dependency


def require_quota(kind: UsageKind):
    async def dependency(
        request: Request,
        identity: Identity = Depends(get_current_identity),
    ) -> Identity:
        await request.app.state.usage_service.enforce_quota(identity.account_id, kind)
        return identity

    return dependency


def require_export_format(fmt: ExportFormat):
    async def dependency(
        request: Request,
        identity: Identity = Depends(get_current_identity),
    ) -> Identity:
        check_export_format(await load_permissions(request, identity), fmt)
        return identity

    return dependency


def check_export_format(permissions: PermissionSet, fmt: ExportFormat) -> None:
    value = ExportFormat(fmt).value
    if value not in permissions.allowed_export_formats:
        raise CapabilityDeniedError(
            f"Export format '{value}' is not available on your plan",
            resource=f"export_{value}",
        )


def check_section(permissions: PermissionSet, section_type: str, existing_custom: int = 0) -> None:
    """Section gate; ``custom`` sections are additionally capped per résumé."""
    if section_type not in permissions.allowed_sections:
        raise CapabilityDeniedError(
            f"Section '{section_type}' is not available on your plan",
            resource=section_type,
        )
    if section_type == "custom":
        limit = permissions.max_custom_sections
        if limit <= 0:
            raise CapabilityDeniedError(
                "Custom sections are not available on your plan",
                resource="custom_sections",
            )
        if existing_custom >= limit:
            raise QuotaExceededError(
                f"You have reached your custom section limit ({limit})",
                kind="custom_section",
                limit=limit,
            )


CustomSectionCounter = Callable[[Request, Identity], Awaitable[int]]


def require_section(section_type: str, count_custom: Optional[CustomSectionCounter] = None):
    """Section gate for the route's résumé.

    ``count_custom`` reports how many custom sections the résumé already holds,
    read server-side from the route's own storage. It is required for
    ``custom`` sections.
    """
    if section_type == "custom" and count_custom is None:
        raise ValueError("require_section('custom') needs a count_custom callable")

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_current_identity),
    ) -> Identity:
        permissions = await load_permissions(request, identity)
        existing = await count_custom(request, identity) if count_custom is not None else 0
        check_section(permissions, section_type, existing)
        return identity

    return dependency


def _apply_headers(response: Response, decision: RateLimitDecision) -> None:
    for name, value in decision.headers.items():
        response.headers[name] = value


async def _request_email(request: Request) -> Optional[str]:
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("email"), str):
        return body["email"]
    return None


def rate_limit(policy: RateLimitPolicy):
    """Composite IP / e-mail / e-mail+IP limit for unauthenticated auth flows."""

    async def dependency(request: Request, response: Response) -> RateLimitDecision:
        ip, _ = get_client_ip(request)
        email = await _request_email(request)
        decision = await request.app.state.rate_limiter.check_composite(policy, ip, email)
        decision.raise_for_rejection()
        _apply_headers(response, decision)
        return decision

    return dependency


login_rate_limit = rate_limit(LOGIN_POLICY)
register_rate_limit = rate_limit(REGISTER_POLICY)
resend_email_rate_limit = rate_limit(RESEND_EMAIL_POLICY)


def _configured(value: Optional[int], default: int) -> int:
    return default if value is None else value


def _route_identifier(request: Request, identity: Optional[Identity]) -> str:
    if identity is not None:
        return identity.account_id
    ip, _ = get_client_ip(request)
    return ip


def general_rate_limit(limit: Optional[int] = None, window_seconds: int = 60):
    async def dependency(
        request: Request,
        response: Response,
        identity: Optional[Identity] = Depends(get_optional_identity),
    ) -> RateLimitDecision:
        ceiling = _configured(limit, request.app.state.settings.general_rate_limit_rpm)
        key = route_scope_key(_route_identifier(request, identity), request.method, request.url.path)
        decision = await request.app.state.rate_limiter.check(
            key, ceiling, window_seconds, message="Too many requests, please try again later."
        )
        decision.raise_for_rejection()
        _apply_headers(response, decision)
        return decision

    return dependency


def tier_rate_limit(
    regular_limit: Optional[int] = None,
    premium_limit: Optional[int] = None,
    window_seconds: int = 60,
):
    """Per-route limit whose ceiling depends on the caller's resolved tier."""

    async def dependency(
        request: Request,
        response: Response,
        identity: Optional[Identity] = Depends(get_optional_identity),
    ) -> RateLimitDecision:
        settings = request.app.state.settings
        premium = identity is not None and identity.tier is Tier.PREMIUM
        if premium:
            ceiling = _configured(premium_limit, settings.premium_rate_limit_rpm)
            message = "Premium rate limit exceeded. Please try again later."
        else:
            ceiling = _configured(regular_limit, settings.general_rate_limit_rpm)
            message = "Rate limit exceeded. Please upgrade to premium for higher limits."
        key = route_scope_key(_route_identifier(request, identity), request.method, request.url.path)
        decision = await request.app.state.rate_limiter.check(key, ceiling, window_seconds, message=message)
        decision.raise_for_rejection()
        _apply_headers(response, decision)
        return decision

    return dependency


def ai_rate_limit(
    free_limit: Optional[int] = None,
    premium_limit: Optional[int] = None,
    window_seconds: Optional[int] = None,
):
    """AI request volume per account; premium accesses land in the access log."""

    async def dependency(
        request: Request,
        response: Response,
        identity: Identity = Depends(get_current_identity),
    ) -> RateLimitDecision:
        settings = request.app.state.settings
        premium = identity.tier is Tier.PREMIUM
        if premium:
            ceiling = _configured(premium_limit, settings.ai_rate_limit_premium)
            message = "Premium AI request limit exceeded. Please try again tomorrow."
        else:
            ceiling = _configured(free_limit, settings.ai_rate_limit_free)
            message = "Free tier AI request limit exceeded. Please upgrade to premium for more requests."
        window = _configured(window_seconds, settings.ai_rate_limit_window_seconds)
        decision = await request.app.state.rate_limiter.check(
            ai_scope_key(identity.account_id), ceiling, window, message=message
        )
        decision.raise_for_rejection()
        if premium:
            ip, _ = get_client_ip(request)
            await request.app.state.access_log.record(
                identity.account_id,
                "ai_request",
                ip=ip,
                user_agent=request.headers.get("user-agent"),
                path=request.url.path,
                method=request.method,
            )
        _apply_headers(response, decision)
        return decision

    return dependency


async def record_usage(request: Request, identity: Identity, kind: UsageKind) -> None:
    """Count one unit of ``kind``; call once the handler's work has succeeded."""
    await request.app.state.usage_service.increment(identity.account_id, kind)
