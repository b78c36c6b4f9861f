"""HTTP tests for the gated v1 routes.

Every rate-limited request advances the clock first so consecutive calls are
never mistaken for a burst.
"""

from datetime import datetime

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from resumegate.auth.access_control import (
    ensure_can_access,
    general_rate_limit,
    login_rate_limit,
    require_export_format,
    require_quota,
    require_section,
)
from resumegate.auth.capabilities import Action, Resources, build_default_registry
from resumegate.auth.identity import Identity
from resumegate.core.exceptions import CapabilityDeniedError
from resumegate.services.entitlements import (
    ExportFormat,
    Plan,
    Subscription,
    SubscriptionStatus,
    Tier,
    UsageKind,
)
from resumegate.services.usage_service import ai_day_key


@pytest.fixture
def free_headers(make_user, issue_token):
    user = make_user("free@example.com")
    return user, issue_token(user.id)


@pytest.fixture
def premium_headers(make_user, issue_token):
    user = make_user("premium@example.com", subscription=Subscription(plan=Plan.PREMIUM_MONTHLY))
    return user, issue_token(user.id)


@pytest.fixture
def admin_headers(make_user, issue_token):
    user = make_user("admin@example.com", is_admin=True)
    return user, issue_token(user.id)


class TestAuthentication:
    def test_missing_token(self, client):
        res = client.get("/v1/me/entitlements")

        assert res.status_code == 401
        assert res.json()["error"]["code"] == "E2000"

    def test_unknown_token(self, client):
        res = client.get("/v1/me/entitlements", headers={"Authorization": "Bearer nope"})

        assert res.status_code == 401
        assert res.json()["detail"] == "Session expired or invalid"

    def test_session_cookie(self, client, free_headers, settings):
        _, headers = free_headers
        token = headers["Authorization"].split(" ", 1)[1]
        client.cookies.set(settings.session_cookie_name, token)

        assert client.get("/v1/me/entitlements").status_code == 200


class TestEntitlements:
    def test_free_user(self, client, free_headers):
        user, headers = free_headers

        body = client.get("/v1/me/entitlements", headers=headers).json()

        assert body["user_id"] == user.id
        assert body["role"] == "free"
        assert body["tier"] == "free"
        assert body["permissions"]["max_resumes"] == 3
        assert body["permissions"]["allowed_export_formats"] == ["pdf"]
        assert body["usage"]["resumes"] == {"used": 0, "limit": 3}
        assert "payment_id" not in body["subscription"]

    def test_upgrade_is_visible_immediately(self, client, free_headers, admin_headers):
        user, headers = free_headers
        _, admin = admin_headers
        client.get("/v1/me/entitlements", headers=headers)

        res = client.post(
            "/v1/subscription/upgrade",
            headers=admin,
            json={"user_id": user.id, "plan": "premium_yearly", "payment_id": "pi_9"},
        )
        assert res.status_code == 200
        assert res.json()["plan"] == "premium_yearly"

        body = client.get("/v1/me/entitlements", headers=headers).json()
        assert body["tier"] == "premium"
        assert body["permissions"]["max_resumes"] == 20

    def test_free_user_cannot_upgrade_themselves(self, client, free_headers):
        user, headers = free_headers

        res = client.post(
            "/v1/subscription/upgrade",
            headers=headers,
            json={"user_id": user.id, "plan": "premium_yearly", "payment_id": "forged"},
        )

        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2001"
        body = client.get("/v1/me/entitlements", headers=headers).json()
        assert body["tier"] == "free"
        assert body["subscription"]["plan"] == "free"

    def test_premium_user_cannot_upgrade_others(self, client, free_headers, premium_headers):
        user, _ = free_headers
        _, headers = premium_headers

        res = client.post(
            "/v1/subscription/upgrade",
            headers=headers,
            json={"user_id": user.id, "plan": "premium_monthly"},
        )

        assert res.status_code == 403

    def test_invalid_transition(self, client, free_headers):
        _, headers = free_headers

        res = client.post("/v1/subscription/cancel", headers=headers)

        assert res.status_code == 400
        assert res.json()["error"]["message"] == "No active subscription found"


class TestUsageRoutes:
    def test_resume_quota(self, client, clock, free_headers):
        _, headers = free_headers
        for expected in (1, 2, 3):
            clock.advance(seconds=1)
            res = client.post("/v1/usage/resume", headers=headers)
            assert res.status_code == 200
            assert res.json()["usage"]["resumes"]["used"] == expected
            assert res.headers["X-RateLimit-Limit"] == "120"

        clock.advance(seconds=1)
        res = client.post("/v1/usage/resume", headers=headers)

        assert res.status_code == 403
        body = res.json()
        assert body["error"]["code"] == "E2002"
        assert body["detail"] == "You have reached your resume limit (3). Please upgrade your plan for more."
        assert body["limit"] == 3

    def test_unknown_usage_kind(self, client, free_headers):
        _, headers = free_headers

        res = client.post("/v1/usage/spaceship", headers=headers)

        assert res.status_code == 422
        assert res.json()["error"]["code"] == "E4220"

    def test_route_burst_is_rejected(self, client, clock, free_headers):
        _, headers = free_headers
        client.post("/v1/usage/export_pdf", headers=headers)
        clock.advance(ms=10)

        res = client.post("/v1/usage/export_pdf", headers=headers)

        assert res.status_code == 429
        assert res.json()["detail"] == "Too many requests, please try again later."
        assert "Retry-After" in res.headers


class TestExports:
    def test_free_pdf_limit(self, client, clock, free_headers):
        _, headers = free_headers
        for _ in range(5):
            clock.advance(seconds=1)
            assert client.post("/v1/exports/pdf", headers=headers).status_code == 200

        clock.advance(seconds=1)
        res = client.post("/v1/exports/pdf", headers=headers)

        assert res.status_code == 403
        assert res.json()["detail"] == "You have reached your pdf export limit (5)"

    def test_free_docx_denied(self, client, clock, free_headers):
        _, headers = free_headers
        clock.advance(seconds=1)

        res = client.post("/v1/exports/docx", headers=headers)

        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2001"

    def test_premium_json_and_rate_limit_headers(self, client, clock, premium_headers):
        _, headers = premium_headers
        clock.advance(seconds=1)

        res = client.post("/v1/exports/json", headers=headers)

        assert res.status_code == 200
        assert res.headers["X-RateLimit-Limit"] == "600"
        assert res.headers["X-RateLimit-Remaining"] == "599"


class TestAIRequests:
    def test_free_user_basic_ai(self, client, clock, free_headers):
        _, headers = free_headers
        clock.advance(seconds=1)

        res = client.post("/v1/ai/requests", headers=headers, json={"prompt": "Tighten my summary"})

        assert res.status_code == 200
        assert res.json()["ai_requests"]["today"] == 1
        assert res.headers["X-RateLimit-Limit"] == "10"

    def test_free_user_advanced_ai_denied(self, client, clock, free_headers):
        _, headers = free_headers
        clock.advance(seconds=1)

        res = client.post("/v1/ai/requests", headers=headers, json={"feature": "advanced_ai"})

        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2001"

    def test_daily_quota(self, client, clock, store, free_headers):
        user, headers = free_headers
        now = datetime.fromtimestamp(clock.time()).astimezone()

        async def seed():
            await store.set_with_ttl(ai_day_key(user.id, now), "10", 3600)

        client.portal.call(seed)
        clock.advance(seconds=1)
        res = client.post("/v1/ai/requests", headers=headers, json={})

        assert res.status_code == 403
        assert res.json()["detail"] == "You have reached your daily limit for AI requests (10 per day)"

    def test_free_ai_rate_limit(self, client, clock, free_headers):
        _, headers = free_headers
        for _ in range(10):
            clock.advance(seconds=1)
            assert client.post("/v1/ai/requests", headers=headers, json={}).status_code == 200

        clock.advance(seconds=1)
        res = client.post("/v1/ai/requests", headers=headers, json={})

        assert res.status_code == 429
        assert res.json()["detail"] == (
            "Free tier AI request limit exceeded. Please upgrade to premium for more requests."
        )
        assert res.headers["X-RateLimit-Remaining"] == "0"

    def test_premium_access_is_logged(self, client, clock, premium_headers, admin_headers):
        premium_user, headers = premium_headers
        _, admin = admin_headers
        clock.advance(seconds=1)
        client.post(
            "/v1/ai/requests",
            headers={**headers, "User-Agent": "pytest-agent"},
            json={"feature": "advanced_ai"},
        )

        res = client.get(f"/v1/admin/users/{premium_user.id}/premium-access", headers=admin)

        assert res.status_code == 200
        entries = res.json()["entries"]
        assert len(entries) == 1
        assert entries[0]["feature"] == "ai_request"
        assert entries[0]["user_agent"] == "pytest-agent"
        assert entries[0]["path"] == "/v1/ai/requests"


class TestAdmin:
    def test_admin_reads_other_entitlements(self, client, free_headers, admin_headers):
        user, _ = free_headers
        _, admin = admin_headers

        res = client.get(f"/v1/admin/users/{user.id}/entitlements", headers=admin)

        assert res.status_code == 200
        assert res.json()["user_id"] == user.id

    def test_premium_user_is_not_admin(self, client, free_headers, premium_headers):
        user, _ = free_headers
        _, headers = premium_headers

        res = client.get(f"/v1/admin/users/{user.id}/entitlements", headers=headers)

        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2001"

    def test_unknown_user(self, client, admin_headers):
        _, admin = admin_headers

        res = client.get("/v1/admin/users/ghost/entitlements", headers=admin)

        assert res.status_code == 404


class TestMountedGuards:
    custom_sections = {"r1": 0, "r-full": 5}

    @pytest.fixture
    def guarded_client(self, app):
        async def count_custom(request, identity):
            return self.custom_sections[request.path_params["resume_id"]]

        @app.post("/auth/login")
        async def login(_limit=Depends(login_rate_limit)):
            return {"ok": True}

        @app.post("/resumes/{resume_id}/sections/custom")
        async def add_custom_section(
            resume_id: str, _identity=Depends(require_section("custom", count_custom))
        ):
            return {"resume_id": resume_id}

        @app.post("/resumes")
        async def create_resume(_identity=Depends(require_quota(UsageKind.RESUME))):
            return {"created": True}

        @app.post("/resumes/import")
        async def import_resume(_limit=Depends(general_rate_limit(limit=0))):
            return {"imported": True}

        @app.get("/resumes/r1/export.docx")
        async def export_docx(_identity=Depends(require_export_format(ExportFormat.DOCX))):
            return {"format": "docx"}

        with TestClient(app) as test_client:
            yield test_client

    def test_login_escalation(self, guarded_client, clock):
        payload = {"email": "mallory@example.com", "password": "hunter22"}
        statuses = []
        for _ in range(7):
            clock.advance(seconds=2)
            statuses.append(guarded_client.post("/auth/login", json=payload))

        assert [r.status_code for r in statuses[:5]] == [200] * 5
        assert statuses[0].headers["X-RateLimit-Remaining"] == "4"
        assert statuses[5].status_code == 429
        assert statuses[5].json()["error"]["code"] == "E1005"

        clock.advance(seconds=2)
        res = guarded_client.post("/auth/login", json=payload)
        assert res.status_code == 429
        assert res.json()["error"]["code"] == "E1007"
        assert res.json()["detail"] == "Access temporarily blocked due to suspicious activity"
        assert int(res.headers["Retry-After"]) > 0

    def test_custom_sections(self, guarded_client, free_headers, premium_headers):
        _, free = free_headers
        _, premium = premium_headers

        assert guarded_client.post("/resumes/r1/sections/custom", headers=free).status_code == 403
        assert guarded_client.post("/resumes/r1/sections/custom", headers=premium).status_code == 200

        res = guarded_client.post("/resumes/r-full/sections/custom", headers=premium)
        assert res.status_code == 403
        assert res.json()["detail"] == "You have reached your custom section limit (5)"

    def test_custom_section_count_ignores_client_input(self, guarded_client, premium_headers):
        _, premium = premium_headers

        res = guarded_client.post(
            "/resumes/r-full/sections/custom", headers=premium, params={"existing_custom": 0}
        )

        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2002"

    def test_custom_section_guard_needs_counter(self):
        with pytest.raises(ValueError):
            require_section("custom")

    def test_zero_limit_is_not_replaced_by_default(self, guarded_client, free_headers):
        _, headers = free_headers

        res = guarded_client.post("/resumes/import", headers=headers)

        assert res.status_code == 429
        assert res.headers["X-RateLimit-Limit"] == "0"

    def test_quota_guard(self, guarded_client, users, free_headers):
        user, headers = free_headers
        for _ in range(3):
            users.increment_usage(user.id, UsageKind.RESUME)

        res = guarded_client.post("/resumes", headers=headers)

        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2002"

    def test_export_format_guard(self, guarded_client, free_headers, premium_headers):
        _, free = free_headers
        _, premium = premium_headers

        assert guarded_client.get("/resumes/r1/export.docx", headers=free).status_code == 403
        assert guarded_client.get("/resumes/r1/export.docx", headers=premium).status_code == 200


class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["counter_store"] == "ok"
        assert body["database"] == "ok"


class TestOwnership:
    def _identity(self, role, account_id="u1"):
        return Identity(
            account_id=account_id,
            email=f"{account_id}@example.com",
            role=role,
            tier=Tier.FREE,
            subscription_status=SubscriptionStatus.ACTIVE,
        )

    def test_owner_may_edit_own_resume(self):
        registry = build_default_registry()
        ensure_can_access(registry, self._identity("free"), Resources.RESUME, Action.UPDATE, owner_id="u1")

    def test_non_owner_is_denied(self):
        registry = build_default_registry()
        with pytest.raises(CapabilityDeniedError):
            ensure_can_access(registry, self._identity("premium"), Resources.RESUME, Action.UPDATE, owner_id="u2")

    def test_admin_may_edit_any_resume(self):
        registry = build_default_registry()
        ensure_can_access(registry, self._identity("admin"), Resources.RESUME, Action.DELETE, owner_id="u2")
