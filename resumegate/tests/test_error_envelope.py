"""The canonical error envelope on every failure path."""

from resumegate.core.error_contract import build_error_envelope, http_status_to_code


def test_http_status_to_code():
    assert http_status_to_code(404) == "E4040"
    assert http_status_to_code(401) == "E4010"


def test_build_error_envelope_merges_extra():
    payload = build_error_envelope(code="E2002", message="nope", request_id="abc", extra={"limit": 3})

    assert payload == {
        "error": {"code": "E2002", "message": "nope", "request_id": "abc"},
        "limit": 3,
    }


def test_unauthorized_uses_canonical_envelope(client):
    res = client.get("/v1/usage", headers={"X-Request-ID": "req-123"})

    assert res.status_code == 401
    body = res.json()
    assert body["error"] == {
        "code": "E2000",
        "message": "Not authenticated",
        "request_id": "req-123",
    }
    assert body["detail"] == "Not authenticated"
    assert res.headers["X-Request-ID"] == "req-123"


def test_unknown_route_uses_canonical_envelope(client):
    res = client.get("/v1/does-not-exist")

    assert res.status_code == 404
    assert res.json()["error"]["code"] == "E4040"
    assert "request_id" in res.json()["error"]


def test_validation_uses_canonical_envelope(client, make_user, issue_token):
    operator = make_user("ops@example.com", is_admin=True)
    target = make_user()
    headers = issue_token(operator.id)

    res = client.post(
        "/v1/subscription/upgrade", headers=headers, json={"user_id": target.id, "plan": "platinum"}
    )

    assert res.status_code == 422
    body = res.json()
    assert body["error"]["code"] == "E4220"
    assert body["error"]["message"] == "Validation error"
    assert body["errors"]


def test_rate_limited_envelope_carries_headers(client, clock, make_user, issue_token):
    headers = issue_token(make_user().id)
    client.post("/v1/usage/resume", headers=headers)
    clock.advance(ms=1)

    res = client.post("/v1/usage/resume", headers=headers)

    assert res.status_code == 429
    assert res.json()["error"]["code"] == "E1005"
    assert res.headers["X-RateLimit-Limit"] == "120"
    assert res.headers["Retry-After"] == "60"


def test_store_outage_is_503(settings, engine, clock, broken_store, make_user, issue_token):
    from fastapi.testclient import TestClient

    from resumegate.main import create_app

    app = create_app(settings, counter_store=broken_store, engine=engine, time_source=clock.time)
    headers = issue_token(make_user().id)

    with TestClient(app) as test_client:
        res = test_client.post("/v1/ai/requests", headers=headers, json={})

    assert res.status_code == 503
    assert res.json()["error"]["code"] == "E3000"
    assert res.json()["collaborator"] == "counter_store"
