import csv
import io

import pytest
from httpx import AsyncClient, ASGITransport

from chat_analytics.core.database import init_models
from chat_analytics.main import create_app
from conftest import ADMIN_TOKEN, FakeCompletionClient, make_settings

AUTH = {"x-admin-token": ADMIN_TOKEN}


def chat_body(user="u_test_1", partner="DIRECT", session="s_test_1", message="hello"):
    return {
        "message": message,
        "anonymous_user_id": user,
        "session_id": session,
        "partner_code": partner,
    }


@pytest.mark.asyncio
async def test_health_check(client):
    """Test health endpoint"""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_chat_then_report_flow(client, completion):
    """Chat messages show up in every admin rollup"""
    response = await client.post("/api/chat", json=chat_body(user="u1", partner="DIRECT"))
    assert response.status_code == 200
    assert response.json() == {"reply": completion.reply}
    assert completion.messages == ["hello"]

    await client.post("/api/chat", json=chat_body(user="u2", partner="PARTNER_A"))
    await client.post("/api/chat", json=chat_body(user="u2", partner="PARTNER_A"))
    # Unknown partner is attributed to direct traffic
    await client.post("/api/chat", json=chat_body(user="u3", partner="PARTNER_Z"))

    response = await client.get("/api/admin/summary", headers=AUTH)
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["cards"]["total_users"] == 3
    assert data["cards"]["message_volume"] == 4
    # Events were written "now", and the anchor defaults to today
    assert data["cards"]["dau"] == 3
    assert data["cards"]["wau"] == 3

    groups = {(g["partner"], g["access_type"]): g for g in data["summary"]}
    assert set(groups) == {("DIRECT", "direct"), ("PARTNER_A", "partner")}
    assert groups[("DIRECT", "direct")]["total_users"] == 2
    assert groups[("PARTNER_A", "partner")]["message_volume"] == 2

    response = await client.get("/api/admin/timeseries", headers=AUTH)
    series = response.json()["timeseries"]
    assert len(series) == 1
    assert series[0]["messages"] == 4
    assert series[0]["dau"] == 3

    response = await client.get("/api/admin/users", headers=AUTH)
    users = response.json()["users"]
    assert {u["anonymous_user_id"] for u in users} == {"u1", "u2", "u3"}

    response = await client.get("/api/admin/export", headers=AUTH)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == ["partner", "access_type", "total_users", "message_volume", "last_event"]
    assert len(rows) == 3


@pytest.mark.asyncio
async def test_validation_errors(client):
    """Missing identity fields are a 400, not a schema error"""
    for field in ("anonymous_user_id", "session_id", "partner_code"):
        body = chat_body()
        del body[field]
        response = await client.post("/api/chat", json=body)
        assert response.status_code == 400
        assert field in response.json()["error"]

    response = await client.post("/api/chat", json=chat_body(user="   "))
    assert response.status_code == 400

    # Invalid date in an admin filter
    response = await client.get("/api/admin/summary?date_from=invalid", headers=AUTH)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_chat_rate_limit_per_user(client, clock):
    for _ in range(20):
        response = await client.post("/api/chat", json=chat_body(user="chatty"))
        assert response.status_code == 200

    response = await client.post("/api/chat", json=chat_body(user="chatty"))
    assert response.status_code == 429
    assert "slow down" in response.json()["error"]
    assert "X-RateLimit-Limit" in response.headers
    assert "Retry-After" in response.headers

    clock.advance(61)
    response = await client.post("/api/chat", json=chat_body(user="chatty"))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_chat_rate_limit_per_ip(client):
    for i in range(30):
        response = await client.post("/api/chat", json=chat_body(user=f"user_{i}"))
        assert response.status_code == 200

    response = await client.post("/api/chat", json=chat_body(user="someone_new"))
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_forwarded_for_is_ignored_by_default(client):
    """A client rotating X-Forwarded-For still shares one per-IP bucket"""
    for i in range(30):
        response = await client.post(
            "/api/chat",
            json=chat_body(user=f"user_{i}"),
            headers={"x-forwarded-for": f"10.0.0.{i}"},
        )
        assert response.status_code == 200

    response = await client.post(
        "/api/chat",
        json=chat_body(user="someone_new"),
        headers={"x-forwarded-for": "10.0.1.1"},
    )
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_forwarded_for_honored_behind_trusted_proxy(tmp_path):
    app = create_app(make_settings(tmp_path, trust_proxy_headers=True), completion_client=FakeCompletionClient())
    await init_models(app.state.engine)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for i in range(31):
                response = await client.post(
                    "/api/chat",
                    json=chat_body(user=f"user_{i}"),
                    headers={"x-forwarded-for": f"10.0.0.{i % 2}, 172.16.0.1"},
                )
                assert response.status_code == 200
    finally:
        await app.state.engine.dispose()


@pytest.mark.asyncio
async def test_oversized_identity_is_rejected(client):
    response = await client.post("/api/chat", json=chat_body(user="u" * 255, session="s" * 255))
    assert response.status_code == 200

    for body in (chat_body(user="u" * 256), chat_body(session="s" * 256)):
        response = await client.post("/api/chat", json=body)
        assert response.status_code == 400
        assert response.json()["ok"] is False

    response = await client.get("/api/admin/summary", headers=AUTH)
    assert response.json()["cards"]["message_volume"] == 1


@pytest.mark.asyncio
async def test_malformed_body_is_a_400(client, completion):
    body = chat_body()
    body["anonymous_user_id"] = 123
    response = await client.post("/api/chat", json=body)
    assert response.status_code == 400
    data = response.json()
    assert data["ok"] is False
    assert "anonymous_user_id" in data["error"]

    response = await client.post(
        "/api/chat", content="not json", headers={"content-type": "application/json"}
    )
    assert response.status_code == 400
    assert completion.messages == []


@pytest.mark.asyncio
async def test_rejected_chat_is_not_logged(client):
    for _ in range(21):
        await client.post("/api/chat", json=chat_body(user="chatty"))

    response = await client.get("/api/admin/summary", headers=AUTH)
    assert response.json()["cards"]["message_volume"] == 20


@pytest.mark.asyncio
async def test_storage_failure_does_not_block_reply(tmp_path):
    """No tables: the event write fails but the user still gets a reply"""
    completion = FakeCompletionClient(reply="still here")
    app = create_app(make_settings(tmp_path), completion_client=completion)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/api/chat", json=chat_body())
            assert response.status_code == 200
            assert response.json()["reply"] == "still here"

            # Read failures surface as a generic 500
            response = await client.get("/api/admin/summary", headers=AUTH)
            assert response.status_code == 500
            assert response.json() == {"ok": False, "error": "Internal server error"}

            response = await client.get("/api/admin/export", headers=AUTH)
            assert response.status_code == 500
    finally:
        await app.state.engine.dispose()


@pytest.mark.asyncio
async def test_upstream_failure_keeps_event(client, completion):
    from chat_analytics.core.errors import UpstreamError

    async def failing(message):
        raise UpstreamError()

    completion.complete = failing

    response = await client.post("/api/chat", json=chat_body(user="u_fail"))
    assert response.status_code == 502

    response = await client.get("/api/admin/users", headers=AUTH)
    assert [u["anonymous_user_id"] for u in response.json()["users"]] == ["u_fail"]


@pytest.mark.asyncio
async def test_partner_landing_route(client):
    response = await client.get("/p/PARTNER_A")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]

    for code in ("PARTNER_Z", "DIRECT", "bad%20code"):
        response = await client.get(f"/p/{code}")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_partner_landing_disabled_in_permissive_mode(tmp_path):
    app = create_app(make_settings(tmp_path, partner_codes=""), completion_client=FakeCompletionClient())
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/p/ANY_CODE")
            assert response.status_code == 404
    finally:
        await app.state.engine.dispose()
