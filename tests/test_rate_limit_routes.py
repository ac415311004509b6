"""Integration tests for admission control through the HTTP stack.

Clients are identified through X-Forwarded-For (proxy trust enabled in the
``client`` fixture) so each test can act as a distinct network address.
"""

from fastapi.testclient import TestClient

from app.core.rate_limit import RATE_LIMIT_MESSAGE


def _as(ip: str, **headers: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip, **headers}


JSON = {"Content-Type": "application/json"}


def test_app_policy_admits_fifty_then_rejects(client: TestClient) -> None:
    statuses = [client.get("/", headers=_as("1.2.3.4")).status_code for _ in range(51)]

    assert statuses[:50] == [200] * 50
    assert statuses[50] == 429


def test_api_policy_admits_one_hundred_then_rejects(client: TestClient) -> None:
    for _ in range(100):
        assert client.get("/api/status", headers=_as("1.2.3.4", **JSON)).status_code == 200

    resp = client.get("/api/status", headers=_as("1.2.3.4", **JSON))
    assert resp.status_code == 429


def test_json_rejection_body(client: TestClient) -> None:
    for _ in range(50):
        client.get("/", headers=_as("1.2.3.4"))

    resp = client.get("/?page=2", headers=_as("1.2.3.4", **JSON))

    assert resp.status_code == 429
    assert resp.json() == {
        "status": "fail",
        "request_url": "/?page=2",
        "message": RATE_LIMIT_MESSAGE,
        "data": [],
    }


def test_html_rejection_without_json_content_type(client: TestClient) -> None:
    for _ in range(50):
        client.get("/", headers=_as("1.2.3.4"))

    resp = client.get("/", headers=_as("1.2.3.4"))

    assert resp.status_code == 429
    assert resp.headers["content-type"].startswith("text/html")
    assert "Too many requests" in resp.text
    assert RATE_LIMIT_MESSAGE not in resp.text


def test_json_content_type_with_parameters_gets_html(client: TestClient) -> None:
    for _ in range(50):
        client.get("/", headers=_as("1.2.3.4"))

    resp = client.get(
        "/", headers=_as("1.2.3.4", **{"Content-Type": "application/json; charset=utf-8"})
    )

    assert resp.status_code == 429
    assert resp.headers["content-type"].startswith("text/html")


def test_counter_resets_after_window(client: TestClient, fake_time) -> None:
    for _ in range(50):
        client.get("/", headers=_as("1.2.3.4"))
    assert client.get("/", headers=_as("1.2.3.4")).status_code == 429

    fake_time.advance(3600)

    assert client.get("/", headers=_as("1.2.3.4")).status_code == 200


def test_health_check_is_never_limited(client: TestClient) -> None:
    for _ in range(60):
        resp = client.get("/health-check", headers=_as("1.2.3.4"))
        assert resp.status_code == 200
        assert "RateLimit-Remaining" not in resp.headers

    # Health checks did not consume the app budget.
    resp = client.get("/", headers=_as("1.2.3.4"))
    assert resp.headers["RateLimit-Remaining"] == "49"


def test_health_check_allowed_after_client_is_throttled(client: TestClient) -> None:
    for _ in range(51):
        client.get("/", headers=_as("1.2.3.4"))

    resp = client.get("/health-check", headers=_as("1.2.3.4"))

    assert resp.status_code == 200
    assert resp.json() == {
        "status": "success",
        "request_url": "/health-check",
        "message": "ok",
        "data": [],
        "cache": None,
    }


def test_clients_are_limited_independently(client: TestClient) -> None:
    for _ in range(51):
        client.get("/", headers=_as("1.2.3.4"))

    assert client.get("/", headers=_as("5.6.7.8")).status_code == 200


def test_api_and_app_budgets_are_separate(client: TestClient) -> None:
    for _ in range(51):
        client.get("/", headers=_as("1.2.3.4"))

    assert client.get("/api/status", headers=_as("1.2.3.4")).status_code == 200


def test_standard_headers_on_allowed_response(client: TestClient) -> None:
    resp = client.get("/api/status", headers=_as("1.2.3.4"))

    assert resp.headers["RateLimit-Policy"] == "100;w=3600"
    assert resp.headers["RateLimit-Limit"] == "100"
    assert resp.headers["RateLimit-Remaining"] == "99"
    assert resp.headers["RateLimit-Reset"] == "3600"
    assert "X-RateLimit-Limit" not in resp.headers


def test_rejection_carries_retry_after(client: TestClient, fake_time) -> None:
    for _ in range(50):
        client.get("/", headers=_as("1.2.3.4"))

    fake_time.advance(600)
    resp = client.get("/", headers=_as("1.2.3.4", **JSON))

    assert resp.headers["Retry-After"] == "3000"
    assert resp.headers["RateLimit-Remaining"] == "0"


def test_legacy_headers_when_configured(make_app) -> None:
    client = TestClient(make_app(trust_proxy=True, standard_headers=False, legacy_headers=True))

    resp = client.get("/api/status", headers=_as("1.2.3.4"))

    assert resp.headers["X-RateLimit-Limit"] == "100"
    assert resp.headers["X-RateLimit-Remaining"] == "99"
    assert "RateLimit-Limit" not in resp.headers


def test_disabled_rate_limiting_admits_everything(make_app) -> None:
    client = TestClient(make_app(enabled=False, app_max=1))

    for _ in range(5):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "RateLimit-Limit" not in resp.headers


def test_socket_address_used_without_proxy_trust(make_app) -> None:
    client = TestClient(make_app(trust_proxy=False, app_max=1))

    assert client.get("/", headers=_as("1.1.1.1")).status_code == 200
    # Different forwarded address, same socket peer: still throttled.
    assert client.get("/", headers=_as("2.2.2.2")).status_code == 429


def test_status_endpoint_lists_policies(client: TestClient) -> None:
    resp = client.get("/api/status?cache=false", headers=_as("1.2.3.4"))

    body = resp.json()
    assert body["status"] == "success"
    assert body["request_url"] == "/api/status?cache=false"
    assert {p["name"]: p["max_requests"] for p in body["data"]} == {"api": 100, "app": 50}
    assert all(p["exempt_paths"] == ["/health-check"] for p in body["data"])


def test_openapi_documents_429(client: TestClient) -> None:
    schema = client.get("/openapi.json", headers=_as("1.2.3.4")).json()

    assert "429" in schema["paths"]["/api/status"]["get"]["responses"]
    assert "429" not in schema["paths"]["/health-check"]["get"]["responses"]
