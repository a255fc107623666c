from fastapi.testclient import TestClient


def _get_client() -> TestClient:
    from app.main import app

    return TestClient(app)


def test_health_endpoint_returns_ok() -> None:
    client = _get_client()
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_echoed_from_header() -> None:
    client = _get_client()
    req_id = "test-request-id-123"
    response = client.get("/health", headers={"X-Request-Id": req_id})

    assert response.headers.get("X-Request-Id") == req_id


def test_user_routes_require_bearer_token() -> None:
    client = _get_client()

    missing = client.get("/tasks")
    garbage = client.get("/tasks", headers={"Authorization": "Bearer not-a-jwt"})

    assert missing.status_code == 401
    assert missing.json()["detail"] == "Missing bearer token"
    assert missing.headers.get("X-Request-Id")
    assert garbage.status_code == 401
    assert garbage.json()["detail"] == "Invalid token"
