"""
test_middleware.py — Tests for request/response middleware and error envelope

Verifies request ID generation and the standard error body produced by
main.py's exception handlers.

Called by: pytest
Depends on: app/main.py (middleware), tests/conftest.py (client fixture)
"""


def test_request_id_header_present(client):
    """Every response should include X-Request-ID."""
    resp = client.get("/health")
    assert "X-Request-ID" in resp.headers
    req_id = resp.headers["X-Request-ID"]
    assert len(req_id) == 8  # uuid4().hex[:8]


def test_request_id_unique_per_request(client):
    """Each request gets a distinct ID."""
    id1 = client.get("/health").headers["X-Request-ID"]
    id2 = client.get("/health").headers["X-Request-ID"]
    assert id1 != id2


def test_health_returns_ok(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"]


def test_404_uses_error_envelope(client):
    """Even error responses carry the request ID, in header and body."""
    resp = client.get("/nonexistent-route-xyz")
    assert resp.status_code == 404
    body = resp.json()
    assert body["status_code"] == 404
    assert body["request_id"] == resp.headers["X-Request-ID"]
    assert body["kind"] == "HTTPException"
    assert "detail" not in body


def test_validation_error_lists_fields(client):
    resp = client.post("/api/chat", json={})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "Validation error"
    assert body["kind"] == "ValidationError"
    assert any("message" in d["loc"] for d in body["detail"])


def test_domain_error_names_its_kind(client):
    """A VantageError keeps its status and reports its class as the kind."""
    resp = client.post("/api/qbo/sync", json={"companyId": "acme-co"})
    assert resp.status_code == 400
    body = resp.json()
    assert body == {
        "error": "QuickBooks not connected",
        "status_code": 400,
        "kind": "NotConnectedError",
        "request_id": resp.headers["X-Request-ID"],
    }


def test_error_response_from_exception():
    from app.exceptions import TokenExpiredError
    from app.schemas.errors import ErrorResponse

    body = ErrorResponse.from_exception(TokenExpiredError("Reconnect QuickBooks"), "abc12345")
    assert body.status_code == 401
    assert body.kind == "TokenExpiredError"
    assert body.model_dump(exclude_none=True) == {
        "error": "Reconnect QuickBooks",
        "status_code": 401,
        "kind": "TokenExpiredError",
        "request_id": "abc12345",
    }
