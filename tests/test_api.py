"""Tests for the HTTP API."""

from fastapi.testclient import TestClient

from llm_json_cleaner.config import settings


def test_root(client: TestClient):
    """Test service info endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "LLM JSON Cleaner"


def test_health_check(client: TestClient):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_readiness_check(client: TestClient):
    """Test readiness check endpoint."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_metrics_include_requests_and_validation(client: TestClient, reset_stats):
    """Test that metrics count requests and report validation stats."""
    client.get("/health")
    data = client.get("/health/metrics").json()
    assert data["status"] == "ok"
    assert data["total_requests"] >= 1
    assert "validation" in data
    assert "success_rate" in data["validation"]


def test_metrics_count_repair_validations(client: TestClient, reset_stats):
    """Test that repaired output shows up in the validation stats."""
    client.post("/repair/pipeline", json={"text": '{"a":1'})
    validation = client.get("/health/metrics").json()["validation"]
    assert validation["total"] == 1
    assert validation["successful"] == 1


def test_repair(client: TestClient):
    """Test repairing a truncated object."""
    response = client.post("/repair", json={"text": '{"a":1'})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["cleaned_json"] == '{"a":1}'
    assert data["request_id"]
    assert data["changes"]
    assert "X-Request-ID" in response.headers
    assert "X-Response-Time" in response.headers


def test_repair_returns_reasoning(client: TestClient):
    """Test reasoning extraction through the API."""
    response = client.post("/repair", json={"text": '<think>T</think>{"a": 1}'})
    data = response.json()
    assert data["cleaned_json"] == '{"a": 1}'
    assert data["reasoning"] == "T"


def test_repair_extract_only(client: TestClient):
    """Test the clean and validate flags."""
    response = client.post(
        "/repair",
        json={"text": '```json\n{"a": 1,}\n```', "clean": False, "validate": False},
    )
    data = response.json()
    assert data["cleaned_json"] == '{"a": 1,}'
    assert data["success"] is True
    assert data["mode"] == "extract"


def test_repair_echoes_request_id(client: TestClient):
    """Test that a caller's request ID is reused."""
    response = client.post("/repair", json={"text": "[1 2]"}, headers={"X-Request-ID": "client-req-12345"})
    assert response.headers["X-Request-ID"] == "client-req-12345"


def test_repair_empty_input(client: TestClient):
    """Test that empty input is a client error."""
    response = client.post("/repair", json={"text": "  "})
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Empty input"
    assert "request_id" in data


def test_repair_input_too_large(client: TestClient, monkeypatch):
    """Test the input size limit."""
    monkeypatch.setattr(settings, "max_input_chars", 5)
    response = client.post("/repair/pipeline", json={"text": '{"a": 1234}'})
    assert response.status_code == 400
    assert response.json()["error"] == "Input too large"


def test_repair_missing_text(client: TestClient):
    """Test request validation errors."""
    response = client.post("/repair", json={})
    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "Validation error"
    assert data["detail"]
    assert "message" in data


def test_repair_pipeline(client: TestClient):
    """Test the synchronous pipeline endpoint."""
    response = client.post("/repair/pipeline", json={"text": '{"a": [1,2] "b": "x"}'})
    assert response.status_code == 200
    data = response.json()
    assert data["cleaned_json"] == '{"a": [1,2], "b": "x"}'
    assert data["mode"] == "pipeline"
    assert data["changes"][0]["change_type"] == "add_comma"


def test_diagnose(client: TestClient):
    """Test the diagnosis endpoint."""
    response = client.post("/diagnose", json={"text": '{"a": 1 "b": 2}'})
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is False
    assert data["specific_issues"]["comma"] is True
    assert data["repair_strategy"] == ["comma-fixer"]


def test_security_headers(client: TestClient):
    """Test security headers are set."""
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
