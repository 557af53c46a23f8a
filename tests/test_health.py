from fastapi.testclient import TestClient

from shiptrack.core.health import HealthStatus, ServiceHealth
from shiptrack.main import app


def test_health_summary():
    client = TestClient(app)
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert client.get('/health/live').json() == {"status": "alive"}


def test_readiness_checks_the_database():
    client = TestClient(app)
    resp = client.get('/health/ready')
    assert resp.status_code in [200, 503]
    data = resp.json()
    assert data["checks"]["database:connectivity"]["status"] == "pass"
    assert "cache:connectivity" not in data["checks"]


def test_metrics():
    client = TestClient(app)
    data = client.get('/metrics').json()
    assert data["system"]["memory_rss_bytes"] > 0


def test_overall_status_takes_the_worst_check():
    assert ServiceHealth.overall_status({"a": {"status": "pass"}}) == HealthStatus.PASS
    assert ServiceHealth.overall_status({"a": {"status": "pass"}, "b": {"status": "warn"}}) == HealthStatus.WARN
    assert ServiceHealth.overall_status({"a": {"status": "warn"}, "b": {"status": "fail"}}) == HealthStatus.FAIL
