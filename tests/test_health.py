def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"


def test_health_detailed_reports_services(client):
    data = client.get("/health/detailed").json()
    assert data["services"]["database"]["status"] == "healthy"
    assert "email" in data["services"]
    assert "response_time_ms" in data


def test_probes(client):
    assert client.get("/health/ready").json() == {"status": "ready"}
    assert client.get("/health/live").json()["status"] == "alive"


def test_root(client):
    data = client.get("/").json()
    assert data["message"] == "EduBridge API"
    assert data["status"] == "running"


def test_correlation_id_header(client):
    resp = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert resp.headers["X-Correlation-ID"] == "abc-123"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/does-not-exist")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert "correlation_id" in body
