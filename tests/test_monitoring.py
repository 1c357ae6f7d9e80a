from conftest import rma_body


def test_health(app):
    rv = app.test_client().get("/health")
    assert rv.status_code == 200
    assert rv.get_json()["status"] == "healthy"


def test_request_id_echoed(app):
    rv = app.test_client().get("/health", headers={"X-Request-Id": "abc-123"})
    assert rv.headers["X-Request-Id"] == "abc-123"


def test_json_404(app):
    rv = app.test_client().get("/nowhere")
    assert rv.status_code == 404
    assert rv.get_json()["error"] == "NotFound"


def test_business_metrics_count_rma_events(handler_client):
    before = handler_client.get("/monitoring/api/metrics").get_json()["data"]["rma"]["created"]
    handler_client.post("/api/rma", json=rma_body())
    data = handler_client.get("/monitoring/api/metrics").get_json()["data"]
    assert data["rma"]["created"] == before + 1
    assert "performance" in data


def test_prometheus_exposition(handler_client):
    handler_client.get("/api/analytics/sla")
    rv = handler_client.get("/monitoring/metrics")
    assert rv.status_code == 200
    text = rv.get_data(as_text=True)
    assert "http_requests_total" in text
    assert 'analytics_runs_total{report="sla"}' in text


def test_monitoring_health(app):
    body = app.test_client().get("/monitoring/api/health").get_json()
    assert "uptime_seconds" in body


def test_sites_register(manager_client, handler_client):
    rv = manager_client.post("/api/sites", json={"name": "INOX Forum", "region": "South"})
    assert rv.status_code == 201
    site_id = rv.get_json()["site"]["id"]
    assert manager_client.post("/api/sites", json={"name": "INOX Forum"}).status_code == 400
    assert handler_client.post("/api/sites", json={"name": "Other"}).status_code == 403

    manager_client.post("/api/projectors", json={"serialNumber": "SN-9", "siteId": site_id})
    site = handler_client.get(f"/api/sites/{site_id}").get_json()["site"]
    assert site["projectorCount"] == 1
    assert site["projectors"][0]["serialNumber"] == "SN-9"
    assert handler_client.get("/api/sites/999").status_code == 404
    assert handler_client.get(f"/api/projectors?siteId={site_id}").get_json()["count"] == 1
