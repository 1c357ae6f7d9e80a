from datetime import timedelta

from conftest import rma_body
from rmatrack.records import utcnow


def _create(client, **overrides):
    rv = client.post("/api/rma", json=rma_body(**overrides))
    assert rv.status_code == 201, rv.get_json()
    return rv.get_json()["rma"]


def test_requires_login(app):
    client = app.test_client()
    rv = client.get("/api/rma")
    assert rv.status_code == 401
    assert rv.get_json()["error"] == "Unauthorized"


def test_bad_login(app):
    rv = app.test_client().post("/auth/login", json={"username": "handler", "password": "wrong"})
    assert rv.status_code == 401


def test_create_and_fetch(handler_client):
    rma = _create(handler_client, replacedPartName="Prism chipped")
    assert rma["rmaNumber"].startswith("RMA-")
    assert rma["caseStatus"] == "Under Review"
    assert rma["createdBy"] == "Hari Handler"
    assert rma["displayReplacedPartName"] == "Lamp Assembly"

    rv = handler_client.get(f"/api/rma/{rma['id']}")
    assert rv.status_code == 200
    assert rv.get_json()["rma"]["serialNumber"] == "SN-1001"

    rv = handler_client.get(f"/api/rma/number/{rma['rmaNumber']}")
    assert rv.get_json()["rma"]["id"] == rma["id"]


def test_create_validation(handler_client):
    rv = handler_client.post("/api/rma", json={"siteName": "X"})
    assert rv.status_code == 400
    body = rv.get_json()
    assert body["error"] == "ValidationError"
    assert "productName is required" in body["details"]

    rv = handler_client.post("/api/rma", json=rma_body(priority="Urgent"))
    assert rv.status_code == 400

    rv = handler_client.post("/api/rma", json=rma_body(ascompRaisedDate="2024-04-01"))
    assert rv.status_code == 400
    assert "earlier than customerErrorDate" in rv.get_json()["details"]


def test_duplicate_rma_number(handler_client):
    _create(handler_client, rmaNumber="RMA-CUSTOM-1")
    rv = handler_client.post("/api/rma", json=rma_body(rmaNumber="RMA-CUSTOM-1"))
    assert rv.status_code == 400


def test_technician_cannot_create(tech_client):
    rv = tech_client.post("/api/rma", json=rma_body())
    assert rv.status_code == 403


def test_missing_case_is_404(handler_client):
    assert handler_client.get("/api/rma/999").status_code == 404
    rv = handler_client.post("/api/rma/999/status", json={"caseStatus": "Sent to CDS"})
    assert rv.status_code == 404
    assert rv.get_json()["error"] == "NotFound"


def test_partial_update_keeps_other_fields(handler_client):
    rma = _create(handler_client)
    rv = handler_client.put(f"/api/rma/{rma['id']}", json={"trackingNumber": "TRK-9", "shippedDate": "2024-05-05"})
    assert rv.status_code == 200
    updated = rv.get_json()["rma"]
    assert updated["trackingNumber"] == "TRK-9"
    assert updated["siteName"] == "PVR Phoenix"
    assert updated["daysCountShippedToSite"] == 3

    activity = handler_client.get(f"/api/rma/{rma['id']}/activity").get_json()["activity"]
    assert activity[0]["action"] == "UPDATED"
    assert set(activity[0]["metadata"]["fields"]) == {"trackingNumber", "shippedDate"}


def test_status_change_logs_and_notifies_creator(handler_client, manager_client):
    rma = _create(handler_client)
    rv = manager_client.post(f"/api/rma/{rma['id']}/status", json={"caseStatus": "Sent to CDS"})
    assert rv.status_code == 200
    assert rv.get_json()["rma"]["caseStatus"] == "Sent to CDS"

    activity = handler_client.get(f"/api/rma/{rma['id']}/activity").get_json()["activity"]
    assert activity[0]["action"] == "STATUS_CHANGED"
    assert activity[0]["old_status"] == "Under Review"
    assert activity[0]["new_status"] == "Sent to CDS"

    notes = handler_client.get("/notifications").get_json()
    assert notes["unreadCount"] == 1
    assert notes["notifications"][0]["title"] == "RMA Sent to CDS"
    note_id = notes["notifications"][0]["id"]
    assert handler_client.post(f"/notifications/{note_id}/read").status_code == 200
    assert handler_client.post(f"/notifications/{note_id}/read").status_code == 404
    assert handler_client.get("/notifications").get_json()["unreadCount"] == 0


def test_terminal_status_sets_resolved_at(handler_client):
    rma = _create(handler_client)
    rv = handler_client.post(f"/api/rma/{rma['id']}/status", json={"caseStatus": "Rejected"})
    assert rv.get_json()["rma"]["resolvedAt"] is not None
    rv = handler_client.post(f"/api/rma/{rma['id']}/status", json={"caseStatus": "Under Review"})
    assert rv.status_code == 200
    assert rv.get_json()["rma"]["resolvedAt"] is None


def test_strict_transitions(app, handler_client):
    app.config["RMA_STRICT_TRANSITIONS"] = True
    rma = _create(handler_client)
    rv = handler_client.post(f"/api/rma/{rma['id']}/status", json={"caseStatus": "Completed"})
    assert rv.status_code == 400
    rv = handler_client.post(f"/api/rma/{rma['id']}/status", json={"caseStatus": "Sent to CDS"})
    assert rv.status_code == 200


def test_rejected_transition_leaves_fields_untouched(app, handler_client):
    app.config["RMA_STRICT_TRANSITIONS"] = True
    rma = _create(handler_client)
    rv = handler_client.put(f"/api/rma/{rma['id']}",
                            json={"trackingNumber": "TRK-NEW", "caseStatus": "Completed"})
    assert rv.status_code == 400

    stored = handler_client.get(f"/api/rma/{rma['id']}").get_json()["rma"]
    assert stored["trackingNumber"] is None
    assert stored["caseStatus"] == "Under Review"
    activity = handler_client.get(f"/api/rma/{rma['id']}/activity").get_json()["activity"]
    assert [a["action"] for a in activity] == ["CREATED"]


def test_update_cannot_blank_required_fields(handler_client):
    rma = _create(handler_client)
    for field in ("siteName", "ascompRaisedDate"):
        rv = handler_client.put(f"/api/rma/{rma['id']}", json={field: ""})
        assert rv.status_code == 400
        assert f"{field} is required" in rv.get_json()["details"]

    stored = handler_client.get(f"/api/rma/{rma['id']}").get_json()["rma"]
    assert stored["siteName"] == "PVR Phoenix"
    assert stored["ascompRaisedDate"].startswith("2024-05-02")


def test_list_filters_and_stats(handler_client):
    _create(handler_client, siteName="Site A", serialNumber="SN-A")
    other = _create(handler_client, siteName="Site B", serialNumber="SN-B", priority="Low")
    handler_client.post(f"/api/rma/{other['id']}/status", json={"caseStatus": "Completed"})

    assert handler_client.get("/api/rma").get_json()["count"] == 2
    assert handler_client.get("/api/rma?site=Site%20A").get_json()["count"] == 1
    assert handler_client.get("/api/rma?search=SN-B").get_json()["rmas"][0]["siteName"] == "Site B"
    assert handler_client.get("/api/rma?status=Completed").get_json()["count"] == 1

    stats = handler_client.get("/api/rma/stats/overview").get_json()
    assert stats["total"] == 2
    assert stats["underReview"] == 1
    assert stats["completed"] == 1
    assert stats["open"] == 1


def test_overdue_endpoint(handler_client):
    now = utcnow()
    for days in (10, 40, 70):
        raised = (now - timedelta(days=days)).date().isoformat()
        error = (now - timedelta(days=days + 1)).date().isoformat()
        _create(handler_client, ascompRaisedDate=raised, customerErrorDate=error, serialNumber=f"SN-{days}")

    rv = handler_client.get("/api/analytics/overdue?days=30")
    assert rv.status_code == 200
    report = rv.get_json()
    assert report["summary"]["totalOverdue"] == 2
    assert report["summary"]["criticalCount"] == 1
    assert [r["daysOverdue"] for r in report["overdueRMAs"]] == [70, 40]
    assert report["breakdown"]["byPriority"] == {"High": 2}
    assert report["recommendations"][0]["type"] == "critical"
    assert report["sla"]["totalActive"] == 3

    assert handler_client.get("/api/analytics/overdue?days=7").status_code == 400


def test_parts_and_sites_endpoints(handler_client):
    _create(handler_client)
    parts = handler_client.get("/api/analytics/parts?sortBy=name").get_json()
    assert parts["summary"]["totalParts"] == 1
    assert parts["parts"][0]["partName"] == "Lamp Assembly"
    assert handler_client.get("/api/analytics/parts?sortBy=bogus").status_code == 400

    sites = handler_client.get("/api/analytics/sites").get_json()
    assert sites["siteDetails"][0]["siteName"] == "PVR Phoenix"
    assert sites["siteDetails"][0]["openRMAs"] == 1
    assert handler_client.get("/api/analytics/sla").status_code == 200
