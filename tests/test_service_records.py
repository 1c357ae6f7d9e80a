from datetime import timedelta

import pytest

from rmatrack.inventory.manager import po_totals, stock_status
from rmatrack.records import utcnow


def test_service_reports_crud(tech_client, handler_client, manager_client):
    body = {"siteName": "PVR Phoenix", "projectorSerial": "SN-1001", "projectorModel": "CP2220",
            "engineerName": "Tara", "observations": ["Lamp flickering"],
            "recommendedParts": [{"partName": "Lamp Assembly", "partNumber": "003-005678-01"}]}
    rv = tech_client.post("/api/service-reports", json=body)
    assert rv.status_code == 201
    report = rv.get_json()["report"]
    assert report["reportNumber"].startswith("SR-")
    assert report["reportType"] == "First"
    assert report["recommendedParts"][0]["partName"] == "Lamp Assembly"

    assert handler_client.post("/api/service-reports", json=body).status_code == 403
    assert tech_client.post("/api/service-reports", json={"siteName": "PVR Phoenix"}).status_code == 400
    rv = tech_client.post("/api/service-reports", json={**body, "reportType": "Fifth"})
    assert rv.status_code == 400

    rv = tech_client.put(f"/api/service-reports/{report['id']}", json={"siteName": ""})
    assert rv.status_code == 400
    rv = tech_client.put(f"/api/service-reports/{report['id']}",
                         json={"observations": ["Lamp replaced"], "replacementRequired": True})
    updated = rv.get_json()["report"]
    assert updated["observations"] == ["Lamp replaced"]
    assert updated["replacementRequired"] is True
    assert updated["siteName"] == "PVR Phoenix"

    listed = handler_client.get("/api/service-reports?projectorSerial=SN-1001").get_json()
    assert listed["count"] == 1
    assert tech_client.delete(f"/api/service-reports/{report['id']}").status_code == 403
    assert manager_client.delete(f"/api/service-reports/{report['id']}").status_code == 200
    assert handler_client.get(f"/api/service-reports/{report['id']}").status_code == 404


def test_amc_contracts_crud(manager_client, handler_client):
    site_id = manager_client.post("/api/sites", json={"name": "INOX Forum"}).get_json()["site"]["id"]
    manager_client.post("/api/projectors", json={"serialNumber": "SN-77", "siteId": site_id})
    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    body = {
        "projectorSerial": "SN-77",
        "contractStartDate": (today - timedelta(days=30)).date().isoformat(),
        "contractEndDate": (today + timedelta(days=335)).date().isoformat(),
        "contractValue": 120000,
    }
    rv = manager_client.post("/api/amc-contracts", json=body)
    assert rv.status_code == 201
    contract = rv.get_json()["contract"]
    assert contract["contractNumber"].startswith("AMC-")
    assert contract["siteName"] == "INOX Forum"
    assert contract["contractStatus"] == "Active"
    assert contract["daysUntilExpiry"] == 335

    assert handler_client.post("/api/amc-contracts", json=body).status_code == 403
    rv = manager_client.post("/api/amc-contracts", json={**body, "contractEndDate": body["contractStartDate"]})
    assert rv.status_code == 400
    rv = manager_client.post("/api/amc-contracts", json={**body, "projectorSerial": "SN-UNREGISTERED"})
    assert rv.status_code == 400

    rv = manager_client.put(f"/api/amc-contracts/{contract['id']}", json={"status": "Suspended"})
    assert rv.get_json()["contract"]["contractStatus"] == "Suspended"
    assert handler_client.get("/api/amc-contracts?status=Suspended").get_json()["count"] == 1
    assert manager_client.put("/api/amc-contracts/999", json={"status": "Active"}).status_code == 404
    assert manager_client.delete(f"/api/amc-contracts/{contract['id']}").status_code == 200
    assert handler_client.get(f"/api/amc-contracts/{contract['id']}").status_code == 404


def test_spare_parts_crud(manager_client, handler_client):
    rv = manager_client.post("/api/spare-parts", json={
        "partNumber": "003-005678-01", "partName": "Lamp Assembly", "stockQuantity": 3, "unitPrice": 45000,
    })
    assert rv.status_code == 201
    part = rv.get_json()["part"]
    assert part["status"] == "Low Stock"
    assert part["reorderLevel"] == 5

    dup = {"partNumber": "003-005678-01", "partName": "Lamp"}
    assert manager_client.post("/api/spare-parts", json=dup).status_code == 400
    assert handler_client.post("/api/spare-parts", json={"partNumber": "X", "partName": "Y"}).status_code == 403

    rv = manager_client.put(f"/api/spare-parts/{part['id']}", json={"stockQuantity": 0})
    assert rv.get_json()["part"]["status"] == "Out of Stock"
    rv = manager_client.put(f"/api/spare-parts/{part['id']}", json={"stockQuantity": 20})
    assert rv.get_json()["part"]["status"] == "In Stock"
    assert manager_client.put(f"/api/spare-parts/{part['id']}", json={"unitPrice": -1}).status_code == 400

    assert handler_client.get("/api/spare-parts?search=lamp").get_json()["count"] == 1
    assert manager_client.delete(f"/api/spare-parts/{part['id']}").status_code == 200
    assert manager_client.delete(f"/api/spare-parts/{part['id']}").status_code == 404


def test_purchase_orders_crud(manager_client, handler_client):
    body = {
        "customer": "PVR", "customerSite": "PVR Phoenix", "taxRate": 18, "discount": 500,
        "expectedDelivery": "2024-01-15",
        "lineItems": [
            {"description": "Lamp Assembly", "quantity": 2, "unitPrice": 45000},
            {"description": "Air filter", "quantity": 1, "unitPrice": 1500.5},
        ],
    }
    rv = manager_client.post("/api/purchase-orders", json=body)
    assert rv.status_code == 201
    order = rv.get_json()["purchaseOrder"]
    assert order["poNumber"].startswith(f"PO-{utcnow():%Y}-")
    assert order["subtotal"] == pytest.approx(91500.5)
    assert order["taxAmount"] == pytest.approx(16380.09)
    assert order["totalAmount"] == pytest.approx(107380.59)
    assert order["status"] == "Draft"
    assert order["isOverdue"] is False

    bad = {**body, "lineItems": [{"description": "Lamp", "quantity": 0, "unitPrice": 10}]}
    assert manager_client.post("/api/purchase-orders", json=bad).status_code == 400
    assert handler_client.post("/api/purchase-orders", json=body).status_code == 403

    rv = manager_client.put(f"/api/purchase-orders/{order['id']}", json={"status": "Approved"})
    approved = rv.get_json()["purchaseOrder"]
    assert approved["isOverdue"] is True
    assert approved["totalAmount"] == pytest.approx(107380.59)

    assert handler_client.get("/api/purchase-orders?status=Approved").get_json()["count"] == 1
    assert manager_client.delete(f"/api/purchase-orders/{order['id']}").status_code == 200
    assert handler_client.get(f"/api/purchase-orders/{order['id']}").status_code == 404


def test_stock_status_rules():
    assert stock_status(0, 5, "Spare Parts") == "Out of Stock"
    assert stock_status(5, 5, "Spare Parts") == "Low Stock"
    assert stock_status(6, 5, "Spare Parts") == "In Stock"
    assert stock_status(2, 5, "RMA", "RMA Pending") == "RMA Pending"


def test_po_totals_apply_tax_after_discount():
    totals = po_totals([{"description": "Service visit", "quantity": 1, "unitPrice": 1000}],
                       tax_rate=10, discount=100)
    assert totals["subtotal"] == 1000
    assert totals["taxAmount"] == 90
    assert totals["totalAmount"] == 990
    with pytest.raises(ValueError):
        po_totals([{"description": "", "quantity": "two", "unitPrice": 5}])
