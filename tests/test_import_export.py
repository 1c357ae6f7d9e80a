import csv
import io

from conftest import rma_body

CSV_TEXT = (
    "RMA #,Call Log #,Site Name,Product Name,Serial #,Defective Part Name,ASCOMP Raised Date,"
    "Customer Error Date,Case Status,Priority,Estimated Cost\n"
    "RMA-OLD-1,CL-1,\"Site, A\",CP2220,SN-1,Lamp Assembly,02/05/2024,01/05/2024,closed,high,1200\n"
    "RMA-OLD-2,CL-2,,,,Fan,N/A,N/A,open,low,\n"
    "RMA-OLD-3,CL-3,Site B,CP4230,SN-3,DMD Board,2024-05-10,2024-05-09,lost in space,low,\n"
    "RMA-OLD-4,CL-4,Site C,,SN-4,Ballast,2024-05-12,2024-05-11,sent to cds,medium,\n"
)


def test_csv_upload_collects_row_errors(manager_client):
    rv = manager_client.post(
        "/api/import/rma",
        data={"file": (io.BytesIO(("\ufeff" + CSV_TEXT).encode("utf-8")), "rmas.csv")},
        content_type="multipart/form-data",
    )
    assert rv.status_code == 200
    result = rv.get_json()
    assert result["totalRows"] == 4
    assert result["imported"] == 2
    assert [e["row"] for e in result["errors"]] == [2, 3]
    assert result["renumbered"] == []

    rmas = manager_client.get("/api/rma?search=SN-1").get_json()["rmas"]
    assert rmas[0]["rmaNumber"] == "RMA-OLD-1"
    assert rmas[0]["caseStatus"] == "Completed"
    assert rmas[0]["siteName"] == "Site, A"
    assert rmas[0]["ascompRaisedDate"].startswith("2024-05-02")

    filler = manager_client.get("/api/rma?search=SN-4").get_json()["rmas"][0]
    assert filler["productName"] == "Unknown Product"
    assert filler["caseStatus"] == "Sent to CDS"


def test_json_import_renumbers_duplicates(manager_client):
    manager_client.post("/api/rma", json=rma_body(rmaNumber="RMA-DUP"))
    rows = [{"rmaNumber": "RMA-DUP", "siteName": "Site Z", "serialNumber": "SN-Z", "productName": "CP2220"}]
    result = manager_client.post("/api/import/rma", json=rows).get_json()
    assert result["imported"] == 1
    assert result["renumbered"][0]["originalRmaNumber"] == "RMA-DUP"
    assert result["renumbered"][0]["rmaNumber"] != "RMA-DUP"


def test_import_requires_manager(handler_client):
    assert handler_client.post("/api/import/rma", json=[]).status_code == 403


def test_import_rejects_bad_body(manager_client):
    rv = manager_client.post("/api/import/rma", json={"not": "a list"})
    assert rv.status_code == 400


def test_export_round_trips_commas(handler_client):
    handler_client.post("/api/rma", json=rma_body(siteName="Site, A", replacedPartName="DMD error"))
    rv = handler_client.get("/api/export/rma.csv")
    assert rv.status_code == 200
    assert rv.mimetype == "text/csv"
    rows = list(csv.DictReader(io.StringIO(rv.get_data(as_text=True))))
    assert len(rows) == 1
    assert rows[0]["Site Name"] == "Site, A"
    assert rows[0]["Replaced Part Name"] == "Lamp Assembly"
    assert rows[0]["Case Status"] == "Under Review"
