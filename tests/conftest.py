from datetime import datetime

import pytest

from rmatrack.app import create_app
from rmatrack.dao import create_user, get_connection

NOW = datetime(2024, 6, 30, 12, 0, 0)

USERS = {
    "admin": ("Admin User", "admin1", "admin-pass"),
    "rma_manager": ("Maya Manager", "manager", "manager-pass"),
    "rma_handler": ("Hari Handler", "handler", "handler-pass"),
    "technician": ("Tom Technician", "tech", "tech-pass"),
}


@pytest.fixture
def app(tmp_path):
    db_path = str(tmp_path / "test.sqlite")
    app = create_app({
        "TESTING": True,
        "DB_PATH": db_path,
        "LOG_DIR": str(tmp_path),
    })
    conn = get_connection(db_path)
    try:
        ids = {}
        for role, (name, username, password) in USERS.items():
            ids[role] = create_user(conn, name, username, password, role=role)
    finally:
        conn.close()
    app.config["USER_IDS"] = ids
    return app


@pytest.fixture
def db(app):
    conn = get_connection(app.config["DB_PATH"])
    yield conn
    conn.close()


def _login(app, role):
    client = app.test_client()
    _, username, password = USERS[role]
    rv = client.post("/auth/login", json={"username": username, "password": password})
    assert rv.status_code == 200
    return client


@pytest.fixture
def admin_client(app):
    return _login(app, "admin")


@pytest.fixture
def manager_client(app):
    return _login(app, "rma_manager")


@pytest.fixture
def handler_client(app):
    return _login(app, "rma_handler")


@pytest.fixture
def tech_client(app):
    return _login(app, "technician")


def rma_body(**overrides):
    body = {
        "siteName": "PVR Phoenix",
        "productName": "CP2220",
        "serialNumber": "SN-1001",
        "ascompRaisedDate": "2024-05-02",
        "customerErrorDate": "2024-05-01",
        "defectivePartName": "Lamp Assembly",
        "defectivePartNumber": "003-005678-01",
        "priority": "High",
        "estimatedCost": 45000,
    }
    body.update(overrides)
    return body
