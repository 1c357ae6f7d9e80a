#!/usr/bin/env python3
"""Seed a demo database: one user per role, a few sites, projectors and RMAs."""

import os
from datetime import timedelta
from pathlib import Path

from rmatrack.dao import create_user, get_connection, init_db
from rmatrack.records import utcnow
from rmatrack.rma.manager import RMAManager
from rmatrack.sites.manager import SiteManager

DEMO_USERS = [
    ("Admin User", "admin1", "123", "admin"),
    ("Maya Manager", "manager", "password123", "rma_manager"),
    ("Hari Handler", "handler", "password123", "rma_handler"),
    ("Tom Technician", "tech", "password123", "technician"),
]

DEMO_SITES = [
    ("PVR Phoenix", "PVR-PHX", "West"),
    ("INOX Forum", "INOX-FRM", "South"),
    ("Cinepolis Nexus", "CPL-NXS", "North"),
]

DEMO_PROJECTORS = [
    ("SN-1001", "PVR Phoenix", "CP2220", "Christie", "000-102345-01"),
    ("SN-1002", "PVR Phoenix", "CP4230", "Christie", "000-104567-02"),
    ("SN-2001", "INOX Forum", "NC1200L", "NEC", "000-201111-01"),
    ("SN-3001", "Cinepolis Nexus", "SRX-R515", "Sony", "000-301234-03"),
]

# (site, serial, product, defective part, part number, status, priority, days ago, cost)
DEMO_RMAS = [
    ("PVR Phoenix", "SN-1001", "CP2220", "Lamp Assembly", "003-005678-01", "Completed", "Medium", 10, 45000),
    ("PVR Phoenix", "SN-1002", "CP4230", "Lamp Assembly", "003-005678-01", "Under Review", "High", 40, 45000),
    ("INOX Forum", "SN-2001", "NC1200L", "Lamp Assembly", "003-005678-01", "Sent to CDS", "Critical", 70, 45000),
    ("INOX Forum", "SN-2001", "NC1200L", "DMD Board", "003-120034-02", "CDS Approved", "High", 50, 180000),
    ("Cinepolis Nexus", "SN-3001", "SRX-R515", "Power Supply", "003-200010-01", "Replacement Shipped", "Low", 20, 30000),
]


def seed_users(conn):
    """Insert demo users with hashed passwords"""
    for name, username, password, role in DEMO_USERS:
        if conn.execute("SELECT 1 FROM user WHERE username = ?", (username,)).fetchone():
            continue
        create_user(conn, name, username, password, role=role)
        print(f"Inserted user: {username} ({role})")
    print("NOTE: Default admin account - username: admin1, password: 123")


def seed_sites(conn):
    sites = SiteManager(conn)
    site_ids = {site["name"]: site["id"] for site in sites.list_sites()}
    for name, code, region in DEMO_SITES:
        if name not in site_ids:
            site_ids[name] = sites.create_site(name, code=code, region=region)["id"]
            print(f"Inserted site: {name}")
    for serial, site_name, model, brand, part_number in DEMO_PROJECTORS:
        if not sites.get_projector(serial):
            sites.create_projector({"serialNumber": serial, "siteId": site_ids[site_name], "model": model,
                                    "brand": brand, "partNumber": part_number})
            print(f"Inserted projector: {serial}")


def seed_rmas(conn):
    manager = RMAManager(conn)
    if manager.all_rmas():
        print("RMAs already present, skipping")
        return
    admin = conn.execute("SELECT id, name, username, role FROM user WHERE username = 'admin1'").fetchone()
    actor = dict(admin)
    now = utcnow()
    for site, serial, product, part, part_number, status, priority, days_ago, cost in DEMO_RMAS:
        raised = now - timedelta(days=days_ago)
        rma = manager.create_rma({
            "siteName": site,
            "serialNumber": serial,
            "productName": product,
            "defectivePartName": part,
            "defectivePartNumber": part_number,
            "ascompRaisedDate": raised.isoformat(),
            "customerErrorDate": (raised - timedelta(days=1)).isoformat(),
            "caseStatus": status,
            "priority": priority,
            "estimatedCost": cost,
            "warrantyStatus": "In Warranty",
        }, actor)
        print(f"Inserted RMA: {rma.rma_number} ({status})")


def main():
    root = Path(__file__).resolve().parents[1]
    db_path = os.environ.get("APP_DB_PATH", str(root / "app.sqlite"))
    init_db(db_path)
    conn = get_connection(db_path)
    try:
        seed_users(conn)
        seed_sites(conn)
        seed_rmas(conn)
    finally:
        conn.close()
    print(f"Seeded database at {db_path}")


if __name__ == "__main__":
    main()
