"""Site and projector register API Routes"""

from flask import Blueprint, jsonify, request

from rmatrack.auth import error_response, get_conn, login_required, roles_required
from .manager import SiteManager

bp = Blueprint("sites", __name__, url_prefix="/api")

REGISTER_ROLES = ("admin", "rma_manager")


@bp.route("/sites", methods=["GET"])
@login_required
def list_sites():
    """GET /api/sites?region=North"""
    conn = get_conn()
    try:
        sites = SiteManager(conn).list_sites(region=request.args.get("region"))
        return jsonify({"sites": sites, "count": len(sites)}), 200
    finally:
        conn.close()


@bp.route("/sites", methods=["POST"])
@roles_required(*REGISTER_ROLES)
def create_site():
    """POST /api/sites  Body: {"name": "Cinema 1", "code": "CIN1", "region": "North"}"""
    conn = get_conn()
    try:
        data = request.get_json(silent=True) or {}
        site = SiteManager(conn).create_site(data.get("name"), code=data.get("code"), region=data.get("region"))
        return jsonify({"site": site}), 201
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/sites/<int:site_id>", methods=["GET"])
@login_required
def get_site(site_id):
    conn = get_conn()
    try:
        site = SiteManager(conn).get_site(site_id)
        if not site:
            return jsonify({"error": "NotFound", "details": f"Site {site_id} not found"}), 404
        return jsonify({"site": site}), 200
    finally:
        conn.close()


@bp.route("/projectors", methods=["GET"])
@login_required
def list_projectors():
    """GET /api/projectors?siteId=3"""
    conn = get_conn()
    try:
        site_id = request.args.get("siteId", type=int)
        projectors = SiteManager(conn).list_projectors(site_id=site_id)
        return jsonify({"projectors": projectors, "count": len(projectors)}), 200
    finally:
        conn.close()


@bp.route("/projectors", methods=["POST"])
@roles_required(*REGISTER_ROLES)
def create_projector():
    """POST /api/projectors  Body: {"serialNumber": "SN-001", "siteId": 3, "model": "CP2220"}"""
    conn = get_conn()
    try:
        projector = SiteManager(conn).create_projector(request.get_json(silent=True) or {})
        return jsonify({"projector": projector}), 201
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()
