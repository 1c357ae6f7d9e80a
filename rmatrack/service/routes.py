"""Service report and AMC contract API Routes"""

from flask import Blueprint, jsonify, request

from rmatrack.auth import current_user, error_response, get_conn, login_required, roles_required
from .manager import AMCContractManager, ServiceReportManager

bp = Blueprint("service", __name__, url_prefix="/api")

# Field engineers file their own service reports
REPORT_ROLES = ("admin", "rma_manager", "technician")
CONTRACT_ROLES = ("admin", "rma_manager")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("JSON body required")
    return data


@bp.route("/service-reports", methods=["GET"])
@login_required
def list_reports():
    """GET /api/service-reports?siteName=PVR%20Phoenix&projectorSerial=SN-1001"""
    conn = get_conn()
    try:
        reports = ServiceReportManager(conn).list_reports(
            site_name=request.args.get("siteName"), projector_serial=request.args.get("projectorSerial")
        )
        return jsonify({"reports": reports, "count": len(reports)}), 200
    finally:
        conn.close()


@bp.route("/service-reports", methods=["POST"])
@roles_required(*REPORT_ROLES)
def create_report():
    """
    POST /api/service-reports
    Body: {"siteName": "PVR Phoenix", "projectorSerial": "SN-1001", "reportType": "First",
           "engineerName": "Tara", "observations": ["Lamp dim"],
           "recommendedParts": [{"partName": "Lamp Assembly", "partNumber": "003-005678-01"}]}
    """
    conn = get_conn()
    try:
        report = ServiceReportManager(conn).create_report(_json_body(), current_user())
        return jsonify({"report": report}), 201
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/service-reports/<int:report_id>", methods=["GET"])
@login_required
def get_report(report_id):
    conn = get_conn()
    try:
        report = ServiceReportManager(conn).get_report(report_id)
        if not report:
            return jsonify({"error": "NotFound", "details": f"Service report {report_id} not found"}), 404
        return jsonify({"report": report}), 200
    finally:
        conn.close()


@bp.route("/service-reports/<int:report_id>", methods=["PUT"])
@roles_required(*REPORT_ROLES)
def update_report(report_id):
    conn = get_conn()
    try:
        report = ServiceReportManager(conn).update_report(report_id, _json_body())
        return jsonify({"report": report}), 200
    except (ValueError, LookupError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/service-reports/<int:report_id>", methods=["DELETE"])
@roles_required(*CONTRACT_ROLES)
def delete_report(report_id):
    conn = get_conn()
    try:
        ServiceReportManager(conn).delete_report(report_id)
        return jsonify({"message": "Service report deleted"}), 200
    except LookupError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/amc-contracts", methods=["GET"])
@login_required
def list_contracts():
    """GET /api/amc-contracts?status=Active&siteName=PVR%20Phoenix"""
    conn = get_conn()
    try:
        contracts = AMCContractManager(conn).list_contracts(
            status=request.args.get("status"), site_name=request.args.get("siteName")
        )
        return jsonify({"contracts": contracts, "count": len(contracts)}), 200
    finally:
        conn.close()


@bp.route("/amc-contracts", methods=["POST"])
@roles_required(*CONTRACT_ROLES)
def create_contract():
    """
    POST /api/amc-contracts
    Body: {"projectorSerial": "SN-1001", "contractStartDate": "2024-04-01",
           "contractEndDate": "2025-03-31", "contractValue": 120000}
    siteName may be left out when the projector is registered at a site.
    """
    conn = get_conn()
    try:
        contract = AMCContractManager(conn).create_contract(_json_body())
        return jsonify({"contract": contract}), 201
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/amc-contracts/<int:contract_id>", methods=["GET"])
@login_required
def get_contract(contract_id):
    conn = get_conn()
    try:
        contract = AMCContractManager(conn).get_contract(contract_id)
        if not contract:
            return jsonify({"error": "NotFound", "details": f"AMC contract {contract_id} not found"}), 404
        return jsonify({"contract": contract}), 200
    finally:
        conn.close()


@bp.route("/amc-contracts/<int:contract_id>", methods=["PUT"])
@roles_required(*CONTRACT_ROLES)
def update_contract(contract_id):
    conn = get_conn()
    try:
        contract = AMCContractManager(conn).update_contract(contract_id, _json_body())
        return jsonify({"contract": contract}), 200
    except (ValueError, LookupError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/amc-contracts/<int:contract_id>", methods=["DELETE"])
@roles_required(*CONTRACT_ROLES)
def delete_contract(contract_id):
    conn = get_conn()
    try:
        AMCContractManager(conn).delete_contract(contract_id)
        return jsonify({"message": "AMC contract deleted"}), 200
    except LookupError as e:
        return error_response(e)
    finally:
        conn.close()
