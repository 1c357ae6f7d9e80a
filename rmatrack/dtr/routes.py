"""DTR API Routes"""

from flask import Blueprint, current_app, jsonify, request

from rmatrack.auth import current_user, error_response, get_conn, login_required
from rmatrack.observability.metrics_collector import metrics_collector
from rmatrack.observability.structured_logger import app_logger
from rmatrack.rma.manager import RMAManager, rma_payload
from .manager import DTRManager

bp = Blueprint("dtr", __name__, url_prefix="/api/dtr")


def _manager(conn) -> DTRManager:
    rmas = RMAManager(conn, strict_transitions=current_app.config["RMA_STRICT_TRANSITIONS"])
    return DTRManager(conn, rma_manager=rmas)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("JSON body required")
    return data


@bp.route("", methods=["GET"])
@bp.route("/", methods=["GET"])
@login_required
def list_dtrs():
    """GET /api/dtr?status=Open&site=Cinema%201"""
    conn = get_conn()
    try:
        dtrs = _manager(conn).list_dtrs(status=request.args.get("status"), site_name=request.args.get("site"))
        return jsonify({"dtrs": dtrs, "count": len(dtrs)}), 200
    finally:
        conn.close()


@bp.route("", methods=["POST"])
@bp.route("/", methods=["POST"])
@login_required
def create_dtr():
    """
    Open a DTR against a registered projector.

    POST /api/dtr
    Body: {
        "serialNumber": "SN-001",
        "complaintDescription": "No picture",
        "problemName": "Light Engine",
        "priority": "High",
        "assignedToUserId": 4
    }
    """
    conn = get_conn()
    try:
        dtr = _manager(conn).create_dtr(_json_body(), current_user())
        return jsonify({"message": "DTR created", "dtr": dtr}), 201
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Failed to create DTR", error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:dtr_id>", methods=["GET"])
@login_required
def get_dtr(dtr_id):
    conn = get_conn()
    try:
        dtr = _manager(conn).get_dtr(dtr_id)
        if not dtr:
            return jsonify({"error": "NotFound", "details": f"DTR {dtr_id} not found"}), 404
        return jsonify({"dtr": dtr}), 200
    finally:
        conn.close()


@bp.route("/<int:dtr_id>/assign", methods=["POST"])
@login_required
def assign_dtr(dtr_id):
    """POST /api/dtr/<id>/assign  Body: {"technicianId": 4}"""
    conn = get_conn()
    try:
        data = _json_body()
        if data.get("technicianId") is None:
            raise ValueError("technicianId is required")
        dtr = _manager(conn).assign(dtr_id, data["technicianId"], current_user())
        return jsonify({"dtr": dtr}), 200
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:dtr_id>/troubleshooting", methods=["POST"])
@login_required
def add_troubleshooting_step(dtr_id):
    """POST /api/dtr/<id>/troubleshooting  Body: {"description": "...", "outcome": "..."}"""
    conn = get_conn()
    try:
        data = _json_body()
        dtr = _manager(conn).add_troubleshooting_step(
            dtr_id, data.get("description"), data.get("outcome"), current_user()
        )
        return jsonify({"dtr": dtr}), 201
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:dtr_id>/mark-for-conversion", methods=["POST"])
@login_required
def mark_for_conversion(dtr_id):
    """POST /api/dtr/<id>/mark-for-conversion  Body: {"conversionReason": "Needs new DMD"}"""
    conn = get_conn()
    try:
        dtr = _manager(conn).mark_for_conversion(dtr_id, _json_body().get("conversionReason"), current_user())
        return jsonify({"dtr": dtr}), 200
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:dtr_id>/convert-to-rma", methods=["POST"])
@login_required
def convert_to_rma(dtr_id):
    """
    Create an RMA from the DTR.

    POST /api/dtr/<id>/convert-to-rma
    Body (optional): {"additionalNotes": "Customer wants a loaner"}
    """
    conn = get_conn()
    try:
        data = request.get_json(silent=True) or {}
        result = _manager(conn).convert_to_rma(dtr_id, current_user(), data.get("additionalNotes", ""))
        metrics_collector.record_rma_event("dtr_converted")
        metrics_collector.record_rma_event("created")
        return jsonify({
            "message": "DTR converted to RMA",
            "dtr": result["dtr"],
            "rma": rma_payload(result["rma"]),
        }), 201
    except (ValueError, LookupError, PermissionError) as e:
        conn.rollback()
        return error_response(e)
    except Exception as e:
        conn.rollback()
        app_logger.error("DTR conversion failed", dtr_id=dtr_id, error=str(e))
        return error_response(e)
    finally:
        conn.close()
