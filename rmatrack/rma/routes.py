"""RMA case API Routes"""

from flask import Blueprint, current_app, jsonify, request

from rmatrack.auth import current_user, error_response, get_conn, login_required, roles_required
from rmatrack.observability.metrics_collector import metrics_collector
from rmatrack.observability.structured_logger import app_logger
from .manager import RMAManager, rma_payload

bp = Blueprint("rma", __name__, url_prefix="/api/rma")

# Technicians work DTRs and read RMAs; case edits are for the RMA desk
WRITER_ROLES = ("admin", "rma_manager", "rma_handler")


def _manager(conn) -> RMAManager:
    return RMAManager(conn, strict_transitions=current_app.config["RMA_STRICT_TRANSITIONS"])


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("JSON body required")
    return data


# =============================
# Cases
# =============================

@bp.route("", methods=["GET"])
@bp.route("/", methods=["GET"])
@login_required
def list_rmas():
    """
    List RMA cases, newest first.

    GET /api/rma?status=Under%20Review&priority=High&site=Cinema%201&search=lamp
    """
    conn = get_conn()
    try:
        rmas = _manager(conn).list_rmas(
            status=request.args.get("status"),
            priority=request.args.get("priority"),
            site_name=request.args.get("site"),
            search=request.args.get("search"),
        )
        return jsonify({"rmas": [rma_payload(r) for r in rmas], "count": len(rmas)}), 200
    except Exception as e:
        app_logger.error("Failed to list RMAs", error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("", methods=["POST"])
@bp.route("/", methods=["POST"])
@roles_required(*WRITER_ROLES)
def create_rma():
    """
    Create an RMA case.

    POST /api/rma
    Body: {
        "siteName": "Cinema 1",
        "productName": "CP2220",
        "serialNumber": "SN-001",
        "ascompRaisedDate": "2024-05-02",
        "customerErrorDate": "2024-05-01",
        "defectivePartName": "Lamp Assembly",
        "priority": "High"
    }
    """
    conn = get_conn()
    try:
        rma = _manager(conn).create_rma(_json_body(), current_user())
        metrics_collector.record_rma_event("created")
        return jsonify({"message": "RMA created", "rma": rma_payload(rma)}), 201
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Failed to create RMA", error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:rma_id>", methods=["GET"])
@login_required
def get_rma(rma_id):
    """GET /api/rma/<id>"""
    conn = get_conn()
    try:
        rma = _manager(conn).get_rma(rma_id=rma_id)
        if not rma:
            return jsonify({"error": "NotFound", "details": f"RMA {rma_id} not found"}), 404
        return jsonify({"rma": rma_payload(rma)}), 200
    finally:
        conn.close()


@bp.route("/number/<rma_number>", methods=["GET"])
@login_required
def get_rma_by_number(rma_number):
    """GET /api/rma/number/RMA-20240502-0001"""
    conn = get_conn()
    try:
        rma = _manager(conn).get_rma(rma_number=rma_number)
        if not rma:
            return jsonify({"error": "NotFound", "details": f"RMA {rma_number} not found"}), 404
        return jsonify({"rma": rma_payload(rma)}), 200
    finally:
        conn.close()


@bp.route("/<int:rma_id>", methods=["PUT"])
@roles_required(*WRITER_ROLES)
def update_rma(rma_id):
    """
    Partially update an RMA case. Only the fields present are changed.

    PUT /api/rma/<id>
    Body: {"trackingNumber": "TRK123", "shippedDate": "2024-05-10"}
    """
    conn = get_conn()
    try:
        data = _json_body()
        manager = _manager(conn)
        before = manager.get_rma(rma_id=rma_id)
        rma = manager.update_rma(rma_id, data, current_user())
        if before and before.case_status != rma.case_status:
            metrics_collector.record_rma_event("status_changed")
        return jsonify({"message": "RMA updated", "rma": rma_payload(rma)}), 200
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Failed to update RMA", rma_id=rma_id, error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:rma_id>/status", methods=["POST"])
@roles_required(*WRITER_ROLES)
def change_status(rma_id):
    """
    Move a case to a new status.

    POST /api/rma/<id>/status
    Body: {"caseStatus": "Sent to CDS", "notes": "Forwarded to depot"}
    """
    conn = get_conn()
    try:
        data = _json_body()
        new_status = data.get("caseStatus") or data.get("status")
        if not new_status:
            raise ValueError("caseStatus is required")
        rma = _manager(conn).change_status(rma_id, new_status, current_user(), notes=data.get("notes", ""))
        metrics_collector.record_rma_event("status_changed")
        return jsonify({"message": f"Status changed to {rma.case_status}", "rma": rma_payload(rma)}), 200
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Failed to change RMA status", rma_id=rma_id, error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:rma_id>/activity", methods=["GET"])
@login_required
def get_activity(rma_id):
    """GET /api/rma/<id>/activity"""
    conn = get_conn()
    try:
        return jsonify({"activity": _manager(conn).get_activity(rma_id)}), 200
    except LookupError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/stats/overview", methods=["GET"])
@login_required
def stats_overview():
    """GET /api/rma/stats/overview"""
    conn = get_conn()
    try:
        return jsonify(_manager(conn).stats_overview()), 200
    finally:
        conn.close()


# =============================
# Comments
# =============================

@bp.route("/<int:rma_id>/comments", methods=["GET"])
@login_required
def list_comments(rma_id):
    """Technicians do not see internal comments."""
    conn = get_conn()
    try:
        include_internal = current_user()["role"] != "technician"
        comments = _manager(conn).list_comments(rma_id, include_internal=include_internal)
        return jsonify({"comments": comments, "count": len(comments)}), 200
    except LookupError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:rma_id>/comments", methods=["POST"])
@login_required
def add_comment(rma_id):
    """
    POST /api/rma/<id>/comments
    Body: {"body": "Customer chased", "commentType": "update", "isInternal": false}
    """
    conn = get_conn()
    try:
        data = _json_body()
        comment = _manager(conn).add_comment(
            rma_id, data.get("body"), current_user(),
            comment_type=data.get("commentType") or "update",
            is_internal=bool(data.get("isInternal", False)),
        )
        return jsonify({"comment": comment}), 201
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Failed to add RMA comment", rma_id=rma_id, error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/comments/<int:comment_id>", methods=["PUT"])
@login_required
def edit_comment(comment_id):
    conn = get_conn()
    try:
        comment = _manager(conn).edit_comment(comment_id, _json_body().get("body"), current_user())
        return jsonify({"comment": comment}), 200
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/comments/<int:comment_id>", methods=["DELETE"])
@login_required
def delete_comment(comment_id):
    conn = get_conn()
    try:
        _manager(conn).delete_comment(comment_id, current_user())
        return jsonify({"message": "Comment deleted"}), 200
    except (LookupError, PermissionError) as e:
        return error_response(e)
    finally:
        conn.close()
