"""Bulk import and CSV export API Routes"""

from flask import Blueprint, Response, current_app, jsonify, request

from rmatrack.auth import current_user, error_response, get_conn, login_required, roles_required
from rmatrack.observability.metrics_collector import metrics_collector
from rmatrack.observability.structured_logger import app_logger
from rmatrack.records import utcnow
from rmatrack.rma.manager import RMAManager, rma_payload
from .csv_io import import_rmas, read_csv, to_csv

bp = Blueprint("importer", __name__, url_prefix="/api")


@bp.route("/import/rma", methods=["POST"])
@roles_required("admin", "rma_manager")
def import_rma():
    """
    Bulk import RMA cases.

    POST /api/import/rma
    Either a multipart upload with a CSV in the "file" field, or a JSON
    list of row objects (spreadsheet headers or camelCase keys).
    """
    conn = get_conn()
    try:
        upload = request.files.get("file")
        if upload is not None:
            try:
                rows = read_csv(upload.read().decode("utf-8-sig"))
            except UnicodeDecodeError:
                raise ValueError("CSV file must be UTF-8 encoded")
        else:
            rows = request.get_json(silent=True)
            if not isinstance(rows, list):
                raise ValueError("Provide a CSV file upload or a JSON list of rows")

        manager = RMAManager(conn, strict_transitions=current_app.config["RMA_STRICT_TRANSITIONS"])
        result = import_rmas(manager, rows, current_user())
        metrics_collector.record_rma_event("imported", result["imported"])
        app_logger.info(
            "RMA import finished",
            total=result["totalRows"], imported=result["imported"],
            renumbered=len(result["renumbered"]), errors=len(result["errors"])
        )
        return jsonify(result), 200
    except ValueError as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("RMA import failed", error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/export/rma.csv", methods=["GET"])
@login_required
def export_rma_csv():
    """GET /api/export/rma.csv?status=Under%20Review&site=Cinema%201"""
    conn = get_conn()
    try:
        rmas = RMAManager(conn).list_rmas(
            status=request.args.get("status"),
            priority=request.args.get("priority"),
            site_name=request.args.get("site"),
            search=request.args.get("search"),
        )
        body = to_csv(rma_payload(r) for r in rmas)
        filename = f"rma-export-{utcnow().strftime('%Y%m%d')}.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    finally:
        conn.close()
