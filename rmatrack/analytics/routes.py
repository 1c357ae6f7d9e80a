"""Analytics API Routes"""

from flask import Blueprint, current_app, jsonify, request

from rmatrack.auth import current_user, error_response, get_conn, login_required
from rmatrack.observability.structured_logger import app_logger
from .service import AnalyticsService

bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


def _service(conn) -> AnalyticsService:
    return AnalyticsService(conn, breach_rate_threshold=current_app.config["SLA_BREACH_RATE_THRESHOLD"])


@bp.route("/overdue", methods=["GET"])
@login_required
def overdue_analysis():
    """
    Overdue RMA analysis.

    GET /api/analytics/overdue?days=30&status=all&includeFuture=false
    days must be one of 30, 45, 60, 90.
    """
    conn = get_conn()
    try:
        report = _service(conn).overdue_report(
            days=request.args.get("days") or current_app.config["OVERDUE_DEFAULT_DAYS"],
            status=request.args.get("status", "all"),
            include_future=request.args.get("includeFuture", "false").lower() == "true",
        )
        return jsonify(report), 200
    except ValueError as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Overdue analysis failed", error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/parts", methods=["GET"])
@login_required
def parts_analytics():
    """
    Per-part RMA analytics.

    GET /api/analytics/parts?sortBy=pendingDays
    sortBy: priority, pendingDays, pendingCount, sitesUnderReview, cost, name
    """
    conn = get_conn()
    try:
        report = _service(conn).parts_report(
            sort_by=request.args.get("sortBy"),
            include_internal=current_user()["role"] != "technician",
        )
        return jsonify(report), 200
    except ValueError as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Parts analysis failed", error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/sla", methods=["GET"])
@login_required
def sla_metrics():
    """GET /api/analytics/sla"""
    conn = get_conn()
    try:
        return jsonify(_service(conn).sla_report()), 200
    finally:
        conn.close()


@bp.route("/sites", methods=["GET"])
@login_required
def site_analytics():
    """GET /api/analytics/sites"""
    conn = get_conn()
    try:
        return jsonify(_service(conn).sites_report()), 200
    finally:
        conn.close()
