"""
Part/site comment API Routes

Part names and numbers travel as query parameters so values such as "N/A"
can be addressed.
"""

from typing import Optional, Tuple

from flask import Blueprint, jsonify, request

from rmatrack.auth import current_user, error_response, get_conn, login_required
from rmatrack.observability.structured_logger import app_logger
from .part_comments import PartCommentManager

bp = Blueprint("part_comments", __name__, url_prefix="/api/part-comments")


def _paging():
    try:
        limit = int(request.args.get("limit", 50))
        skip = int(request.args.get("skip", 0))
    except ValueError:
        raise ValueError("limit and skip must be integers")
    if limit < 1 or skip < 0:
        raise ValueError("limit must be positive and skip non-negative")
    return min(limit, 200), skip


def _include_internal() -> bool:
    return current_user()["role"] != "technician" and request.args.get("includeInternal", "true") != "false"


def _part_key(body: Optional[dict] = None) -> Tuple[str, str]:
    """partName/partNumber from the query string, falling back to the JSON body."""
    body = body or {}
    part_name = request.args.get("partName") or body.get("partName")
    part_number = request.args.get("partNumber") or body.get("partNumber")
    if not part_name or not part_number:
        raise ValueError("partName and partNumber are required")
    return part_name, part_number


@bp.route("/site/<site_id>", methods=["GET"])
@login_required
def list_site_comments(site_id):
    """GET /api/part-comments/site/12?partName=Lamp%20Assembly&partNumber=DEFECT-001&limit=20&skip=0"""
    conn = get_conn()
    try:
        part_name, part_number = _part_key()
        limit, skip = _paging()
        comments = PartCommentManager(conn).list_comments(
            part_name, part_number, site_id, include_internal=_include_internal(), limit=limit, skip=skip
        )
        return jsonify({"comments": comments, "count": len(comments)}), 200
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/site/<site_id>", methods=["POST"])
@login_required
def add_site_comment(site_id):
    """
    POST /api/part-comments/site/<siteId>?partName=<partName>&partNumber=<partNumber>
    Body: {"comment": "Waiting on depot", "commentType": "status_update", "priority": "high",
           "siteName": "Cinema 1", "isInternal": false}
    partName and partNumber may also be sent in the body.
    """
    conn = get_conn()
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValueError("JSON body required")
        part_name, part_number = _part_key(data)
        comment = PartCommentManager(conn).add_comment(part_name, part_number, site_id, data, current_user())
        return jsonify({"comment": comment}), 201
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Failed to add part comment", site=site_id, error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/site/<site_id>/latest", methods=["GET"])
@login_required
def latest_site_comment(site_id):
    conn = get_conn()
    try:
        part_name, part_number = _part_key()
        comment = PartCommentManager(conn).latest_comment(
            part_name, part_number, site_id, request.args.get("siteName"),
            include_internal=current_user()["role"] != "technician",
        )
        return jsonify({"comment": comment}), 200
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/part", methods=["GET"])
@login_required
def list_part_comments():
    """All sites for one part."""
    conn = get_conn()
    try:
        part_name, part_number = _part_key()
        limit, skip = _paging()
        comments = PartCommentManager(conn).list_comments(
            part_name, part_number, include_internal=_include_internal(), limit=limit, skip=skip
        )
        return jsonify({"comments": comments, "count": len(comments)}), 200
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:comment_id>", methods=["PUT"])
@login_required
def update_comment(comment_id):
    conn = get_conn()
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValueError("JSON body required")
        comment = PartCommentManager(conn).update_comment(comment_id, data, current_user())
        return jsonify({"comment": comment}), 200
    except (ValueError, LookupError, PermissionError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/<int:comment_id>", methods=["DELETE"])
@login_required
def delete_comment(comment_id):
    conn = get_conn()
    try:
        PartCommentManager(conn).delete_comment(comment_id, current_user())
        return jsonify({"message": "Comment deleted"}), 200
    except (LookupError, PermissionError) as e:
        return error_response(e)
    finally:
        conn.close()
