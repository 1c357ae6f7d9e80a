"""Spare part stock and purchase order API Routes"""

from flask import Blueprint, jsonify, request

from rmatrack.auth import current_user, error_response, get_conn, login_required, roles_required
from rmatrack.observability.structured_logger import app_logger
from .manager import PurchaseOrderManager, SparePartManager

bp = Blueprint("inventory", __name__, url_prefix="/api")

STOCK_ROLES = ("admin", "rma_manager")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("JSON body required")
    return data


@bp.route("/spare-parts", methods=["GET"])
@login_required
def list_parts():
    """GET /api/spare-parts?category=Spare%20Parts&status=Low%20Stock&search=lamp"""
    conn = get_conn()
    try:
        parts = SparePartManager(conn).list_parts(
            category=request.args.get("category"),
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
        return jsonify({"parts": parts, "count": len(parts)}), 200
    finally:
        conn.close()


@bp.route("/spare-parts", methods=["POST"])
@roles_required(*STOCK_ROLES)
def create_part():
    """POST /api/spare-parts  Body: {"partNumber": "003-005678-01", "partName": "Lamp Assembly", "stockQuantity": 4}"""
    conn = get_conn()
    try:
        part = SparePartManager(conn).create_part(_json_body())
        return jsonify({"part": part}), 201
    except ValueError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/spare-parts/<int:part_id>", methods=["GET"])
@login_required
def get_part(part_id):
    conn = get_conn()
    try:
        part = SparePartManager(conn).get_part(part_id)
        if not part:
            return jsonify({"error": "NotFound", "details": f"Spare part {part_id} not found"}), 404
        return jsonify({"part": part}), 200
    finally:
        conn.close()


@bp.route("/spare-parts/<int:part_id>", methods=["PUT"])
@roles_required(*STOCK_ROLES)
def update_part(part_id):
    conn = get_conn()
    try:
        part = SparePartManager(conn).update_part(part_id, _json_body())
        return jsonify({"part": part}), 200
    except (ValueError, LookupError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/spare-parts/<int:part_id>", methods=["DELETE"])
@roles_required(*STOCK_ROLES)
def delete_part(part_id):
    conn = get_conn()
    try:
        SparePartManager(conn).delete_part(part_id)
        return jsonify({"message": "Spare part deleted"}), 200
    except LookupError as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/purchase-orders", methods=["GET"])
@login_required
def list_pos():
    """GET /api/purchase-orders?status=Approved&customer=PVR"""
    conn = get_conn()
    try:
        orders = PurchaseOrderManager(conn).list_pos(
            status=request.args.get("status"), customer=request.args.get("customer")
        )
        return jsonify({"purchaseOrders": orders, "count": len(orders)}), 200
    finally:
        conn.close()


@bp.route("/purchase-orders", methods=["POST"])
@roles_required(*STOCK_ROLES)
def create_po():
    """
    POST /api/purchase-orders
    Body: {"customer": "PVR", "customerSite": "PVR Phoenix", "taxRate": 18, "discount": 0,
           "lineItems": [{"description": "Lamp Assembly", "quantity": 2, "unitPrice": 45000}]}
    """
    conn = get_conn()
    try:
        order = PurchaseOrderManager(conn).create_po(_json_body(), current_user())
        return jsonify({"purchaseOrder": order}), 201
    except ValueError as e:
        return error_response(e)
    except Exception as e:
        app_logger.error("Failed to create purchase order", error=str(e))
        return error_response(e)
    finally:
        conn.close()


@bp.route("/purchase-orders/<int:po_id>", methods=["GET"])
@login_required
def get_po(po_id):
    conn = get_conn()
    try:
        order = PurchaseOrderManager(conn).get_po(po_id)
        if not order:
            return jsonify({"error": "NotFound", "details": f"Purchase order {po_id} not found"}), 404
        return jsonify({"purchaseOrder": order}), 200
    finally:
        conn.close()


@bp.route("/purchase-orders/<int:po_id>", methods=["PUT"])
@roles_required(*STOCK_ROLES)
def update_po(po_id):
    conn = get_conn()
    try:
        order = PurchaseOrderManager(conn).update_po(po_id, _json_body())
        return jsonify({"purchaseOrder": order}), 200
    except (ValueError, LookupError) as e:
        return error_response(e)
    finally:
        conn.close()


@bp.route("/purchase-orders/<int:po_id>", methods=["DELETE"])
@roles_required(*STOCK_ROLES)
def delete_po(po_id):
    conn = get_conn()
    try:
        PurchaseOrderManager(conn).delete_po(po_id)
        return jsonify({"message": "Purchase order deleted"}), 200
    except LookupError as e:
        return error_response(e)
    finally:
        conn.close()
