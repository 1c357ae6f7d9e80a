from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional

from flask import Flask, g, jsonify, request, session
import time
import uuid

from .auth import current_user, get_conn, login_required
from .dao import authenticate, init_db
from .notifications import NotificationService
from .observability.structured_logger import app_logger
from .observability.metrics_collector import metrics_collector


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def create_app(test_config: Optional[Dict] = None) -> Flask:
    app = Flask(__name__)
    root = Path(__file__).resolve().parents[1]
    app.config.update(
        SECRET_KEY=os.environ.get("APP_SECRET_KEY", "dev-insecure-secret"),
        DB_PATH=os.environ.get("APP_DB_PATH", str(root / "app.sqlite")),
        LOG_DIR=os.environ.get("APP_LOG_DIR", "logs"),
        OVERDUE_DEFAULT_DAYS=int(os.environ.get("OVERDUE_DEFAULT_DAYS", "30")),
        SLA_BREACH_RATE_THRESHOLD=float(os.environ.get("SLA_BREACH_RATE_THRESHOLD", "25")),
        RMA_STRICT_TRANSITIONS=_env_flag("RMA_STRICT_TRANSITIONS"),
    )
    if test_config:
        app.config.update(test_config)

    from .rma.routes import bp as rma_bp
    from .rma.part_comment_routes import bp as part_comments_bp
    from .analytics.routes import bp as analytics_bp
    from .dtr.routes import bp as dtr_bp
    from .sites.routes import bp as sites_bp
    from .service.routes import bp as service_bp
    from .inventory.routes import bp as inventory_bp
    from .importer.routes import bp as importer_bp
    from .monitoring_routes import monitoring_bp

    for blueprint in (rma_bp, part_comments_bp, analytics_bp, dtr_bp, sites_bp, service_bp, inventory_bp,
                      importer_bp, monitoring_bp):
        app.register_blueprint(blueprint)

    init_db(app.config["DB_PATH"])

    # ============================================
    # OBSERVABILITY MIDDLEWARE
    # ============================================

    @app.before_request
    def before_request_observability():
        """Initialize request tracking for observability"""
        g.request_id = request.headers.get('X-Request-Id') or str(uuid.uuid4())
        g.start_time = time.time()
        app_logger.info(
            f"Request started: {request.method} {request.path}",
            method=request.method,
            path=request.path,
            remote_addr=request.remote_addr
        )

    @app.after_request
    def after_request_observability(response):
        """Record metrics after each request"""
        if hasattr(g, 'start_time'):
            duration = time.time() - g.start_time
            metrics_collector.record_request(
                request.endpoint or 'unknown', request.method, response.status_code, duration
            )
            app_logger.info(
                f"Request completed: {request.method} {request.path}",
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            if response.status_code >= 400:
                metrics_collector.increment_counter('errors_total')
                metrics_collector.record_event('errors_total')
                if response.status_code < 500:
                    metrics_collector.increment_counter('http_errors', labels={'type': '4xx'})
                else:
                    metrics_collector.increment_counter('http_errors', labels={'type': '5xx'})

        response.headers['X-Request-Id'] = getattr(g, 'request_id', '')
        return response

    @app.errorhandler(404)
    def not_found_error(error):
        app_logger.warning(f"404 Not Found: {request.path}")
        return jsonify({"error": "NotFound", "details": f"No route for {request.path}"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "MethodNotAllowed", "details": f"{request.method} not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app_logger.error("500 Internal Server Error", error=str(error))
        return jsonify({"error": "ServerError", "details": "Internal server error"}), 500

    # ============================================
    # ROUTES
    # ============================================

    @app.route("/health")
    def health_check():
        """Health check endpoint for Docker/monitoring"""
        return {
            'status': 'healthy',
            'timestamp': time.time(),
            'version': '1.0.0'
        }, 200

    @app.route("/auth/login", methods=["POST"])
    def login():
        """
        POST /auth/login
        Body: {"username": "manager", "password": "..."}
        """
        data = request.get_json(silent=True) or request.form
        username = (data.get("username") or "").strip()
        password = data.get("password") or ""
        if not username or not password:
            return jsonify({"error": "ValidationError", "details": "username and password are required"}), 400

        conn = get_conn()
        try:
            user = authenticate(conn, username, password)
        finally:
            conn.close()
        if not user:
            app_logger.warning("Failed login", username=username)
            return jsonify({"error": "Unauthorized", "details": "Invalid credentials"}), 401

        session.clear()
        session["user_id"] = user["id"]
        session["username"] = user["username"]
        session["role"] = user["role"]
        app_logger.info("User logged in", username=user["username"], role=user["role"])
        return jsonify({"user": {k: user[k] for k in ("id", "name", "username", "role", "email")}}), 200

    @app.route("/auth/logout", methods=["POST"])
    def logout():
        session.clear()
        return jsonify({"message": "Logged out"}), 200

    @app.route("/notifications")
    @login_required
    def notifications():
        """GET /notifications?unread=true"""
        user = current_user()
        unread_only = request.args.get("unread", "false").lower() == "true"
        conn = get_conn()
        try:
            items = NotificationService.get_user_notifications(conn, user["id"], unread_only=unread_only)
            unread = NotificationService.get_unread_count(conn, user["id"])
        finally:
            conn.close()
        return jsonify({"notifications": items, "unreadCount": unread}), 200

    @app.route("/notifications/<int:notification_id>/read", methods=["POST"])
    @login_required
    def mark_notification_read(notification_id):
        conn = get_conn()
        try:
            updated = NotificationService.mark_as_read(conn, notification_id, current_user()["id"])
        finally:
            conn.close()
        if not updated:
            return jsonify({"error": "NotFound", "details": "Notification not found or already read"}), 404
        return jsonify({"message": "Notification marked as read"}), 200

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
