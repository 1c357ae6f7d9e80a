"""Request helpers shared by the API blueprints: connections, login and roles."""

from __future__ import annotations
from functools import wraps
from typing import Dict, Optional

from flask import current_app, g, jsonify, session

from rmatrack.dao import get_connection, get_user


def get_conn():
    """Get database connection."""
    return get_connection(current_app.config["DB_PATH"])


def current_user() -> Optional[Dict]:
    """The logged-in user, loaded once per request."""
    if "user_id" not in session:
        return None
    if "user" not in g:
        conn = get_conn()
        try:
            g.user = get_user(conn, session["user_id"])
        finally:
            conn.close()
    return g.user


def login_required(f):
    """Decorator to require user login."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return jsonify({"error": "Unauthorized", "details": "Login required"}), 401
        return f(*args, **kwargs)
    return decorated


def roles_required(*roles):
    """Decorator restricting a route to the given roles (implies login)."""
    def wrapper(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return jsonify({"error": "Unauthorized", "details": "Login required"}), 401
            if user["role"] not in roles:
                return jsonify({"error": "Forbidden", "details": f"Requires role: {', '.join(roles)}"}), 403
            return f(*args, **kwargs)
        return decorated
    return wrapper


def error_response(e: Exception):
    """Map manager exceptions onto the JSON error shape."""
    if isinstance(e, PermissionError):
        return jsonify({"error": "Forbidden", "details": str(e)}), 403
    if isinstance(e, LookupError):
        return jsonify({"error": "NotFound", "details": str(e)}), 404
    if isinstance(e, ValueError):
        return jsonify({"error": "ValidationError", "details": str(e)}), 400
    return jsonify({"error": "ServerError", "details": "Internal server error"}), 500
