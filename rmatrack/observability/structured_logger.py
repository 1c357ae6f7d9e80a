"""
Structured logging module for observability.
Emits one JSON object per line with request IDs, timestamps and severity levels.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from flask import g, has_request_context, request


class JsonFormatter(logging.Formatter):
    """Messages are already JSON strings; pass them through."""

    def format(self, record):
        return record.getMessage()


class StructuredLogger:
    """
    Provides structured logging with consistent formatting.
    Logs go to the console and to ``<log_dir>/app.log``.
    """

    def __init__(self, name: str, log_level: str = "INFO", log_dir: str = "logs"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        self.logger.propagate = False

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JsonFormatter())
            self.logger.addHandler(handler)

            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(os.path.join(log_dir, "app.log"))
            file_handler.setFormatter(JsonFormatter())
            self.logger.addHandler(file_handler)

    def _get_request_id(self) -> str:
        """Get or create request ID for current request context."""
        if has_request_context() and hasattr(g, "request_id"):
            return g.request_id
        return str(uuid.uuid4())

    def _build_log_entry(self, level: str, message: str, **kwargs) -> Dict[str, Any]:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
            "request_id": self._get_request_id(),
        }

        if kwargs:
            log_entry["context"] = kwargs

        if has_request_context():
            log_entry["request"] = {
                "method": request.method,
                "path": request.path,
                "remote_addr": request.remote_addr,
            }

        return log_entry

    def _emit(self, level: int, name: str, message: str, **kwargs):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, json.dumps(self._build_log_entry(name, message, **kwargs), default=str))

    def info(self, message: str, **kwargs):
        self._emit(logging.INFO, "INFO", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._emit(logging.WARNING, "WARNING", message, **kwargs)

    def error(self, message: str, **kwargs):
        self._emit(logging.ERROR, "ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._emit(logging.DEBUG, "DEBUG", message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._emit(logging.CRITICAL, "CRITICAL", message, **kwargs)


# Global logger instance
app_logger = StructuredLogger(
    "rmatrack",
    log_level=os.environ.get("LOG_LEVEL", "INFO"),
    log_dir=os.environ.get("APP_LOG_DIR", "logs"),
)
