from __future__ import annotations

from flask import Flask
from werkzeug.exceptions import HTTPException

from config import log
from utils.errors import ServiceError
from utils.json_helpers import jerror


# =========================
# Error Handlers
# =========================
def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def service_error(e: ServiceError):
        return jerror(e.message, e.status, e.code)

    @app.errorhandler(404)
    def not_found(_):
        return jerror("Route not found", 404, "not_found")

    @app.errorhandler(405)
    def method_not_allowed(_):
        return jerror("Method not allowed", 405, "method_not_allowed")

    @app.errorhandler(500)
    def internal(_):
        return jerror("Internal server error", 500, "internal_error")

    @app.errorhandler(Exception)
    def unhandled(e: Exception):
        if isinstance(e, HTTPException):
            return jerror(e.description or e.name, e.code or 500, "http_error")
        log.exception("Unhandled error: %s", type(e).__name__)
        return jerror("Something went wrong. Please try again.", 500, "internal_error")
