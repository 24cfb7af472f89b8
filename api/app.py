from __future__ import annotations

import time
import uuid
from typing import Optional

from flask import Flask, g, request, got_request_exception
from flask_cors import CORS

from config import FLASK_SECRET
from container import Services, build_services
from utils.debug_events import debug_enabled, record_event
from utils.error_handlers import register_error_handlers


def create_app(services: Optional[Services] = None) -> Flask:
    app = Flask(__name__)
    app.secret_key = FLASK_SECRET
    CORS(app, supports_credentials=True)
    app.extensions["estait"] = services or build_services()

    @app.before_request
    def _debug_request_start():
        rid = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        g.request_id = rid
        g.request_start_ts = time.time()
        if debug_enabled():
            record_event(
                "request",
                f"{request.method} {request.path} start",
                data={
                    "method": request.method,
                    "path": request.path,
                },
                request_id=rid,
            )

    @app.after_request
    def _debug_request_end(response):
        rid = getattr(g, "request_id", None)
        start_ts = getattr(g, "request_start_ts", None)
        duration_ms = int((time.time() - start_ts) * 1000) if start_ts else None
        response.headers["X-Request-Id"] = rid or response.headers.get("X-Request-Id", "")
        if debug_enabled():
            record_event(
                "request",
                f"{request.method} {request.path} end",
                data={
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                },
                request_id=rid,
            )
        return response

    def _log_exception(sender, exception, **extra):
        if not debug_enabled():
            return
        record_event(
            "error",
            f"{type(exception).__name__}",
            data={"error": str(exception), "path": request.path},
            request_id=getattr(g, "request_id", None),
            level="error",
        )

    got_request_exception.connect(_log_exception, app)

    # Register blueprints
    from routes.meta import meta_bp
    from routes.crm_auth import crm_auth_bp
    from routes.crm import crm_bp
    from routes.reminders import reminders_bp
    from routes.billing import billing_bp
    from routes.properties import properties_bp
    from routes.command import command_bp
    from routes.debug import debug_bp

    app.register_blueprint(meta_bp)
    app.register_blueprint(crm_auth_bp)
    app.register_blueprint(crm_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(properties_bp)
    app.register_blueprint(command_bp)
    app.register_blueprint(debug_bp)

    register_error_handlers(app)
    return app
