"""
ExamPro Companion — Flask Web Application

Exam-prep client and admin console for Nigerian secondary school students,
backed by a hosted Parse document store and Gemini.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from flask import Flask, Response, jsonify, request as flask_request
from flask_login import current_user

from auth import auth_bp, login_manager
from blueprints import register_blueprints
from cloud_store import CloudStore
from errors import ExamProError
from extensions import limiter

logger = logging.getLogger(__name__)


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)

    # Load config
    from config import config_by_name
    if test_config is not None:
        app.config.from_object(config_by_name["testing"])
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        if hasattr(cfg, "validate"):
            cfg.validate()

    app.secret_key = app.config.get("SECRET_KEY", os.environ.get('SECRET_KEY', 'dev-key-change-in-production'))

    # CSRF protection
    try:
        from flask_wtf.csrf import CSRFProtect
        csrf = CSRFProtect(app)
        app.extensions["csrf"] = csrf
    except ImportError:
        csrf = None

    # Structured logging
    from logging_config import init_logging
    init_logging(app)

    # Document store gateway (tests inject one backed by an in-memory transport)
    app.extensions["cloud_store"] = app.config.get("CLOUD_STORE") or CloudStore.from_config(app.config)

    # Rate limiter (disabled in testing)
    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    # Register auth blueprint and login manager
    app.register_blueprint(auth_bp)
    login_manager.init_app(app)

    # Register all application blueprints
    register_blueprints(app)

    # Navigation sync: a signed-in GET to a different view refreshes the session
    @app.before_request
    def sync_on_navigation() -> None:
        if flask_request.method != "GET" or not flask_request.endpoint:
            return
        if flask_request.endpoint == "static" or not current_user.is_authenticated:
            return
        current_user.session.navigate(flask_request.endpoint)

    @app.errorhandler(ExamProError)
    def handle_app_error(e: ExamProError):
        if e.status_code >= 500:
            logger.warning("%s on %s: %s", type(e).__name__, flask_request.path, e)
        return jsonify(e.to_dict()), e.status_code

    # Security headers
    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Shared scheduler for the per-session sync heartbeats
    from scheduler import init_scheduler
    init_scheduler(app)

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
