"""
Shared helpers used across blueprints.

Extracted from app.py to break circular dependencies.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, jsonify, request
from flask_login import current_user

from auth import login_manager


def get_store():
    """The CloudStore bound to the running app."""
    return current_app.extensions["cloud_store"]


def current_session():
    """The SyncSession of the signed-in user."""
    return current_user.session


def request_data() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def admin_required(f: Callable) -> Callable:
    """Decorator that requires the signed-in user to be the admin."""
    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not current_user.is_admin:
            return jsonify({"error": "Admin access required."}), 403
        return f(*args, **kwargs)
    return decorated
