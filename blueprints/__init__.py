"""
Blueprint registration for ExamPro Companion.

Student and AI routes live at the root; admin console routes under /api/admin.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.ai import bp as ai_bp
    from blueprints.billing import bp as billing_bp
    from blueprints.admin import bp as admin_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(admin_bp)
