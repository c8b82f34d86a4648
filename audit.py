"""
Audit logging — records security-relevant events.

Events go to the structured log under the ``audit`` logger; the document
store is not written to.
"""

from __future__ import annotations

import logging

from flask import has_request_context, request

logger = logging.getLogger("audit")


def log_event(action: str, email: str | None = None, detail: str = "") -> None:
    """Emit one audit line for a security-relevant action."""
    ip = ""
    if has_request_context():
        ip = request.remote_addr or ""
    logger.info("audit: %s email=%s detail=%s ip=%s", action, email or "-", detail, ip)
