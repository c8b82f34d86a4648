"""
Rate limiter and the per-user SyncSession registry.

Each signed-in identity owns exactly one SyncSession. An identity is the
user's role plus normalised email (``STUDENT:ada@example.com``), so the admin
console and a student account never share a session even when the emails
match. Sessions are opened at login, restored from their persisted record
when a request arrives for an identity the process has not seen yet, closed
on logout and dropped by their own heartbeat once idle.
"""

from __future__ import annotations

import threading

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["200 per hour"])


def session_identity(role: str, email: str) -> str:
    return f"{role.strip().upper()}:{email.strip().lower()}"


def parse_identity(identity: str) -> tuple[str, str] | None:
    """Split an identity into (role, email); None when it is malformed."""
    role, sep, email = (identity or "").partition(":")
    if not sep or not role or not email:
        return None
    return role.upper(), email.strip().lower()


class SessionManager:
    """Registry of live SyncSessions keyed by session identity."""

    _sessions: dict = {}
    _lock = threading.Lock()

    @classmethod
    def _build(cls, app, identity: str):
        from scheduler import get_scheduler
        from session_store import store_for
        from sync import SyncSession

        return SyncSession(
            store=app.extensions["cloud_store"],
            session_store=store_for(app.config["SESSION_DATA_DIR"], identity),
            interval=app.config.get("SYNC_INTERVAL_SECONDS", 15),
            jitter=app.config.get("SYNC_JITTER_SECONDS", 0),
            scheduler=get_scheduler(),
            idle_timeout=app.config.get("SESSION_IDLE_SECONDS", 0),
            on_expire=lambda session: cls._discard(identity, session),
        )

    @classmethod
    def _discard(cls, identity: str, session) -> None:
        with cls._lock:
            if cls._sessions.get(identity) is session:
                del cls._sessions[identity]

    @classmethod
    def get(cls, identity: str):
        with cls._lock:
            return cls._sessions.get(identity)

    @classmethod
    def count(cls) -> int:
        with cls._lock:
            return len(cls._sessions)

    @classmethod
    def open(cls, app, user):
        """Start (or restart) the session for a freshly authenticated user."""
        identity = session_identity(user.role, user.email)
        with cls._lock:
            session = cls._sessions.get(identity)
            if session is None or session.closed:
                session = cls._build(app, identity)
                cls._sessions[identity] = session
        session.login(user)
        return session

    @classmethod
    def restore(cls, app, identity: str):
        """Rehydrate a session from its persisted record, without a store round-trip.

        Returns None when the identity is malformed, nothing was persisted
        for it, or the persisted user does not match it.
        """
        parsed = parse_identity(identity)
        if parsed is None:
            return None
        role, email = parsed
        identity = session_identity(role, email)
        with cls._lock:
            session = cls._sessions.get(identity)
            if session is not None and not session.closed:
                return session if session.user is not None else None
            session = cls._build(app, identity)
            user = session.user
            if user is None or user.role != role or user.email.strip().lower() != email:
                return None
            cls._sessions[identity] = session
        session.start_heartbeat()
        return session

    @classmethod
    def end(cls, identity: str) -> None:
        with cls._lock:
            session = cls._sessions.pop(identity, None)
        if session is not None:
            session.logout()

    @classmethod
    def reset(cls) -> None:
        """Close every live session (process teardown and tests)."""
        with cls._lock:
            sessions = list(cls._sessions.values())
            cls._sessions.clear()
        for session in sessions:
            session.close()
