"""Core routes — dashboard, subjects, profile edits, lessons, exams, notifications, sync, health checks."""

from __future__ import annotations

import dataclasses
import logging
import time

from flask import Blueprint, jsonify
from flask_login import login_required
from flask_wtf.csrf import generate_csrf

from catalog import EXAM_TYPES, STUDENT_CLASSES, THEMES
from errors import ConnectivityError, ValidationError
from helpers import current_session, get_store, request_data

logger = logging.getLogger(__name__)

bp = Blueprint("core", __name__)


def _sync_status(session) -> dict:
    return {
        "loading": session.loading,
        "last_synced_at": session.last_synced_at,
        "version": session.version,
        "heartbeat": session.heartbeat_running,
    }


def _subjects(session) -> list:
    return list(session.content.subjects) or get_store().subjects.list()


# ── Dashboard ─────────────────────────────────────────

@bp.route("/api/dashboard")
@login_required
def dashboard():
    session = current_session()
    user = session.user
    by_id = {s.id: s for s in _subjects(session)}
    registered = []
    for subject_id in user.registered_subjects:
        subject = by_id.get(subject_id)
        registered.append({
            "id": subject_id,
            "name": subject.name if subject else subject_id,
            "icon": subject.icon if subject else "",
            "color": subject.color if subject else "",
            "progress": user.progress.get(subject_id, 0),
        })
    return jsonify({
        "user": user.to_dict(),
        "is_premium": user.is_premium,
        "subjects": registered,
        "sync": _sync_status(session),
    })


# ── Subjects and profile ──────────────────────────────

@bp.route("/api/subjects")
@login_required
def subjects():
    session = current_session()
    registered = set(session.user.registered_subjects)
    return jsonify({
        "subjects": [
            dict(s.to_dict(), registered=s.id in registered) for s in _subjects(session)
        ],
    })


@bp.route("/api/subjects/<subject_id>/toggle", methods=["POST"])
@login_required
def toggle_subject(subject_id):
    session = current_session()
    user = session.user
    current = list(user.registered_subjects)
    if subject_id in current:
        current.remove(subject_id)
    else:
        # Stale ids can still be removed; only catalog subjects can be added
        if subject_id not in {s.id for s in _subjects(session)}:
            raise ValidationError(f"Unknown subject: {subject_id}")
        current.append(subject_id)
    updated = dataclasses.replace(user, registered_subjects=current)
    session.update_user(updated)
    return jsonify({"success": True, "registered_subjects": current})


@bp.route("/api/subjects/<subject_id>/questions")
@login_required
def subject_questions(subject_id):
    questions = get_store().questions.list(subject_id)
    return jsonify({"subject_id": subject_id, "questions": [q.to_dict() for q in questions]})


@bp.route("/api/profile", methods=["POST"])
@login_required
def update_profile():
    """Edit name, avatar, class, target exam or theme.

    Only the fields present in the request change. Entitlement fields are
    never accepted here.
    """
    session = current_session()
    data = request_data()
    changes: dict = {}

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty.")
        changes["name"] = name
    if "avatarUrl" in data:
        changes["avatar_url"] = data.get("avatarUrl") or None
    if "class" in data:
        if data["class"] not in STUDENT_CLASSES:
            raise ValidationError(f"Class must be one of {', '.join(STUDENT_CLASSES)}.")
        changes["student_class"] = data["class"]
    if "targetExam" in data:
        if data["targetExam"] not in EXAM_TYPES:
            raise ValidationError(f"Target exam must be one of {', '.join(EXAM_TYPES)}.")
        changes["target_exam"] = data["targetExam"]
    if "theme" in data:
        if data["theme"] not in THEMES:
            raise ValidationError("Theme must be light or dark.")
        changes["theme"] = data["theme"]

    if not changes:
        raise ValidationError("Nothing to update.")
    updated = dataclasses.replace(session.user, **changes)
    session.update_user(updated)
    return jsonify({"success": True, "user": updated.to_dict()})


@bp.route("/api/theme/toggle", methods=["POST"])
@login_required
def toggle_theme():
    session = current_session()
    user = session.user
    theme = "light" if user.theme == "dark" else "dark"
    session.update_user(dataclasses.replace(user, theme=theme))
    return jsonify({"success": True, "theme": theme})


# ── Study content ─────────────────────────────────────

@bp.route("/api/lessons")
@login_required
def lessons():
    """Notes for each registered subject at the student's class level."""
    session = current_session()
    user = session.user
    notes = session.content.notes
    grouped = []
    for subject_id in user.registered_subjects:
        grouped.append({
            "subject_id": subject_id,
            "notes": [
                n.to_dict() for n in notes
                if n.subject_id == subject_id and n.student_class == user.student_class
            ],
        })
    return jsonify({"class": user.student_class, "lessons": grouped})


@bp.route("/api/exams")
@login_required
def exams():
    return jsonify({"exams": [e.to_dict() for e in current_session().content.exams]})


# ── Notifications and sync ────────────────────────────

@bp.route("/api/notifications")
@login_required
def notifications():
    return jsonify({"notifications": current_session().pop_notifications()})


@bp.route("/api/sync/status")
@login_required
def sync_status():
    return jsonify(_sync_status(current_session()))


@bp.route("/api/sync", methods=["POST"])
@login_required
def sync_now():
    session = current_session()
    ran = session.run_cycle(background=False)
    return jsonify(dict(_sync_status(session), ran=ran))


@bp.route("/api/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


# ── Health checks ─────────────────────────────────────

_start_time = time.time()


@bp.route("/health")
def health():
    uptime = int(time.time() - _start_time)
    return jsonify({"status": "ok", "uptime_seconds": uptime})


@bp.route("/ready")
def ready():
    try:
        get_store().client.count("Subjects")
        return jsonify({"status": "ready"}), 200
    except ConnectivityError as exc:
        logger.error("Readiness check failed: %s", exc)
        return jsonify({"status": "not_ready"}), 503
