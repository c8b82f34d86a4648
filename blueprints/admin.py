"""Admin console — analytics, users, payment review, question bank, notes, exams, settings."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from audit import log_event
from entitlement import APPROVED, PENDING, REJECTED, retry_grant
from errors import DecodeError, ValidationError
from helpers import admin_required, get_store, request_data
from models import MockExam, PaymentSettings, StudyNote
from question_bank import add_question, bank_progress, question_from_form

logger = logging.getLogger(__name__)

bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _decode_form(model, record: dict):
    """Run an admin form through the model decoder; shape errors are user errors."""
    try:
        return model.from_record(record)
    except DecodeError as e:
        raise ValidationError(str(e)) from e


def _as_int(data: dict, key: str, label: str) -> int:
    try:
        return int(data.get(key))
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number.")


# ── Analytics ─────────────────────────────────────────

@bp.route("/analytics")
@admin_required
def analytics():
    store = get_store()
    users = store.users.list()
    payments = store.payments.list()
    subjects = store.subjects.list()
    questions = store.questions.list()
    return jsonify({
        "users": len(users),
        "premium_users": sum(1 for u in users if u.is_premium),
        "pending_payments": sum(1 for p in payments if p.status == PENDING),
        "revenue": sum(p.amount for p in payments if p.status == APPROVED),
        "question_bank": bank_progress(subjects, questions),
    })


@bp.route("/users")
@admin_required
def users():
    return jsonify({"users": [u.to_dict() for u in get_store().users.list()]})


# ── Payment review ────────────────────────────────────

@bp.route("/payments")
@admin_required
def payments():
    status = request.args.get("status")
    items = get_store().payments.list()
    if status:
        items = [p for p in items if p.status == status]
    return jsonify({"payments": [p.to_dict() for p in items]})


def _review(payment_id: str, decision: str):
    outcome = get_store().update_payment_status(payment_id, decision)
    log_event(
        "payment_review", current_user.email,
        f"payment={payment_id} {outcome.previous_status}->{outcome.status} changed={outcome.changed}",
    )
    return jsonify(outcome.to_dict())


@bp.route("/payments/<payment_id>/approve", methods=["POST"])
@admin_required
def approve_payment(payment_id):
    return _review(payment_id, APPROVED)


@bp.route("/payments/<payment_id>/reject", methods=["POST"])
@admin_required
def reject_payment(payment_id):
    return _review(payment_id, REJECTED)


@bp.route("/payments/<payment_id>/retry-grant", methods=["POST"])
@admin_required
def retry_payment_grant(payment_id):
    outcome = retry_grant(get_store(), payment_id)
    log_event("payment_retry_grant", current_user.email, f"payment={payment_id} status={outcome.status}")
    return jsonify(outcome.to_dict())


# ── Question bank ─────────────────────────────────────

@bp.route("/questions")
@admin_required
def questions():
    subject_id = request.args.get("subjectId") or None
    return jsonify({"questions": [q.to_dict() for q in get_store().questions.list(subject_id)]})


@bp.route("/questions", methods=["POST"])
@admin_required
def create_question():
    question = add_question(get_store(), question_from_form(request_data()))
    return jsonify({"success": True, "question": question.to_dict()}), 201


@bp.route("/questions/progress")
@admin_required
def question_progress():
    store = get_store()
    return jsonify({"progress": bank_progress(store.subjects.list(), store.questions.list())})


# ── Notes ─────────────────────────────────────────────

@bp.route("/notes", methods=["POST"])
@admin_required
def create_note():
    """Save a note, either typed in or a draft returned by /notes/generate."""
    data = request_data()
    record = {
        "subjectId": (data.get("subjectId") or "").strip(),
        "topic": (data.get("topic") or "").strip(),
        "studentClass": data.get("studentClass") or data.get("class"),
        "chunks": data.get("chunks") or [],
    }
    if not record["subjectId"] or not record["topic"] or not record["chunks"]:
        raise ValidationError("Subject, topic and at least one section are required.")
    note = _decode_form(StudyNote, record)
    get_store().notes.save(note)
    logger.info("Note %s saved for %s/%s", note.id, note.subject_id, note.student_class)
    return jsonify({"success": True, "note": note.to_dict()}), 201


@bp.route("/notes/generate", methods=["POST"])
@admin_required
def generate_note_draft():
    from blueprints.ai import get_tutor

    data = request_data()
    topic = (data.get("topic") or "").strip()
    subject_id = (data.get("subjectId") or "").strip()
    student_class = data.get("studentClass") or data.get("class") or "SS3"
    if not topic or not subject_id:
        raise ValidationError("Topic and subject are required.")

    subject_name = next(
        (s.name for s in get_store().subjects.list() if s.id == subject_id), subject_id,
    )
    generated = get_tutor().generate_notes(topic, subject_name, student_class)
    return jsonify({
        "subjectId": subject_id,
        "studentClass": student_class,
        "topic": generated["topic"],
        "chunks": generated["chunks"],
    })


# ── Mock exams ────────────────────────────────────────

@bp.route("/exams", methods=["POST"])
@admin_required
def create_exam():
    data = request_data()
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Exam title is required.")
    try:
        fee = float(data.get("fee") or 0)
    except (TypeError, ValueError):
        raise ValidationError("Fee must be a number.")
    record = {
        "title": title,
        "durationMinutes": _as_int(data, "durationMinutes", "Duration"),
        "questionCount": _as_int(data, "questionCount", "Question count"),
        "fee": fee,
        "isPremium": bool(data.get("isPremium")),
        "subjects": data.get("subjects") or [],
    }
    exam = _decode_form(MockExam, record)
    get_store().exams.save(exam)
    return jsonify({"success": True, "exam": exam.to_dict()}), 201


# ── Payment settings ──────────────────────────────────

@bp.route("/settings")
@admin_required
def settings():
    return jsonify(get_store().settings.get().to_dict())


@bp.route("/settings", methods=["POST"])
@admin_required
def update_settings():
    data = request_data()
    record = {k: (data.get(k) or "").strip() for k in ("bank", "accountNumber", "accountName")}
    if not all(record.values()):
        raise ValidationError("Bank, account number and account name are required.")
    saved = get_store().settings.update(_decode_form(PaymentSettings, record))
    log_event("settings_updated", current_user.email, f"bank={saved.bank}")
    return jsonify({"success": True, "settings": saved.to_dict()})
