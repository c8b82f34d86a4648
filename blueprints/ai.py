"""AI tutor chat, note generation and quiz generation routes."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify
from flask_login import login_required

from errors import ConnectivityError, ValidationError
from extensions import limiter
from helpers import current_session, request_data
from tutor import SUGGESTIONS, WELCOME_MESSAGE, TutorService

logger = logging.getLogger(__name__)

bp = Blueprint("ai", __name__)

MAX_QUIZ_QUESTIONS = 20


def get_tutor() -> TutorService:
    try:
        return TutorService.from_config(current_app.config)
    except EnvironmentError as e:
        raise ConnectivityError("AI tutor is not configured.") from e


@bp.route("/api/tutor")
@login_required
def tutor_intro():
    return jsonify({"welcome": WELCOME_MESSAGE, "suggestions": SUGGESTIONS})


@bp.route("/api/tutor/chat", methods=["POST"])
@login_required
@limiter.limit("30 per minute")
def tutor_chat():
    data = request_data()
    query = (data.get("query") or data.get("message") or "").strip()
    if not query:
        raise ValidationError("Please type a question for the tutor.")
    reply = get_tutor().respond(query, context=(data.get("context") or None))
    return jsonify({"reply": reply})


@bp.route("/api/ai/notes", methods=["POST"])
@login_required
@limiter.limit("10 per minute")
def generate_notes():
    data = request_data()
    topic = (data.get("topic") or "").strip()
    subject = (data.get("subject") or data.get("subjectId") or "").strip()
    student_class = data.get("class") or current_session().user.student_class or "SS3"
    if not topic or not subject:
        raise ValidationError("Topic and subject are required.")
    notes = get_tutor().generate_notes(topic, subject, student_class)
    return jsonify(notes)


@bp.route("/api/ai/quiz", methods=["POST"])
@login_required
@limiter.limit("10 per minute")
def generate_quiz():
    data = request_data()
    topic = (data.get("topic") or "").strip()
    if not topic:
        raise ValidationError("Topic is required.")
    try:
        count = int(data.get("count", 5))
    except (TypeError, ValueError):
        raise ValidationError("Count must be a number.")
    count = max(1, min(MAX_QUIZ_QUESTIONS, count))
    return jsonify({"topic": topic, "questions": get_tutor().generate_quiz(topic, count)})
