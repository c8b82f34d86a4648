"""Question builder rules — field validation, per-subject ceiling, readiness."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from catalog import QUESTIONS_MAX, QUESTIONS_READY_MIN
from errors import ValidationError
from models import Question

if TYPE_CHECKING:
    from cloud_store import CloudStore

logger = logging.getLogger(__name__)

READY = "Ready"
UPDATING = "Updating"


def readiness(count: int) -> str:
    """Label a subject's question bank: Ready at 40 or more, else Updating."""
    return READY if count >= QUESTIONS_READY_MIN else UPDATING


def question_from_form(data: dict) -> Question:
    """Build a Question from admin form input, rejecting incomplete entries."""
    subject_id = (data.get("subjectId") or "").strip()
    text = (data.get("text") or "").strip()
    options = data.get("options") or []
    if not isinstance(options, list):
        raise ValidationError("Options must be a list.")
    options = [str(o).strip() for o in options]

    if not subject_id or not text or len(options) != 4 or any(not o for o in options):
        raise ValidationError("Please fill all fields before saving.")

    try:
        index = int(data.get("correctAnswerIndex", 0))
    except (TypeError, ValueError):
        raise ValidationError("Correct answer must be an option number.")
    if not 0 <= index <= 3:
        raise ValidationError("Correct answer must be one of the four options.")

    return Question(
        subject_id=subject_id,
        text=text,
        options=options,
        correct_answer_index=index,
        explanation=(data.get("explanation") or "").strip(),
    )


def add_question(store: CloudStore, question: Question) -> Question:
    """Save a new question unless its subject already holds the maximum."""
    count = store.questions.count_for(question.subject_id)
    if count >= QUESTIONS_MAX:
        raise ValidationError(
            f"Maximum limit of {QUESTIONS_MAX} questions reached for this subject."
        )
    question.id = ""
    saved = store.questions.save(question)
    logger.info("Question %s added to %s (%d/%d)", saved.id, question.subject_id, count + 1, QUESTIONS_MAX)
    return saved


def bank_progress(subjects: list, questions: list[Question]) -> list[dict]:
    """Per-subject counts for the admin progress tracker."""
    counts: dict[str, int] = {}
    for q in questions:
        counts[q.subject_id] = counts.get(q.subject_id, 0) + 1
    rows = []
    for s in subjects:
        count = counts.get(s.id, 0)
        rows.append({
            "subject_id": s.id,
            "subject": s.name,
            "count": count,
            "max": QUESTIONS_MAX,
            "status": readiness(count),
            "percent": min(100, round(count / QUESTIONS_MAX * 100)),
        })
    return rows
