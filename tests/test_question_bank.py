"""Tests for question_bank.py — builder validation, ceiling, readiness."""

from __future__ import annotations

import pytest

from catalog import DEFAULT_SUBJECTS, QUESTIONS_MAX
from errors import ValidationError
from models import Question
from question_bank import READY, UPDATING, add_question, bank_progress, question_from_form, readiness


def _form(**overrides):
    data = {
        "subjectId": "maths",
        "text": "What is 7 x 8?",
        "options": ["54", "56", "58", "64"],
        "correctAnswerIndex": 1,
        "explanation": "7 x 8 = 56",
    }
    data.update(overrides)
    return data


def _seed_questions(parse, subject_id, n):
    for i in range(n):
        parse.seed("Questions", {
            "subjectId": subject_id, "text": f"Q{i}", "options": ["a", "b", "c", "d"], "correctAnswerIndex": 0,
        })


class TestReadiness:
    def test_thresholds(self):
        assert readiness(0) == UPDATING
        assert readiness(39) == UPDATING
        assert readiness(40) == READY
        assert readiness(70) == READY


class TestQuestionFromForm:
    def test_valid(self):
        q = question_from_form(_form())
        assert q.correct_answer_index == 1
        assert q.options[1] == "56"

    @pytest.mark.parametrize("field,value", [
        ("subjectId", ""),
        ("text", "   "),
        ("options", ["a", "b", "c"]),
        ("options", ["a", "b", "", "d"]),
    ])
    def test_incomplete_rejected(self, field, value):
        with pytest.raises(ValidationError, match="Please fill all fields"):
            question_from_form(_form(**{field: value}))

    def test_index_out_of_range(self):
        with pytest.raises(ValidationError):
            question_from_form(_form(correctAnswerIndex=4))

    def test_index_not_a_number(self):
        with pytest.raises(ValidationError):
            question_from_form(_form(correctAnswerIndex="B"))


class TestAddQuestion:
    def test_adds_below_ceiling(self, store, parse):
        saved = add_question(store, question_from_form(_form()))
        assert saved.id
        assert store.questions.count_for("maths") == 1

    def test_seventieth_allowed_seventy_first_refused(self, store, parse):
        _seed_questions(parse, "maths", QUESTIONS_MAX - 1)
        add_question(store, question_from_form(_form()))
        assert store.questions.count_for("maths") == QUESTIONS_MAX

        with pytest.raises(ValidationError, match="Maximum limit of 70"):
            add_question(store, question_from_form(_form()))
        assert store.questions.count_for("maths") == QUESTIONS_MAX

    def test_ceiling_is_per_subject(self, store, parse):
        _seed_questions(parse, "maths", QUESTIONS_MAX)
        add_question(store, question_from_form(_form(subjectId="physics")))
        assert store.questions.count_for("physics") == 1


class TestBankProgress:
    def test_rows(self):
        questions = [Question("maths", "q", ["a", "b", "c", "d"], 0)] * 40
        questions += [Question("english", "q", ["a", "b", "c", "d"], 0)] * 39
        rows = {r["subject_id"]: r for r in bank_progress(DEFAULT_SUBJECTS, questions)}
        assert rows["maths"]["status"] == READY
        assert rows["english"]["status"] == UPDATING
        assert rows["physics"]["count"] == 0
        assert rows["maths"]["max"] == QUESTIONS_MAX
        assert rows["maths"]["percent"] == 57
