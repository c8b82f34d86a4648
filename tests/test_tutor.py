"""Tests for tutor.py and the AI routes — response validation and error mapping."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from errors import ConnectivityError, DecodeError
from tutor import NOTES_CACHE_TTL, TutorService, parse_notes, parse_quiz

QUIZ = [
    {"question": "H2O is?", "options": ["Salt", "Water", "Acid", "Base"],
     "correctAnswerIndex": 1, "explanation": "Two hydrogens, one oxygen."},
]
NOTES = {
    "topic": "Acids",
    "chunks": [{"title": "Definition", "content": "Proton donors.", "commonMistake": "Mixing up pH"}],
}


class TestParseNotes:
    def test_valid(self):
        notes = parse_notes(json.dumps(NOTES))
        assert notes["topic"] == "Acids"
        assert notes["chunks"][0]["commonMistake"] == "Mixing up pH"
        assert "keyTakeaway" not in notes["chunks"][0]

    def test_code_fence_tolerated(self):
        assert parse_notes("```json\n" + json.dumps(NOTES) + "\n```")["topic"] == "Acids"

    @pytest.mark.parametrize("text", [
        "not json",
        json.dumps({"chunks": []}),
        json.dumps({"topic": "x", "chunks": []}),
        json.dumps({"topic": "x", "chunks": [{"title": "no content"}]}),
    ])
    def test_malformed(self, text):
        with pytest.raises(DecodeError):
            parse_notes(text)


class TestParseQuiz:
    def test_valid(self):
        assert parse_quiz(json.dumps(QUIZ))[0]["correctAnswerIndex"] == 1

    def test_float_index_accepted(self):
        item = dict(QUIZ[0], correctAnswerIndex=2.0)
        assert parse_quiz(json.dumps([item]))[0]["correctAnswerIndex"] == 2

    @pytest.mark.parametrize("item", [
        dict(QUIZ[0], options=["a", "b", "c"]),
        dict(QUIZ[0], correctAnswerIndex=4),
        dict(QUIZ[0], correctAnswerIndex=True),
        {"options": ["a", "b", "c", "d"], "correctAnswerIndex": 0},
    ])
    def test_malformed_items(self, item):
        with pytest.raises(DecodeError):
            parse_quiz(json.dumps([item]))

    def test_not_a_list(self):
        with pytest.raises(DecodeError):
            parse_quiz(json.dumps({"questions": QUIZ}))


class TestTutorService:
    def test_requires_key(self):
        with pytest.raises(EnvironmentError):
            TutorService("")

    @patch("tutor.resilient_llm_call")
    def test_respond_includes_context(self, mock_call):
        mock_call.return_value = ("  Photosynthesis makes food.  ", {"latency_ms": 5})
        reply = TutorService("key").respond("What is photosynthesis?", context="Biology SS2")
        assert reply == "Photosynthesis makes food."
        prompt = mock_call.call_args[0][2]
        assert "ExamPro AI" in prompt
        assert "Context: Biology SS2" in prompt

    @patch("tutor.resilient_llm_call")
    def test_notes_cached_json_call(self, mock_call):
        mock_call.return_value = (json.dumps(NOTES), {"latency_ms": 5})
        TutorService("key").generate_notes("Acids", "Chemistry", "SS2")
        kwargs = mock_call.call_args[1]
        assert kwargs["json_mode"] is True
        assert kwargs["cache_ttl"] == NOTES_CACHE_TTL


class TestAIRoutes:
    def test_intro(self, student_client):
        data = student_client.get("/api/tutor").get_json()
        assert "ExamPro AI Tutor" in data["welcome"]
        assert len(data["suggestions"]) == 4

    @patch("tutor.resilient_llm_call")
    def test_chat(self, mock_call, student_client):
        mock_call.return_value = ("Use SOHCAHTOA.", {"latency_ms": 1})
        resp = student_client.post("/api/tutor/chat", json={"query": "Trig tips?"})
        assert resp.get_json() == {"reply": "Use SOHCAHTOA."}

    def test_chat_requires_query(self, student_client):
        assert student_client.post("/api/tutor/chat", json={"query": " "}).status_code == 400

    @patch("tutor.resilient_llm_call")
    def test_quiz(self, mock_call, student_client):
        mock_call.return_value = (json.dumps(QUIZ), {"latency_ms": 1})
        resp = student_client.post("/api/ai/quiz", json={"topic": "Water", "count": 1})
        assert resp.get_json()["questions"][0]["options"][1] == "Water"

    @patch("tutor.resilient_llm_call")
    def test_malformed_model_output_is_502(self, mock_call, student_client):
        mock_call.return_value = ("Sure! Here are some questions...", {"latency_ms": 1})
        resp = student_client.post("/api/ai/quiz", json={"topic": "Water"})
        assert resp.status_code == 502

    @patch("tutor.resilient_llm_call")
    def test_ai_unavailable_is_503(self, mock_call, student_client):
        mock_call.side_effect = ConnectivityError("AI service error")
        resp = student_client.post("/api/tutor/chat", json={"query": "Hello"})
        assert resp.status_code == 503

    @patch("tutor.resilient_llm_call")
    def test_notes_default_to_student_class(self, mock_call, student_client):
        mock_call.return_value = (json.dumps(NOTES), {"latency_ms": 1})
        resp = student_client.post("/api/ai/notes", json={"topic": "Acids", "subject": "Chemistry"})
        assert resp.status_code == 200
        assert "(SS3)" in mock_call.call_args[0][2]

    def test_missing_key_is_503(self, app, student_client):
        app.config["GOOGLE_API_KEY"] = ""
        resp = student_client.post("/api/tutor/chat", json={"query": "Hello"})
        assert resp.status_code == 503
