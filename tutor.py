"""
AI Tutor — chat replies, study-note generation and quiz generation using Gemini.

Replies are plain text. Notes and quizzes are requested as JSON and checked
against their expected shapes before they reach a caller.
"""

from __future__ import annotations

import json
import logging

from ai_resilience import resilient_llm_call
from errors import DecodeError
from models import NoteChunk

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"
NOTES_CACHE_TTL = 86400

TUTOR_PROMPT = """You are ExamPro AI, a friendly Nigerian tutor for secondary school students preparing for WAEC, JAMB and NECO.
{context}
User Query: {query}
Respond in a helpful, encouraging way. Use Nigerian context where appropriate."""

NOTES_PROMPT = """You are an expert Nigerian teacher for secondary school students ({student_class}).
Generate simplified, engaging study notes for the topic: "{topic}" in the subject: "{subject}".
Break the content into small chunks. Use relatable Nigerian examples.
Highlight common mistakes students make in exams like WAEC/JAMB.

Return JSON only, shaped as:
{{"topic": str, "chunks": [{{"title": str, "content": str, "keyTakeaway": str, "commonMistake": str}}]}}"""

QUIZ_PROMPT = """Generate {count} multiple choice questions for the topic "{topic}" suitable for JAMB/WAEC level.

Return a JSON array only. Each item:
{{"question": str, "options": [4 strings], "correctAnswerIndex": 0-3, "explanation": str}}"""

WELCOME_MESSAGE = (
    "Hello! I'm your ExamPro AI Tutor. Ask me anything about your subjects, "
    "or ask me to explain a topic in a simple way!"
)

SUGGESTIONS = [
    "Explain photosynthesis simply",
    "JAMB Math Trigonometry tips",
    "How to prepare for WAEC English",
    "Quiz me on Chemistry Acids",
]


def _load_json(text: str):
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    try:
        return json.loads(cleaned)
    except ValueError as e:
        raise DecodeError(f"AI response was not valid JSON: {e}") from e


def parse_notes(text: str) -> dict:
    """Validate a note-generation response into {topic, chunks[...]}."""
    data = _load_json(text)
    if not isinstance(data, dict) or not isinstance(data.get("topic"), str):
        raise DecodeError("AI notes response is missing 'topic'")
    chunks = data.get("chunks")
    if not isinstance(chunks, list) or not chunks:
        raise DecodeError("AI notes response has no chunks")
    return {
        "topic": data["topic"],
        "chunks": [NoteChunk.from_record(c).to_record() for c in chunks],
    }


def parse_quiz(text: str) -> list[dict]:
    """Validate a quiz-generation response into a list of question dicts."""
    data = _load_json(text)
    if not isinstance(data, list):
        raise DecodeError("AI quiz response is not a list")
    items = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise DecodeError(f"Quiz item {i} is not an object")
        options = item.get("options")
        index = item.get("correctAnswerIndex")
        if (
            not isinstance(item.get("question"), str)
            or not isinstance(options, list)
            or len(options) != 4
            or not all(isinstance(o, str) for o in options)
        ):
            raise DecodeError(f"Quiz item {i} needs a question and four options")
        # JSON numbers may come back as 2.0
        if isinstance(index, float) and index.is_integer():
            index = int(index)
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index <= 3:
            raise DecodeError(f"Quiz item {i} has an invalid correctAnswerIndex")
        items.append({
            "question": item["question"],
            "options": options,
            "correctAnswerIndex": index,
            "explanation": str(item.get("explanation", "")),
        })
    return items


class TutorService:
    """Gemini-backed tutor for one configured API key."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        if not api_key:
            raise EnvironmentError("GOOGLE_API_KEY not set")
        self.api_key = api_key
        self.model = model

    @classmethod
    def from_config(cls, config: dict) -> TutorService:
        return cls(config.get("GOOGLE_API_KEY", ""), config.get("GEMINI_MODEL", DEFAULT_MODEL))

    def respond(self, query: str, context: str | None = None) -> str:
        prompt = TUTOR_PROMPT.format(
            context=f"Context: {context}" if context else "",
            query=query,
        )
        text, meta = resilient_llm_call(self.api_key, self.model, prompt)
        logger.debug("Tutor reply in %sms", meta["latency_ms"])
        return text.strip()

    def generate_notes(self, topic: str, subject: str, student_class: str) -> dict:
        prompt = NOTES_PROMPT.format(topic=topic, subject=subject, student_class=student_class)
        text, _ = resilient_llm_call(
            self.api_key, self.model, prompt, json_mode=True, cache_ttl=NOTES_CACHE_TTL,
        )
        return parse_notes(text)

    def generate_quiz(self, topic: str, count: int = 5) -> list[dict]:
        prompt = QUIZ_PROMPT.format(topic=topic, count=count)
        text, _ = resilient_llm_call(self.api_key, self.model, prompt, json_mode=True)
        return parse_quiz(text)
