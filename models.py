"""
Domain entities and their store-record codecs.

Every entity kind has an explicit decoder (``from_record``) that validates a
raw document-store record and converts it into a typed value, and an encoder
(``to_record``) producing the camelCase body the store expects. Decoders fail
with DecodeError on shape mismatches instead of letting missing fields leak
into the application.

The store's opaque ``objectId`` is mapped onto ``id``. Values that were
serialised by ``to_dict`` (which carries ``id`` instead of ``objectId``)
decode through the same path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from errors import DecodeError


ROLE_STUDENT = "STUDENT"
ROLE_ADMIN = "ADMIN"

PAYMENT_PREMIUM = "PREMIUM"
PAYMENT_MOCK_EXAM = "MOCK_EXAM"


# ── Field helpers ──────────────────────────────────────────────────────

def _record_id(record: dict) -> str:
    rid = record.get("objectId") or record.get("id") or ""
    return str(rid)


def _req(record: dict, key: str, kind: str, types: type | tuple[type, ...] = str) -> Any:
    if key not in record or record[key] is None:
        raise DecodeError(f"{kind} record is missing '{key}'")
    value = record[key]
    if not isinstance(value, types) or isinstance(value, bool) and bool not in _as_tuple(types):
        raise DecodeError(f"{kind} record field '{key}' has unexpected type {type(value).__name__}")
    return value


def _opt(record: dict, key: str, kind: str, types: type | tuple[type, ...] = str, default: Any = None) -> Any:
    if record.get(key) is None:
        return default
    return _req(record, key, kind, types)


def _as_tuple(types: type | tuple[type, ...]) -> tuple[type, ...]:
    return types if isinstance(types, tuple) else (types,)


def _str_list(record: dict, key: str, kind: str) -> list[str]:
    values = _opt(record, key, kind, list, default=[])
    if not all(isinstance(v, str) for v in values):
        raise DecodeError(f"{kind} record field '{key}' must be a list of strings")
    return list(values)


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


# ── Entities ───────────────────────────────────────────────────────────

@dataclass
class User:
    email: str
    name: str
    role: str = ROLE_STUDENT
    is_premium: bool = False
    progress: dict[str, float] = field(default_factory=dict)
    registered_subjects: list[str] = field(default_factory=list)
    student_class: str | None = None
    target_exam: str | None = None
    avatar_url: str | None = None
    theme: str = "light"
    referral_code: str | None = None
    referred_by: str | None = None
    referral_count: int = 0
    id: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_record(cls, record: dict) -> User:
        kind = "User"
        role = _opt(record, "role", kind, default=ROLE_STUDENT)
        if role not in (ROLE_STUDENT, ROLE_ADMIN):
            raise DecodeError(f"User record has unknown role '{role}'")
        progress = _opt(record, "progress", kind, dict, default={})
        for subject_id, pct in progress.items():
            if isinstance(pct, bool) or not isinstance(pct, (int, float)):
                raise DecodeError(f"User progress for '{subject_id}' is not a number")
        referral_count = _opt(record, "referralCount", kind, int, default=0)
        if referral_count < 0:
            raise DecodeError("User referralCount cannot be negative")
        return cls(
            id=_record_id(record),
            email=_req(record, "email", kind),
            name=_opt(record, "name", kind, default=""),
            role=role,
            is_premium=_opt(record, "isPremium", kind, bool, default=False),
            progress=dict(progress),
            registered_subjects=_str_list(record, "registeredSubjects", kind),
            student_class=_opt(record, "class", kind),
            target_exam=_opt(record, "targetExam", kind),
            avatar_url=_opt(record, "avatarUrl", kind),
            theme=_opt(record, "theme", kind, default="light"),
            referral_code=_opt(record, "referralCode", kind),
            referred_by=_opt(record, "referredBy", kind),
            referral_count=referral_count,
        )

    def to_record(self) -> dict:
        return _drop_none({
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "isPremium": self.is_premium,
            "progress": dict(self.progress),
            "registeredSubjects": list(self.registered_subjects),
            "class": self.student_class,
            "targetExam": self.target_exam,
            "avatarUrl": self.avatar_url,
            "theme": self.theme,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "referralCount": self.referral_count,
        })

    def profile_record(self) -> dict:
        """Fields a student may change about themselves.

        Entitlement and accounting fields are deliberately absent so a stale
        local copy can never overwrite an admin grant or a referral credit.
        """
        return _drop_none({
            "name": self.name,
            "progress": dict(self.progress),
            "registeredSubjects": list(self.registered_subjects),
            "class": self.student_class,
            "targetExam": self.target_exam,
            "avatarUrl": self.avatar_url,
            "theme": self.theme,
        })

    def to_dict(self) -> dict:
        data = self.to_record()
        data["id"] = self.id
        return data


@dataclass
class Subject:
    id: str
    name: str
    icon: str = ""
    color: str = ""

    @classmethod
    def from_record(cls, record: dict) -> Subject:
        kind = "Subject"
        # Subjects keep a readable slug in their own "id" field; questions and
        # notes reference that slug rather than the opaque objectId.
        sid = record.get("id") or record.get("objectId")
        if not sid:
            raise DecodeError("Subject record has no id")
        return cls(
            id=str(sid),
            name=_req(record, "name", kind),
            icon=_opt(record, "icon", kind, default=""),
            color=_opt(record, "color", kind, default=""),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "icon": self.icon, "color": self.color}


@dataclass
class Question:
    subject_id: str
    text: str
    options: list[str]
    correct_answer_index: int
    explanation: str = ""
    id: str = ""

    @classmethod
    def from_record(cls, record: dict) -> Question:
        kind = "Question"
        options = _str_list(record, "options", kind)
        if len(options) != 4:
            raise DecodeError(f"Question record must have 4 options, got {len(options)}")
        index = _req(record, "correctAnswerIndex", kind, int)
        if not 0 <= index <= 3:
            raise DecodeError(f"Question correctAnswerIndex {index} out of range")
        return cls(
            id=_record_id(record),
            subject_id=_req(record, "subjectId", kind),
            text=_req(record, "text", kind),
            options=options,
            correct_answer_index=index,
            explanation=_opt(record, "explanation", kind, default=""),
        )

    def to_record(self) -> dict:
        return {
            "subjectId": self.subject_id,
            "text": self.text,
            "options": list(self.options),
            "correctAnswerIndex": self.correct_answer_index,
            "explanation": self.explanation,
        }

    def to_dict(self) -> dict:
        data = self.to_record()
        data["id"] = self.id
        return data


@dataclass
class NoteChunk:
    title: str
    content: str
    key_takeaway: str | None = None
    common_mistake: str | None = None

    @classmethod
    def from_record(cls, record: dict) -> NoteChunk:
        if not isinstance(record, dict):
            raise DecodeError("Note chunk must be an object")
        kind = "NoteChunk"
        return cls(
            title=_req(record, "title", kind),
            content=_req(record, "content", kind),
            key_takeaway=_opt(record, "keyTakeaway", kind),
            common_mistake=_opt(record, "commonMistake", kind),
        )

    def to_record(self) -> dict:
        return _drop_none({
            "title": self.title,
            "content": self.content,
            "keyTakeaway": self.key_takeaway,
            "commonMistake": self.common_mistake,
        })


@dataclass
class StudyNote:
    subject_id: str
    topic: str
    student_class: str
    chunks: list[NoteChunk] = field(default_factory=list)
    id: str = ""

    @classmethod
    def from_record(cls, record: dict) -> StudyNote:
        kind = "StudyNote"
        chunks = _opt(record, "chunks", kind, list, default=[])
        return cls(
            id=_record_id(record),
            subject_id=_req(record, "subjectId", kind),
            topic=_req(record, "topic", kind),
            student_class=_req(record, "studentClass", kind),
            chunks=[NoteChunk.from_record(c) for c in chunks],
        )

    def to_record(self) -> dict:
        return {
            "subjectId": self.subject_id,
            "topic": self.topic,
            "studentClass": self.student_class,
            "chunks": [c.to_record() for c in self.chunks],
        }

    def to_dict(self) -> dict:
        data = self.to_record()
        data["id"] = self.id
        return data


@dataclass
class MockExam:
    title: str
    duration_minutes: int
    question_count: int
    fee: float = 0
    is_premium: bool = False
    subjects: list[str] = field(default_factory=list)
    id: str = ""

    @classmethod
    def from_record(cls, record: dict) -> MockExam:
        kind = "MockExam"
        return cls(
            id=_record_id(record),
            title=_req(record, "title", kind),
            duration_minutes=_req(record, "durationMinutes", kind, int),
            question_count=_req(record, "questionCount", kind, int),
            fee=_opt(record, "fee", kind, (int, float), default=0),
            is_premium=_opt(record, "isPremium", kind, bool, default=False),
            subjects=_str_list(record, "subjects", kind),
        )

    def to_record(self) -> dict:
        return {
            "title": self.title,
            "subjects": list(self.subjects),
            "durationMinutes": self.duration_minutes,
            "questionCount": self.question_count,
            "fee": self.fee,
            "isPremium": self.is_premium,
        }

    def to_dict(self) -> dict:
        data = self.to_record()
        data["id"] = self.id
        return data


@dataclass
class PaymentProof:
    user_email: str
    amount: float
    type: str
    status: str
    timestamp: str
    user_id: str = ""
    user_name: str = ""
    plan_id: str | None = None
    exam_id: str | None = None
    proof_url: str | None = None
    id: str = ""

    @classmethod
    def from_record(cls, record: dict) -> PaymentProof:
        from entitlement import ALL_STATUSES

        kind = "PaymentProof"
        ptype = _req(record, "type", kind)
        if ptype not in (PAYMENT_PREMIUM, PAYMENT_MOCK_EXAM):
            raise DecodeError(f"PaymentProof has unknown type '{ptype}'")
        status = _req(record, "status", kind)
        if status not in ALL_STATUSES:
            raise DecodeError(f"PaymentProof has unknown status '{status}'")
        return cls(
            id=_record_id(record),
            user_id=_opt(record, "userId", kind, default=""),
            user_name=_opt(record, "userName", kind, default=""),
            user_email=_req(record, "userEmail", kind),
            amount=_req(record, "amount", kind, (int, float)),
            type=ptype,
            status=status,
            timestamp=_opt(record, "timestamp", kind) or _opt(record, "createdAt", kind, default=""),
            plan_id=_opt(record, "planId", kind),
            exam_id=_opt(record, "examId", kind),
            proof_url=_opt(record, "proofUrl", kind),
        )

    def to_record(self) -> dict:
        return _drop_none({
            "userId": self.user_id,
            "userName": self.user_name,
            "userEmail": self.user_email,
            "amount": self.amount,
            "type": self.type,
            "status": self.status,
            "timestamp": self.timestamp,
            "planId": self.plan_id,
            "examId": self.exam_id,
            "proofUrl": self.proof_url,
        })

    def to_dict(self) -> dict:
        data = self.to_record()
        data["id"] = self.id
        return data


@dataclass
class PaymentSettings:
    bank: str
    account_number: str
    account_name: str
    id: str = ""

    @classmethod
    def from_record(cls, record: dict) -> PaymentSettings:
        kind = "PaymentSettings"
        return cls(
            id=_record_id(record),
            bank=_req(record, "bank", kind),
            account_number=_req(record, "accountNumber", kind),
            account_name=_req(record, "accountName", kind),
        )

    def to_record(self) -> dict:
        return {
            "bank": self.bank,
            "accountNumber": self.account_number,
            "accountName": self.account_name,
        }

    def to_dict(self) -> dict:
        return self.to_record()
