"""
Remote Data Gateway — typed access to the hosted Parse document store.

``ParseClient`` is the transport: it speaks the Parse REST API (one class per
entity kind under ``/classes/<Class>``) with requests, maps transport failures
to ConnectivityError and applies a per-request timeout.

``CloudStore`` groups one collection object per entity kind. Each collection
exposes ``list()``, ``get_by_key()`` and ``save()``, decoding raw records into
the typed entities from models.py. Users are keyed by email, not objectId.

Usage:
    store = CloudStore.from_config(app.config)
    user = store.users.get_by_key("ada@example.com")
    store.update_payment_status(payment_id, "APPROVED")
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import requests

from errors import ConnectivityError, StateError
from models import (
    MockExam,
    PaymentProof,
    PaymentSettings,
    Question,
    StudyNote,
    Subject,
    User,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://parseapi.back4app.com/classes"
DEFAULT_TIMEOUT = 10
# Parse caps unqualified queries at 100 rows
DEFAULT_LIMIT = 1000
REFERRAL_CODE_ATTEMPTS = 10


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class ParseClient:
    """Thin REST client for Parse-compatible backends (Back4App)."""

    def __init__(
        self,
        app_id: str,
        rest_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "X-Parse-Application-Id": app_id,
            "X-Parse-REST-API-Key": rest_key,
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, params: dict | None = None,
                 body: dict | None = None, allow_missing: bool = False) -> Any:
        url = f"{self.base_url}/{path}"
        try:
            resp = self.session.request(
                method, url, params=params, json=body, timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Parse %s %s failed: %s", method, path, e)
            raise ConnectivityError(f"Cloud store unreachable: {e}") from e

        if resp.status_code == 404 and allow_missing:
            return None
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error", resp.text)
            except ValueError:
                detail = resp.text
            logger.warning("Parse %s %s returned %s: %s", method, path, resp.status_code, detail)
            raise ConnectivityError(f"Cloud store error {resp.status_code}: {detail}")

        try:
            return resp.json()
        except ValueError as e:
            raise ConnectivityError(f"Cloud store returned invalid JSON for {path}") from e

    def find(self, class_name: str, where: dict | None = None, order: str | None = None,
             limit: int = DEFAULT_LIMIT) -> list[dict]:
        params: dict[str, Any] = {"limit": limit}
        if where:
            params["where"] = json.dumps(where)
        if order:
            params["order"] = order
        data = self._request("GET", class_name, params=params)
        return list(data.get("results") or [])

    def count(self, class_name: str, where: dict | None = None) -> int:
        params: dict[str, Any] = {"count": 1, "limit": 0}
        if where:
            params["where"] = json.dumps(where)
        data = self._request("GET", class_name, params=params)
        return int(data.get("count", 0))

    def get(self, class_name: str, object_id: str) -> dict | None:
        return self._request("GET", f"{class_name}/{object_id}", allow_missing=True)

    def create(self, class_name: str, body: dict) -> dict:
        return self._request("POST", class_name, body=body)

    def update(self, class_name: str, object_id: str, body: dict) -> dict:
        return self._request("PUT", f"{class_name}/{object_id}", body=body)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class _Collection:
    """Generic list/get/save over one Parse class."""

    class_name = ""
    model: Any = None
    order: str | None = None

    def __init__(self, client: ParseClient):
        self.client = client

    def _decode(self, records: list[dict]) -> list:
        return [self.model.from_record(r) for r in records]

    def list(self) -> list:
        return self._decode(self.client.find(self.class_name, order=self.order))

    def get_by_key(self, key: str):
        record = self.client.get(self.class_name, key)
        return self.model.from_record(record) if record else None

    def save(self, item):
        """Create when the item has no store id yet, otherwise update in place."""
        body = item.to_record()
        if item.id:
            self.client.update(self.class_name, item.id, body)
        else:
            created = self.client.create(self.class_name, body)
            item.id = created.get("objectId", "")
        return item


class UserCollection(_Collection):
    class_name = "Users"
    model = User

    def _find_raw(self, email: str) -> dict | None:
        results = self.client.find(self.class_name, where={"email": email}, limit=1)
        return results[0] if results else None

    def get_by_key(self, email: str) -> User | None:
        record = self._find_raw(email)
        return User.from_record(record) if record else None

    def get_by_referral_code(self, code: str) -> dict | None:
        results = self.client.find(self.class_name, where={"referralCode": code}, limit=1)
        return results[0] if results else None

    def get_credentials(self, email: str) -> tuple[User, str] | None:
        """Return (user, password hash) for a login attempt."""
        record = self._find_raw(email)
        if not record:
            return None
        return User.from_record(record), record.get("passwordHash") or ""

    def save(self, user: User, password_hash: str | None = None) -> User:
        """Upsert by email.

        The existence check runs before the write so two saves with the same
        email land on one record. A referral code is minted and the referrer
        credited only when the record is being created. A failed credit is
        logged and never fails the save: the account already exists.
        """
        from referral import credit_referrer

        existing = self._find_raw(user.email)
        body = user.to_record()
        if password_hash:
            body["passwordHash"] = password_hash

        if existing:
            user.id = existing["objectId"]
            if not user.referral_code:
                user.referral_code = existing.get("referralCode")
            self.client.update(self.class_name, user.id, body)
            return user

        if not user.referral_code:
            user.referral_code = self._unique_referral_code(user.name)
            body["referralCode"] = user.referral_code
        created = self.client.create(self.class_name, body)
        user.id = created.get("objectId", "")
        logger.info("Created user record %s for %s", user.id, user.email)

        if user.referred_by:
            try:
                credit_referrer(self, user.referred_by, new_user_email=user.email)
            except ConnectivityError as e:
                logger.warning("Referral credit for %s (code %s) failed: %s",
                               user.email, user.referred_by, e)
        return user

    def _unique_referral_code(self, name: str) -> str:
        from referral import generate_referral_code

        for _ in range(REFERRAL_CODE_ATTEMPTS):
            code = generate_referral_code(name)
            if self.get_by_referral_code(code) is None:
                return code
        raise StateError(f"Could not mint a unique referral code for {name!r}")

    def update_profile(self, user: User) -> None:
        record = self._find_raw(user.email)
        if not record:
            raise StateError(f"No account found for {user.email}")
        self.client.update(self.class_name, record["objectId"], user.profile_record())

    def set_premium(self, email: str, value: bool = True) -> bool:
        """Set the premium flag on the user with this email. False when no such user."""
        record = self._find_raw(email)
        if not record:
            return False
        self.client.update(self.class_name, record["objectId"], {"isPremium": value})
        return True

    def increment_referrals(self, object_id: str, amount: int = 1) -> None:
        # Server-side increment; no read-modify-write race between clients
        self.client.update(self.class_name, object_id, {
            "referralCount": {"__op": "Increment", "amount": amount},
        })


class SubjectCollection(_Collection):
    class_name = "Subjects"
    model = Subject

    def list(self) -> list[Subject]:
        from catalog import DEFAULT_SUBJECTS

        try:
            records = self.client.find(self.class_name)
        except ConnectivityError as e:
            logger.warning("Subjects unavailable, using built-in catalog: %s", e)
            return list(DEFAULT_SUBJECTS)
        if not records:
            return list(DEFAULT_SUBJECTS)
        return self._decode(records)


class QuestionCollection(_Collection):
    class_name = "Questions"
    model = Question

    def list(self, subject_id: str | None = None) -> list[Question]:
        where = {"subjectId": subject_id} if subject_id else None
        return self._decode(self.client.find(self.class_name, where=where))

    def count_for(self, subject_id: str) -> int:
        return self.client.count(self.class_name, where={"subjectId": subject_id})


class NoteCollection(_Collection):
    class_name = "Notes"
    model = StudyNote

    def list(self, subject_id: str | None = None, student_class: str | None = None) -> list[StudyNote]:
        where: dict[str, str] = {}
        if subject_id:
            where["subjectId"] = subject_id
        if student_class:
            where["studentClass"] = student_class
        return self._decode(self.client.find(self.class_name, where=where or None))


class ExamCollection(_Collection):
    class_name = "Exams"
    model = MockExam
    order = "-createdAt"


class PaymentCollection(_Collection):
    class_name = "Payments"
    model = PaymentProof
    order = "-createdAt"

    def submit(self, proof: PaymentProof) -> PaymentProof:
        from entitlement import PENDING

        proof.status = PENDING
        proof.id = ""
        if not proof.timestamp:
            proof.timestamp = datetime.now(timezone.utc).isoformat()
        return self.save(proof)

    def list_for(self, email: str) -> list[PaymentProof]:
        return self._decode(
            self.client.find(self.class_name, where={"userEmail": email}, order=self.order)
        )

    def set_status(self, payment_id: str, status: str) -> None:
        self.client.update(self.class_name, payment_id, {"status": status})


class SettingsCollection(_Collection):
    """Singleton payment settings record, created lazily on first update."""

    class_name = "Settings"
    model = PaymentSettings

    def get(self) -> PaymentSettings:
        from catalog import DEFAULT_SETTINGS

        try:
            records = self.client.find(self.class_name, limit=1)
        except ConnectivityError as e:
            logger.warning("Payment settings unavailable, using defaults: %s", e)
            return DEFAULT_SETTINGS
        if not records:
            return DEFAULT_SETTINGS
        return PaymentSettings.from_record(records[0])

    def list(self) -> list[PaymentSettings]:
        return [self.get()]

    def update(self, settings: PaymentSettings) -> PaymentSettings:
        records = self.client.find(self.class_name, limit=1)
        settings.id = records[0]["objectId"] if records else ""
        return self.save(settings)


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------

class CloudStore:
    """One entry point over every entity collection."""

    def __init__(self, client: ParseClient):
        self.client = client
        self.users = UserCollection(client)
        self.subjects = SubjectCollection(client)
        self.questions = QuestionCollection(client)
        self.notes = NoteCollection(client)
        self.exams = ExamCollection(client)
        self.payments = PaymentCollection(client)
        self.settings = SettingsCollection(client)

    @classmethod
    def from_config(cls, config: dict) -> CloudStore:
        client = ParseClient(
            app_id=config.get("PARSE_APP_ID", ""),
            rest_key=config.get("PARSE_REST_KEY", ""),
            base_url=config.get("PARSE_BASE_URL", DEFAULT_BASE_URL),
            timeout=config.get("CLOUD_REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
        )
        return cls(client)

    def update_payment_status(self, payment_id: str, status: str):
        """Move a payment proof to APPROVED or REJECTED (see entitlement.py)."""
        from entitlement import review_payment
        return review_payment(self, payment_id, status)
