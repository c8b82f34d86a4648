"""
Test fixtures for ExamPro Companion.

Provides app, client, student_client and admin_client fixtures backed by an
in-memory stand-in for the Parse REST transport, so the gateway, entitlement
and sync code run end to end without the network.
Gemini is mocked globally to avoid API calls during tests.
"""

from __future__ import annotations

import copy
import itertools
import threading
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from werkzeug.security import generate_password_hash

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from errors import ConnectivityError  # noqa: E402


STUDENT_EMAIL = "ada@example.com"
STUDENT_PASSWORD = "testpass123"
ADMIN_EMAIL = "admin@exampro.ng"
ADMIN_PASSWORD = "AdminPass1"


class FakeParseClient:
    """In-memory Parse transport with the same surface as ParseClient.

    Records live in ``classes[class_name][object_id]``. Set ``offline`` to make
    every call fail, or add ``(method, class_name)`` pairs to ``fail_on`` to
    fail selectively.
    """

    _base_time = datetime(2026, 1, 1, 8, 0, 0)

    def __init__(self):
        self.classes: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.offline = False
        self.fail_on: set[tuple[str, str]] = set()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _check(self, method: str, class_name: str) -> None:
        self.calls.append((method, class_name))
        if self.offline or (method, class_name) in self.fail_on:
            raise ConnectivityError(f"Cloud store unreachable ({method} {class_name})")

    @staticmethod
    def _matches(record: dict, where: dict | None) -> bool:
        return all(record.get(k) == v for k, v in (where or {}).items())

    def find(self, class_name, where=None, order=None, limit=1000):
        with self._lock:
            self._check("find", class_name)
            rows = [
                copy.deepcopy(r) for r in self.classes.get(class_name, {}).values()
                if self._matches(r, where)
            ]
        if order:
            key = order.lstrip("-")
            rows.sort(key=lambda r: r.get(key, ""), reverse=order.startswith("-"))
        return rows[:limit]

    def count(self, class_name, where=None):
        with self._lock:
            self._check("count", class_name)
            return sum(1 for r in self.classes.get(class_name, {}).values() if self._matches(r, where))

    def get(self, class_name, object_id):
        with self._lock:
            self._check("get", class_name)
            record = self.classes.get(class_name, {}).get(object_id)
            return copy.deepcopy(record) if record else None

    def create(self, class_name, body):
        with self._lock:
            self._check("create", class_name)
            n = next(self._ids)
            object_id = f"obj{n:04d}"
            created_at = (self._base_time + timedelta(seconds=n)).isoformat()
            record = dict(copy.deepcopy(body), objectId=object_id, createdAt=created_at)
            self.classes.setdefault(class_name, {})[object_id] = record
            return {"objectId": object_id, "createdAt": created_at}

    def update(self, class_name, object_id, body):
        with self._lock:
            self._check("update", class_name)
            record = self.classes.get(class_name, {}).get(object_id)
            if record is None:
                raise ConnectivityError(f"Cloud store error 404: {class_name}/{object_id}")
            for key, value in body.items():
                if isinstance(value, dict) and value.get("__op") == "Increment":
                    record[key] = record.get(key, 0) + value.get("amount", 1)
                else:
                    record[key] = copy.deepcopy(value)
            return {"updatedAt": datetime.now().isoformat()}

    # Test helpers

    def seed(self, class_name, body) -> str:
        return self.create(class_name, body)["objectId"]

    def records(self, class_name) -> list[dict]:
        return list(self.classes.get(class_name, {}).values())


@pytest.fixture(scope="session", autouse=True)
def mock_gemini():
    """Mock Google Generative AI globally to prevent API calls."""
    mock_model = MagicMock()
    mock_model.generate_content.return_value = MagicMock(text="Hello from the tutor.")

    with patch.dict("sys.modules", {
        "google.generativeai": MagicMock(),
    }):
        yield mock_model


@pytest.fixture(autouse=True)
def reset_ai_state():
    """Circuit breaker and response cache are module-level; isolate each test."""
    from ai_resilience import get_cache, get_circuit_breaker

    get_circuit_breaker().reset()
    get_cache().clear()
    yield
    get_circuit_breaker().reset()
    get_cache().clear()


@pytest.fixture
def parse():
    """Empty in-memory Parse backend."""
    return FakeParseClient()


@pytest.fixture
def store(parse):
    from cloud_store import CloudStore
    return CloudStore(parse)


@pytest.fixture
def app(tmp_path, store):
    """Create app wired to the in-memory store."""
    from app import create_app
    from extensions import SessionManager

    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "WTF_CSRF_ENABLED": False,
        "HEARTBEAT_ENABLED": False,
        "CLOUD_STORE": store,
        "SESSION_DATA_DIR": str(tmp_path / "sessions"),
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "ADMIN_PASSWORD_HASH": generate_password_hash(ADMIN_PASSWORD),
        "GOOGLE_API_KEY": "test-google-key",
    })

    yield app
    SessionManager.reset()


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def student(store):
    """A registered SS3 / JAMB student taking Mathematics."""
    from models import User

    user = User(
        email=STUDENT_EMAIL,
        name="Ada Obi",
        student_class="SS3",
        target_exam="JAMB",
        registered_subjects=["maths"],
        progress={"maths": 40},
    )
    return store.users.save(user, password_hash=generate_password_hash(STUDENT_PASSWORD))


@pytest.fixture
def student_client(app, student):
    """Authenticated test client (logged in as the seeded student)."""
    client = app.test_client()
    with client:
        client.post("/login", json={"email": STUDENT_EMAIL, "password": STUDENT_PASSWORD})
        yield client


@pytest.fixture
def admin_client(app):
    """Authenticated test client logged in to the admin console."""
    client = app.test_client()
    client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    yield client


@pytest.fixture
def session_for(app):
    """Look up the live SyncSession for an email and role."""
    from extensions import SessionManager, session_identity

    def _get(email: str = STUDENT_EMAIL, role: str = "STUDENT"):
        return SessionManager.get(session_identity(role, email))
    return _get
