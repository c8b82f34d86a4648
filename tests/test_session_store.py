"""Tests for session_store.py — the persisted session record."""

from __future__ import annotations

import json

from models import User
from session_store import SESSION_KEY, SessionStore, store_for


def _user(**overrides):
    data = dict(email="ada@example.com", name="Ada", student_class="SS2", target_exam="WAEC",
                registered_subjects=["maths", "physics"], progress={"maths": 55.5}, theme="dark",
                referral_code="ADA1234", id="obj0001")
    data.update(overrides)
    return User(**data)


class TestSessionStore:
    def test_round_trip(self, tmp_path):
        store = SessionStore(tmp_path)
        user = _user()
        store.save(user)
        assert store.load() == user

    def test_default_key(self, tmp_path):
        store = SessionStore(tmp_path)
        store.save(_user())
        assert (tmp_path / f"{SESSION_KEY}.json").exists()

    def test_load_missing(self, tmp_path):
        assert SessionStore(tmp_path).load() is None

    def test_corrupt_record_discarded(self, tmp_path):
        store = SessionStore(tmp_path)
        store.path.write_text("{not json")
        assert store.load() is None
        assert not store.path.exists()

    def test_wrong_shape_discarded(self, tmp_path):
        store = SessionStore(tmp_path)
        store.path.write_text(json.dumps({"name": "no email"}))
        assert store.load() is None

    def test_clear(self, tmp_path):
        store = SessionStore(tmp_path)
        store.save(_user())
        store.clear()
        store.clear()
        assert store.load() is None

    def test_no_secrets_in_record(self, tmp_path):
        store = SessionStore(tmp_path)
        store.save(_user())
        data = json.loads(store.path.read_text())
        assert "passwordHash" not in data
        assert "password" not in data
        assert data["email"] == "ada@example.com"

    def test_save_creates_directory(self, tmp_path):
        store = SessionStore(tmp_path / "nested" / "dir")
        store.save(_user())
        assert store.load() is not None


class TestStoreFor:
    def test_one_record_per_email(self, tmp_path):
        a = store_for(tmp_path, "a@example.com")
        b = store_for(tmp_path, "b@example.com")
        assert a.path != b.path

    def test_email_normalised(self, tmp_path):
        assert store_for(tmp_path, " Ada@Example.com ").path == store_for(tmp_path, "ada@example.com").path
