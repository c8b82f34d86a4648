"""
Persisted session record — the authenticated user, mirrored to disk.

One JSON file per session key under SESSION_DATA_DIR. It is read once when a
session is restored, rewritten on every change to the authenticated user and
removed on logout. Passwords and hashes are never part of the record.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path

from errors import DecodeError
from models import User

logger = logging.getLogger(__name__)

SESSION_KEY = "exampro_session"


class SessionStore:
    def __init__(self, directory: str | Path, key: str = SESSION_KEY):
        self.directory = Path(directory)
        self.key = key

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def load(self) -> User | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
            return User.from_record(data)
        except (ValueError, DecodeError) as e:
            logger.warning("Discarding unreadable session record %s: %s", self.path.name, e)
            self.clear()
            return None

    def save(self, user: User) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(user.to_dict(), indent=2, ensure_ascii=False))
        os.replace(tmp, self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def store_for(directory: str | Path, identity: str) -> SessionStore:
    """Session store for one session identity (hashed, so it is filename-safe)."""
    digest = hashlib.sha256(identity.strip().lower().encode()).hexdigest()[:16]
    return SessionStore(directory, key=f"{SESSION_KEY}-{digest}")
