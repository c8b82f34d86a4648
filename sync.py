"""
Session & Sync Loop — keeps one authenticated user and the content caches fresh.

A ``SyncSession`` owns the authenticated ``User`` for one client session,
mirrors it to its ``SessionStore`` on every change, and refreshes the user
record plus the subject / exam / note collections in *sync cycles*:

  - navigation sync: ``navigate(view)`` runs a cycle whenever the active view
    changes. Only the very first cycle of a session shows ``loading``.
  - heartbeat: an APScheduler interval job runs a background cycle every
    SYNC_INTERVAL_SECONDS while a user is signed in.

Within a cycle the four fetches run concurrently; the results are applied in
one locked step so readers never see a mix of two cycles. Only one cycle runs
at a time: a cycle that starts while another is in flight is skipped.

A session no request has touched for ``idle_timeout`` seconds is closed by
its own heartbeat and dropped from the registry through ``on_expire``.

A refreshed user whose premium flag flips false -> true produces a one-shot
"Account Upgraded" notification. Every other change is applied silently, and
a cycle that fetches exactly what is already held changes nothing.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from errors import ExamProError, StateError
from models import MockExam, StudyNote, Subject, User

if TYPE_CHECKING:
    from cloud_store import CloudStore
    from session_store import SessionStore

logger = logging.getLogger(__name__)

UPGRADE_NOTICE = "Account Upgraded"
DEFAULT_INTERVAL_SECONDS = 15
DEFAULT_IDLE_SECONDS = 86400


@dataclass(frozen=True)
class ContentSnapshot:
    subjects: tuple[Subject, ...] = ()
    exams: tuple[MockExam, ...] = ()
    notes: tuple[StudyNote, ...] = ()
    fetched_at: str = field(default="", compare=False)


class SyncSession:
    """State owner for one signed-in client."""

    def __init__(
        self,
        store: CloudStore,
        session_store: SessionStore,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        jitter: float = 0,
        scheduler=None,
        idle_timeout: float = DEFAULT_IDLE_SECONDS,
        on_expire: Callable[[SyncSession], None] | None = None,
    ):
        self.store = store
        self.session_store = session_store
        self.interval = interval
        self.jitter = jitter
        self.scheduler = scheduler
        self.idle_timeout = idle_timeout
        self.on_expire = on_expire

        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._user: User | None = session_store.load()
        self._content = ContentSnapshot()
        self._local_edits = 0
        self._notifications: deque[str] = deque()
        self._job_id: str | None = None
        self._closed = False
        self.last_seen = time.monotonic()

        self.loading = True
        self.active_view: str | None = None
        self.last_synced_at: str | None = None
        self.version = 0

    # ── State accessors ───────────────────────────────────────────────

    @property
    def user(self) -> User | None:
        with self._state_lock:
            return self._user

    @property
    def content(self) -> ContentSnapshot:
        with self._state_lock:
            return self._content

    @property
    def heartbeat_running(self) -> bool:
        return self._job_id is not None

    # ── Lifecycle ─────────────────────────────────────────────────────

    def login(self, user: User) -> None:
        with self._state_lock:
            self._user = user
            self._local_edits += 1
            self.version += 1
        self.session_store.save(user)
        self._closed = False
        self.touch()
        self.start_heartbeat()

    def logout(self) -> None:
        self.stop_heartbeat()
        with self._state_lock:
            self._user = None
            self._notifications.clear()
            self.version += 1
        self.session_store.clear()
        self.active_view = None

    def close(self) -> None:
        """Tear down without signing out; the persisted record stays."""
        self._closed = True
        self.stop_heartbeat()

    @property
    def closed(self) -> bool:
        return self._closed

    def touch(self) -> None:
        """Record client activity; called on every authenticated request."""
        self.last_seen = time.monotonic()

    def idle_for(self) -> float:
        return time.monotonic() - self.last_seen

    def expire_if_idle(self) -> bool:
        """Close the session once no request has touched it for idle_timeout.

        Returns True when the session was expired. The persisted record is
        kept, so the next request from the same client restores it.
        """
        if self._closed or self.idle_timeout <= 0 or self.idle_for() < self.idle_timeout:
            return False
        logger.info("Sync session idle for %.0fs; closing", self.idle_for())
        self.close()
        if self.on_expire is not None:
            self.on_expire(self)
        return True

    # ── Local mutations ───────────────────────────────────────────────

    def update_user(self, user: User, push: bool = True) -> None:
        """Apply a user-initiated change locally, then push it to the store.

        The local value wins until the next cycle that starts after this edit.
        Entitlement fields are never pushed (see User.profile_record).
        """
        with self._state_lock:
            if self._user is None:
                raise StateError("No signed-in user to update")
            self._user = user
            self._local_edits += 1
            self.version += 1
        self.session_store.save(user)
        if push and not user.is_admin:
            self.store.users.update_profile(user)

    # ── Notifications ─────────────────────────────────────────────────

    def notify(self, message: str) -> None:
        self._notifications.append(message)

    def pop_notifications(self) -> list[str]:
        with self._state_lock:
            items = list(self._notifications)
            self._notifications.clear()
        return items

    def _emit_upgrade(self, user: User) -> None:
        logger.info("Premium upgrade detected for %s", user.email)
        self._notifications.append(UPGRADE_NOTICE)

    # ── Sync cycles ───────────────────────────────────────────────────

    def navigate(self, view: str) -> bool:
        """Run a sync cycle when the active view changes."""
        if view == self.active_view:
            return False
        self.active_view = view
        return self.run_cycle(background=False)

    def run_cycle(self, background: bool = False) -> bool:
        """Fetch and reconcile once. Returns True when a cycle completed."""
        if self._closed:
            return False
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Sync cycle skipped: another cycle is in flight")
            return False
        try:
            with self._state_lock:
                start_user = self._user
                start_edits = self._local_edits

            results = self._fetch(start_user)
            self._apply(start_user, start_edits, results)
            return True
        except ExamProError as e:
            logger.warning("Sync cycle failed (%s): %s", "background" if background else "navigation", e)
            return False
        except Exception:
            logger.exception("Sync cycle crashed")
            return False
        finally:
            self.loading = False
            self._cycle_lock.release()

    def _fetch(self, user: User | None) -> dict:
        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = {
                "subjects": executor.submit(self.store.subjects.list),
                "exams": executor.submit(self.store.exams.list),
                "notes": executor.submit(self.store.notes.list),
            }
            if user is not None and not user.is_admin:
                futures["user"] = executor.submit(self.store.users.get_by_key, user.email)
            return {name: f.result() for name, f in futures.items()}

    def _apply(self, start_user: User | None, start_edits: int, results: dict) -> None:
        content = ContentSnapshot(
            subjects=tuple(results["subjects"]),
            exams=tuple(results["exams"]),
            notes=tuple(results["notes"]),
            fetched_at=datetime.now().isoformat(),
        )
        fresh: User | None = results.get("user")
        upgraded: User | None = None

        with self._state_lock:
            changed = False
            if content != self._content:
                self._content = content
                changed = True

            current = self._user
            same_session = (
                fresh is not None
                and current is not None
                and start_user is not None
                and current.email == start_user.email == fresh.email
                and self._local_edits == start_edits
            )
            if same_session and fresh != current:
                if fresh.is_premium and not current.is_premium:
                    upgraded = fresh
                self._user = fresh
                changed = True
                self.session_store.save(fresh)

            if changed:
                self.version += 1
            self.last_synced_at = content.fetched_at

        if upgraded is not None:
            self._emit_upgrade(upgraded)

    # ── Heartbeat ─────────────────────────────────────────────────────

    def start_heartbeat(self) -> None:
        if self.scheduler is None or self.interval <= 0 or self._job_id is not None:
            return
        job_id = f"sync-heartbeat-{id(self):x}"
        self.scheduler.add_job(
            func=self._heartbeat,
            trigger="interval",
            seconds=self.interval,
            jitter=self.jitter or None,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._job_id = job_id
        logger.debug("Heartbeat %s started (every %ss)", job_id, self.interval)

    def stop_heartbeat(self) -> None:
        job_id, self._job_id = self._job_id, None
        if job_id is None or self.scheduler is None:
            return
        from apscheduler.jobstores.base import JobLookupError

        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass
        logger.debug("Heartbeat %s stopped", job_id)

    def _heartbeat(self) -> None:
        # A tick that lands after logout or teardown has nothing to sync
        if self._closed or self.user is None:
            return
        if self.expire_if_idle():
            return
        self.run_cycle(background=True)
