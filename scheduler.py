"""
Shared background scheduler.

Jobs:
  - Per-session sync heartbeats (every SYNC_INTERVAL_SECONDS). Each signed-in
    SyncSession adds its own job and removes it on logout, idle expiry or
    teardown.
  - AI response cache purge (every hour)
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

_scheduler: BackgroundScheduler | None = None


def init_scheduler(app) -> BackgroundScheduler | None:
    """Start the scheduler unless heartbeats are disabled. Returns it or None."""
    global _scheduler

    if not app.config.get("HEARTBEAT_ENABLED", True):
        app.logger.info("Sync heartbeat disabled; scheduler not started.")
        return None

    if _scheduler is None:
        from ai_resilience import purge_response_cache

        _scheduler = BackgroundScheduler(daemon=True)
        _scheduler.add_job(
            func=purge_response_cache,
            trigger="interval",
            hours=1,
            id="ai_cache_purge",
            replace_existing=True,
        )
        _scheduler.start()
        app.logger.info(
            "Background scheduler started (sync heartbeat every %ss)",
            app.config.get("SYNC_INTERVAL_SECONDS"),
        )
    return _scheduler


def get_scheduler() -> BackgroundScheduler | None:
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Background scheduler stopped")
