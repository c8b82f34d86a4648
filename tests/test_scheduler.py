"""Tests for scheduler.py — shared scheduler lifecycle and its jobs."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from flask import Flask

import scheduler
from ai_resilience import purge_response_cache


@pytest.fixture
def flask_app():
    app = Flask(__name__)
    app.config.update(HEARTBEAT_ENABLED=True, SYNC_INTERVAL_SECONDS=15)
    return app


@pytest.fixture(autouse=True)
def no_shared_scheduler():
    scheduler._scheduler = None
    yield
    scheduler._scheduler = None


class TestInitScheduler:
    @patch("scheduler.BackgroundScheduler")
    def test_registers_cache_purge_and_starts(self, mock_cls, flask_app):
        sched = scheduler.init_scheduler(flask_app)
        instance = mock_cls.return_value
        assert sched is instance
        kwargs = instance.add_job.call_args[1]
        assert kwargs["func"] is purge_response_cache
        assert kwargs["hours"] == 1
        instance.start.assert_called_once()

    @patch("scheduler.BackgroundScheduler")
    def test_started_once(self, mock_cls, flask_app):
        first = scheduler.init_scheduler(flask_app)
        assert scheduler.init_scheduler(flask_app) is first
        assert mock_cls.call_count == 1

    def test_disabled_by_config(self, flask_app):
        flask_app.config["HEARTBEAT_ENABLED"] = False
        assert scheduler.init_scheduler(flask_app) is None
        assert scheduler.get_scheduler() is None

    @patch("scheduler.BackgroundScheduler")
    def test_shutdown(self, mock_cls, flask_app):
        scheduler.init_scheduler(flask_app)
        scheduler.shutdown_scheduler()
        mock_cls.return_value.shutdown.assert_called_once_with(wait=False)
        assert scheduler.get_scheduler() is None
