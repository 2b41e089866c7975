"""Tests for Celery task wiring and the beat schedule."""

import asyncio
from collections.abc import Generator

import pytest
from app.celery import database as worker_resources
from app.celery import tasks
from app.celery.app import celery_app
from app.core.config import settings
from app.services.jobs import MorningResult
from app.services.polling_service import PollResult
from app.services.tram_service import TramApiError
from celery.schedules import crontab


@pytest.fixture
def worker_loop(monkeypatch: pytest.MonkeyPatch) -> Generator[asyncio.AbstractEventLoop]:
    """A private event loop standing in for the worker's persistent loop."""
    loop = asyncio.new_event_loop()
    monkeypatch.setattr(tasks, "get_worker_loop", lambda: loop)
    monkeypatch.setattr(tasks, "get_worker_job_context", lambda: "context")
    monkeypatch.setattr(tasks, "get_worker_session_factory", lambda: "session-factory")
    yield loop
    loop.close()


class TestBeatSchedule:
    def test_entries(self) -> None:
        schedule = celery_app.conf.beat_schedule

        assert set(schedule) == {"poll-trams", "cleanup-notification-history", "send-morning-notifications"}
        assert schedule["poll-trams"]["schedule"].run_every.total_seconds() == settings.POLL_INTERVAL_SECONDS
        assert schedule["poll-trams"]["options"]["expires"] == settings.POLL_INTERVAL_SECONDS

    def test_morning_runs_at_configured_local_time(self) -> None:
        morning = celery_app.conf.beat_schedule["send-morning-notifications"]["schedule"]

        assert isinstance(morning, crontab)
        assert morning.hour == {settings.MORNING_NOTIFICATION_HOUR}
        assert morning.minute == {settings.MORNING_NOTIFICATION_MINUTE}
        assert celery_app.conf.timezone == settings.TIMEZONE

    def test_tasks_are_registered(self) -> None:
        for entry in celery_app.conf.beat_schedule.values():
            assert entry["task"] in celery_app.tasks


class TestTasks:
    def test_poll_trams_reports_cycle_result(
        self, worker_loop: asyncio.AbstractEventLoop, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen: list[object] = []

        async def fake_cycle(context: object) -> PollResult:
            seen.append(context)
            return PollResult(success=False, tram_count=0, error="Tram API error: HTTP 503")

        monkeypatch.setattr(tasks, "run_poll_cycle", fake_cycle)

        result = tasks.poll_trams()

        assert seen == ["context"]
        assert result == {
            "success": False,
            "skipped": False,
            "tram_count": 0,
            "notification_count": 0,
            "error": "Tram API error: HTTP 503",
        }

    def test_morning_task(self, worker_loop: asyncio.AbstractEventLoop, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_morning(context: object) -> MorningResult:
            return MorningResult(tram_count=12, notification_count=4)

        monkeypatch.setattr(tasks, "run_morning_notifications", fake_morning)

        assert tasks.send_morning_notifications() == {
            "status": "success",
            "tram_count": 12,
            "notification_count": 4,
        }

    def test_morning_task_failure_is_raised(
        self, worker_loop: asyncio.AbstractEventLoop, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Called directly (not by a worker), retry() re-raises the original error."""

        async def failing_morning(context: object) -> MorningResult:
            msg = "Tram API error: HTTP 503"
            raise TramApiError(msg, status_code=503)

        monkeypatch.setattr(tasks, "run_morning_notifications", failing_morning)

        with pytest.raises(TramApiError):
            tasks.send_morning_notifications()

    def test_cleanup_task(self, worker_loop: asyncio.AbstractEventLoop, monkeypatch: pytest.MonkeyPatch) -> None:
        received: list[object] = []

        async def fake_cleanup(session_factory: object) -> int:
            received.append(session_factory)
            return 7

        monkeypatch.setattr(tasks, "run_history_cleanup", fake_cleanup)

        assert tasks.cleanup_notification_history() == {"status": "success", "deleted": 7}
        assert received == ["session-factory"]


class TestWorkerResources:
    def test_loop_must_be_initialized(self) -> None:
        with pytest.raises(RuntimeError, match="not initialized"):
            worker_resources.get_worker_loop()
