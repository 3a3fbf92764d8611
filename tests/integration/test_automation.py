from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from kestrel.api.app import create_app
from kestrel.config import get_settings
from kestrel.core.automation import AutomationManager, SetupError
from kestrel.core.events import EventBus
from kestrel.core.profile import save_profile
from kestrel.core.runtime import get_automation_manager
from kestrel.core.state import RunState, RunStopped
from kestrel.core.traversal import RunSummary
from kestrel.types import Profile


class LoopingSession:
    def __init__(self, *, controller, activity, settings):
        self.controller = controller
        self.activity = activity

    async def run(self) -> RunSummary:
        summary = RunSummary()
        await self.activity("Starting automation loop...")
        try:
            while True:
                await self.controller.sleep(0.01)
                summary.jobs_seen += 1
        except RunStopped:
            return summary


class FailingSession:
    def __init__(self, **kwargs):
        pass

    async def run(self) -> RunSummary:
        raise SetupError("Please upload your resume first!")


def _manager(session_factory=LoopingSession, event_bus: EventBus | None = None) -> AutomationManager:
    settings = get_settings().model_copy(update={"poll_interval_ms": 10})
    return AutomationManager(settings=settings, event_bus=event_bus, session_factory=session_factory)


def test_manager_pause_resume_stop_cycle() -> None:
    manager = _manager()

    async def scenario():
        started = await manager.start()
        assert started["running"] is True
        assert started["run_id"] == 1

        manager.pause()
        await asyncio.sleep(0.05)
        assert manager.status()["state"] == RunState.PAUSED.value

        manager.resume()
        await asyncio.sleep(0.05)
        assert manager.status()["state"] == RunState.RUNNING.value

        manager.stop()
        summary = await asyncio.wait_for(manager.wait(), timeout=2)
        return summary

    summary = asyncio.run(scenario())

    assert summary is not None and summary.jobs_seen > 0
    status = manager.status()
    assert status["state"] == RunState.STOPPED.value
    assert status["running"] is False
    assert status["summary"]["jobs_seen"] == summary.jobs_seen


def test_manager_rejects_second_start() -> None:
    manager = _manager()

    async def scenario():
        await manager.start()
        with pytest.raises(RuntimeError):
            await manager.start()
        manager.stop()
        await asyncio.wait_for(manager.wait(), timeout=2)

    asyncio.run(scenario())


def test_signals_without_a_run_are_rejected() -> None:
    with pytest.raises(RuntimeError):
        _manager().pause()


def test_setup_error_is_reported_in_status_and_stream() -> None:
    bus = EventBus()
    manager = _manager(FailingSession, event_bus=bus)

    async def scenario():
        received: list[dict] = []

        async def listen():
            async for event in bus.subscribe(1):
                received.append(event)
                return

        listener = asyncio.create_task(listen())
        await asyncio.sleep(0)
        await manager.start()
        await asyncio.wait_for(manager.wait(), timeout=2)
        await asyncio.wait_for(listener, timeout=2)
        return received

    received = asyncio.run(scenario())

    assert manager.status()["error"] == "Please upload your resume first!"
    assert received[0]["kind"] == "error"
    assert received[0]["run_id"] == 1


def test_automation_api_requires_profile() -> None:
    app = create_app()
    app.dependency_overrides[get_automation_manager] = lambda: _manager()
    client = TestClient(app)

    status = client.get("/api/automation/status")
    assert status.status_code == 200
    assert status.json()["state"] == "idle"

    response = client.post("/api/automation/start")
    assert response.status_code == 400

    assert client.post("/api/automation/pause").status_code == 409


def test_automation_api_start_with_profile() -> None:
    save_profile(
        Profile(raw_text="Jane Doe", persona_vector=[1.0], persona_text="persona", has_profile=True),
        get_settings().profile_path,
    )
    manager = _manager()
    app = create_app()
    app.dependency_overrides[get_automation_manager] = lambda: manager

    with TestClient(app) as client:
        started = client.post("/api/automation/start")
        assert started.status_code == 200
        assert started.json()["running"] is True

        stopped = client.post("/api/automation/stop")
        assert stopped.status_code == 200
