from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from kestrel.browser.navigator import NavigationController
from kestrel.browser.session import BrowserAttachError, BrowserAttachment
from kestrel.browser.site import layout_from_settings
from kestrel.config import Settings, get_settings
from kestrel.core.activity import ActivityLog
from kestrel.core.drafting import Drafter, router_generator
from kestrel.core.events import EventBus
from kestrel.core.profile import load_profile
from kestrel.core.relevance import RelevanceClassifier
from kestrel.core.state import RunController, RunState
from kestrel.core.traversal import RunSummary, TraversalLoop
from kestrel.llm.router import LLMRouter
from kestrel.store.client import RecordStore, build_record_store

logger = logging.getLogger(__name__)


class SetupError(RuntimeError):
    """A run could not begin: no profile, no browser tab, or no identity when one is required."""


class AutomationSession:
    """Wires one run together: profile, attached tab, identity, store, classifier, drafter."""

    def __init__(
        self,
        *,
        controller: RunController,
        activity: ActivityLog,
        settings: Settings | None = None,
        router: LLMRouter | None = None,
        store_factory: Callable[[str | None, Settings], RecordStore] = build_record_store,
        attach: Callable[..., Any] = BrowserAttachment,
    ):
        self.controller = controller
        self.activity = activity
        self.settings = settings or get_settings()
        self.router = router or LLMRouter(self.settings)
        self.store_factory = store_factory
        self.attach = attach

    async def run(self) -> RunSummary:
        profile = load_profile(self.settings.profile_path)
        if profile is None or not profile.has_profile:
            raise SetupError("Please upload your resume first!")

        layout = layout_from_settings(self.settings)
        await self.activity("Connecting to browser...")
        try:
            async with self.attach(self.settings, layout) as page:
                navigator = NavigationController(page, layout, self.settings, sleep=self.controller.sleep)
                await self.activity("Connected to browser!", "success")

                user_id = await navigator.read_user_id()
                if user_id:
                    await self.activity(f"Identified user: {user_id}")
                elif self.settings.require_user_identity:
                    raise SetupError("Could not identify the signed-in user; please log in to the site first.")
                else:
                    await self.activity(
                        "Could not identify the signed-in user; records will be rejected by the store.",
                        "error",
                    )

                store = self.store_factory(user_id, self.settings)
                try:
                    loop = TraversalLoop(
                        navigator=navigator,
                        classifier=RelevanceClassifier(
                            embedder=self.router.embed,
                            model_id=self.router.embedding_model,
                            settings=self.settings,
                        ),
                        drafter=Drafter(router_generator(self.router)),
                        store=store,
                        profile=profile,
                        controller=self.controller,
                        activity=self.activity,
                        settings=self.settings,
                    )
                    return await loop.run()
                finally:
                    await store.aclose()
        except BrowserAttachError as exc:
            raise SetupError(str(exc)) from exc


SessionFactory = Callable[..., Any]


class AutomationManager:
    """Owns at most one running automation task for the process."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        event_bus: EventBus | None = None,
        session_factory: SessionFactory = AutomationSession,
    ):
        self.settings = settings or get_settings()
        self.event_bus = event_bus
        self.session_factory = session_factory
        self._run_id = 0
        self._task: asyncio.Task[None] | None = None
        self._controller: RunController | None = None
        self._activity: ActivityLog | None = None
        self._summary: RunSummary | None = None
        self._error: str | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> dict[str, Any]:
        if self.running:
            raise RuntimeError("Automation is already running")

        self._run_id += 1
        self._summary = None
        self._error = None
        self._controller = RunController(poll_interval_sec=self.settings.poll_interval_ms / 1000)
        self._activity = ActivityLog(run_id=self._run_id, event_bus=self.event_bus)
        self._controller.start()

        session = self.session_factory(
            controller=self._controller,
            activity=self._activity,
            settings=self.settings,
        )
        self._task = asyncio.create_task(self._run(session), name=f"kestrel-run-{self._run_id}")
        logger.info("Automation started run_id=%s", self._run_id)
        return self.status()

    def pause(self) -> dict[str, Any]:
        self._require_controller().pause()
        return self.status()

    def resume(self) -> dict[str, Any]:
        self._require_controller().resume()
        return self.status()

    def stop(self) -> dict[str, Any]:
        self._require_controller().stop()
        return self.status()

    async def wait(self) -> RunSummary | None:
        if self._task is not None:
            await self._task
        return self._summary

    def status(self) -> dict[str, Any]:
        if self._controller is None:
            state = RunState.IDLE
        elif self.running:
            state = self._controller.state
        else:
            state = RunState.STOPPED
        return {
            "run_id": self._run_id,
            "state": state.value,
            "running": self.running,
            "summary": self._summary.as_dict() if self._summary else None,
            "error": self._error,
            "activity_count": self._activity.count if self._activity else 0,
        }

    async def _run(self, session: AutomationSession) -> None:
        assert self._activity is not None
        try:
            self._summary = await session.run()
        except SetupError as exc:
            self._error = str(exc)
            await self._activity(str(exc), "error")
        except Exception as exc:
            logger.exception("Automation run failed run_id=%s", self._run_id)
            self._error = str(exc)
            await self._activity(f"Automation error: {exc}", "error")

    def _require_controller(self) -> RunController:
        if self._controller is None or not self.running:
            raise RuntimeError("Automation is not running")
        return self._controller
