"""Run state machine for the traversal loop.

Signals are enqueued from anywhere (API handlers, OS signal handlers, other
threads) and only applied by the loop itself at its poll points, so the loop
never races a handler for the current state.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import time
from enum import StrEnum

logger = logging.getLogger(__name__)


class RunState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class Signal(StrEnum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    TOGGLE = "toggle"
    STOP = "stop"


TRANSITIONS: dict[tuple[RunState, Signal], RunState] = {
    (RunState.IDLE, Signal.START): RunState.RUNNING,
    (RunState.IDLE, Signal.STOP): RunState.STOPPED,
    (RunState.RUNNING, Signal.PAUSE): RunState.PAUSED,
    (RunState.RUNNING, Signal.TOGGLE): RunState.PAUSED,
    (RunState.RUNNING, Signal.STOP): RunState.STOPPED,
    (RunState.PAUSED, Signal.RESUME): RunState.RUNNING,
    (RunState.PAUSED, Signal.TOGGLE): RunState.RUNNING,
    (RunState.PAUSED, Signal.STOP): RunState.STOPPED,
}


class RunStopped(Exception):
    """Raised at a poll point once a stop signal has been applied."""


def next_state(state: RunState, signal: Signal) -> RunState:
    """Return the state ``signal`` leads to, or ``state`` unchanged if it does not apply."""
    return TRANSITIONS.get((state, signal), state)


class RunController:
    def __init__(self, poll_interval_sec: float = 0.5):
        self.poll_interval_sec = poll_interval_sec
        self._state = RunState.IDLE
        self._pending: queue.SimpleQueue[Signal] = queue.SimpleQueue()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._state is RunState.STOPPED

    def send(self, signal: Signal | str) -> None:
        self._pending.put(Signal(signal))

    def start(self) -> RunState:
        """Move Idle to Running. Called by the owner before the loop task begins."""
        self.send(Signal.START)
        return self.apply_pending()

    def pause(self) -> None:
        self.send(Signal.PAUSE)

    def resume(self) -> None:
        self.send(Signal.RESUME)

    def toggle(self) -> None:
        self.send(Signal.TOGGLE)

    def stop(self) -> None:
        self.send(Signal.STOP)

    def apply_pending(self) -> RunState:
        while True:
            try:
                signal = self._pending.get_nowait()
            except queue.Empty:
                return self._state
            self._apply(signal)

    def _apply(self, signal: Signal) -> None:
        target = next_state(self._state, signal)
        if target is self._state:
            logger.debug("Ignoring signal %s in state %s", signal, self._state)
            return
        logger.info("Run state %s -> %s (%s)", self._state, target, signal)
        self._state = target

    async def checkpoint(self) -> None:
        """Poll point: apply queued signals, block while paused, raise once stopped."""
        self.apply_pending()
        while self._state is RunState.PAUSED:
            await asyncio.sleep(self.poll_interval_sec)
            self.apply_pending()
        if self._state is RunState.STOPPED:
            raise RunStopped()

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` of running time, polling at least every poll interval.

        Time spent paused does not count toward ``seconds``.
        """
        await self.checkpoint()
        remaining = max(0.0, seconds)
        while remaining > 0:
            step = min(remaining, self.poll_interval_sec)
            started = time.monotonic()
            await asyncio.sleep(step)
            remaining -= time.monotonic() - started
            await self.checkpoint()
