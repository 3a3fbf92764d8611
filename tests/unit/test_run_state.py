from __future__ import annotations

import asyncio
import threading

import pytest

from kestrel.core.state import RunController, RunState, RunStopped, Signal, next_state


def test_transition_table() -> None:
    assert next_state(RunState.IDLE, Signal.START) is RunState.RUNNING
    assert next_state(RunState.RUNNING, Signal.PAUSE) is RunState.PAUSED
    assert next_state(RunState.PAUSED, Signal.RESUME) is RunState.RUNNING
    assert next_state(RunState.RUNNING, Signal.TOGGLE) is RunState.PAUSED
    assert next_state(RunState.PAUSED, Signal.TOGGLE) is RunState.RUNNING
    assert next_state(RunState.PAUSED, Signal.STOP) is RunState.STOPPED


def test_inapplicable_signals_are_ignored() -> None:
    assert next_state(RunState.IDLE, Signal.PAUSE) is RunState.IDLE
    assert next_state(RunState.RUNNING, Signal.RESUME) is RunState.RUNNING
    assert next_state(RunState.STOPPED, Signal.START) is RunState.STOPPED
    assert next_state(RunState.STOPPED, Signal.RESUME) is RunState.STOPPED


def test_signals_apply_only_at_poll_points() -> None:
    controller = RunController(poll_interval_sec=0.01)
    controller.start()
    controller.pause()

    assert controller.state is RunState.RUNNING
    controller.apply_pending()
    assert controller.state is RunState.PAUSED


def test_checkpoint_raises_after_stop() -> None:
    controller = RunController(poll_interval_sec=0.01)
    controller.start()
    controller.stop()

    with pytest.raises(RunStopped):
        asyncio.run(controller.checkpoint())
    assert controller.stopped


def test_checkpoint_blocks_while_paused_until_resumed() -> None:
    controller = RunController(poll_interval_sec=0.01)
    controller.start()
    controller.pause()

    async def scenario() -> RunState:
        waiter = asyncio.create_task(controller.checkpoint())
        await asyncio.sleep(0.05)
        assert not waiter.done()
        assert controller.state is RunState.PAUSED
        controller.resume()
        await asyncio.wait_for(waiter, timeout=1)
        return controller.state

    assert asyncio.run(scenario()) is RunState.RUNNING


def test_stop_while_paused_unblocks_with_run_stopped() -> None:
    controller = RunController(poll_interval_sec=0.01)
    controller.start()
    controller.pause()

    async def scenario() -> None:
        waiter = asyncio.create_task(controller.checkpoint())
        await asyncio.sleep(0.03)
        controller.stop()
        await asyncio.wait_for(waiter, timeout=1)

    with pytest.raises(RunStopped):
        asyncio.run(scenario())


def test_signal_from_another_thread_is_applied() -> None:
    controller = RunController(poll_interval_sec=0.01)
    controller.start()

    worker = threading.Thread(target=controller.stop)
    worker.start()
    worker.join()

    with pytest.raises(RunStopped):
        asyncio.run(controller.sleep(5))


def test_sleep_wakes_for_stop_within_poll_interval() -> None:
    controller = RunController(poll_interval_sec=0.01)
    controller.start()

    async def scenario() -> float:
        loop = asyncio.get_running_loop()
        started = loop.time()
        loop.call_later(0.03, controller.stop)
        try:
            await controller.sleep(10)
        except RunStopped:
            return loop.time() - started
        raise AssertionError("sleep should have been interrupted")

    assert asyncio.run(scenario()) < 1
