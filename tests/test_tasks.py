from __future__ import annotations

import asyncio

import pytest

from plaquer.services.tasks import Debouncer, LatestTaskRunner


def test_debouncer_collapses_calls_to_the_last():
    calls = []

    async def record(value):
        calls.append(value)

    async def scenario():
        d = Debouncer(0.03, record)
        for value in range(5):
            d.trigger(value)
            await asyncio.sleep(0.005)
        await d.wait()

    asyncio.run(scenario())
    assert calls == [4]


def test_debouncer_flush_runs_pending_immediately():
    calls = []

    async def record(value):
        calls.append(value)

    async def scenario():
        d = Debouncer(10.0, record)
        d.trigger("now")
        await d.flush()
        assert not d.pending
        await d.flush()

    asyncio.run(scenario())
    assert calls == ["now"]


def test_debouncer_needs_running_loop():
    async def noop():
        pass

    with pytest.raises(RuntimeError):
        Debouncer(0.1, noop).trigger()


def test_debouncer_logs_failures(caplog):
    async def boom():
        raise ValueError("broken")

    async def scenario():
        d = Debouncer(0.0, boom)
        d.trigger()
        await d.wait()

    asyncio.run(scenario())
    assert "Debounced call" in caplog.text


def test_latest_runner_discards_superseded_result():
    async def scenario():
        runner = LatestTaskRunner()
        gate = asyncio.Event()

        async def slow():
            await gate.wait()
            return "old"

        async def fast():
            return "new"

        first = asyncio.create_task(runner.run(slow))
        await asyncio.sleep(0.01)
        second = await runner.run(fast)
        gate.set()
        return await first, second

    first, second = asyncio.run(scenario())
    assert first is None
    assert second == "new"


def test_latest_runner_generation_advances():
    async def scenario():
        runner = LatestTaskRunner()

        async def value():
            return 1

        assert await runner.run(value) == 1
        assert runner.generation == 1
        runner.cancel()
        assert not runner.is_current(1)

    asyncio.run(scenario())
