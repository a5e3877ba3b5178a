from __future__ import annotations

import asyncio

import pytest

from self_healing.scheduler import IntervalTicker


@pytest.mark.asyncio
async def test_ticker_runs_immediately_and_repeats():
    ticks: list[int] = []

    async def _tick():
        ticks.append(len(ticks))

    ticker = IntervalTicker(0.01, name="test")
    ticker.start(_tick)
    await asyncio.sleep(0.1)
    await ticker.stop()

    assert len(ticks) >= 2
    assert ticker.running is False


@pytest.mark.asyncio
async def test_tick_errors_do_not_stop_the_loop():
    calls: list[str] = []

    async def _tick():
        calls.append("tick")
        if len(calls) == 1:
            raise RuntimeError("first tick fails")

    ticker = IntervalTicker(0.01)
    ticker.start(_tick)
    await asyncio.sleep(0.1)
    await ticker.stop()
    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_stop_lets_in_flight_tick_finish():
    started = asyncio.Event()
    finished: list[bool] = []

    async def _tick():
        started.set()
        await asyncio.sleep(0.05)
        finished.append(True)

    ticker = IntervalTicker(60)
    ticker.start(_tick)
    await started.wait()
    await ticker.stop()

    assert finished == [True]
    assert ticker.running is False


@pytest.mark.asyncio
async def test_stop_without_start_is_a_noop():
    ticker = IntervalTicker(60)
    await ticker.stop()
    assert ticker.running is False


@pytest.mark.asyncio
async def test_stop_awaits_loop_replaced_by_restart():
    started = asyncio.Event()
    finished: list[str] = []

    async def _slow_tick():
        started.set()
        await asyncio.sleep(0.05)
        finished.append("old")

    async def _fast_tick():
        finished.append("new")

    ticker = IntervalTicker(60)
    ticker.start(_slow_tick)
    await started.wait()
    ticker.start(_fast_tick)
    await ticker.stop()

    assert "old" in finished
    assert "new" in finished
    assert ticker.running is False
