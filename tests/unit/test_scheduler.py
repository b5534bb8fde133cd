"""Unit tests for PeriodicTask."""

from __future__ import annotations

import asyncio

import pytest

from ghrelay.services.scheduler import PeriodicTask


class TestTick:
    @pytest.mark.asyncio
    async def test_tick_awaits_coroutine_callback(self):
        calls = []

        async def callback():
            calls.append("async")

        task = PeriodicTask("t", 60, callback)
        await task.tick()
        assert calls == ["async"]
        assert task.runs == 1

    @pytest.mark.asyncio
    async def test_tick_accepts_plain_callable(self):
        calls = []
        task = PeriodicTask("t", 60, lambda: calls.append("sync"))
        await task.tick()
        assert calls == ["sync"]

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_swallowed(self, caplog):
        async def boom():
            raise RuntimeError("boom")

        task = PeriodicTask("exploding", 60, boom)
        await task.tick()
        assert "Periodic task exploding failed" in caplog.text


class TestLoop:
    @pytest.mark.asyncio
    async def test_runs_on_interval_until_stopped(self):
        calls = []
        task = PeriodicTask("fast", 0.01, lambda: calls.append(1))

        task.start()
        assert task.running
        await asyncio.sleep(0.08)
        await task.stop()

        assert not task.running
        assert len(calls) >= 2
        count = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self):
        task = PeriodicTask("idle", 1, lambda: None)
        await task.stop()
        assert not task.running

    @pytest.mark.asyncio
    async def test_start_twice_keeps_single_task(self):
        task = PeriodicTask("once", 60, lambda: None, run_immediately=True)
        task.start()
        first = task._task
        task.start()
        assert task._task is first
        await task.stop()
