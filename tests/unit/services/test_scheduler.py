"""Tests for the periodic sweep runner."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from docflow.services.janitor import SweepResult
from docflow.services.scheduler import SweepScheduler


def mock_sweep(*results):
    sweep = MagicMock()
    sweep.run_once = AsyncMock(side_effect=list(results))
    return sweep


class TestTick:
    @pytest.mark.asyncio
    async def test_successful_run_is_recorded(self):
        result = SweepResult(fetched=2, completed=2)
        scheduler = SweepScheduler(mock_sweep(result))

        assert await scheduler.tick() is result
        assert scheduler.last_result is result

    @pytest.mark.asyncio
    async def test_failed_run_returns_none(self):
        scheduler = SweepScheduler(mock_sweep(RuntimeError("db down")))

        assert await scheduler.tick() is None
        assert scheduler.last_result is None

    @pytest.mark.asyncio
    async def test_failure_does_not_clear_previous_result(self):
        first = SweepResult(fetched=1, completed=1)
        scheduler = SweepScheduler(mock_sweep(first, RuntimeError("db down")))

        await scheduler.tick()
        await scheduler.tick()

        assert scheduler.last_result is first


class TestLoop:
    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_stop_ends_loop(self):
        sweep = MagicMock()
        sweep.run_once = AsyncMock(return_value=SweepResult())
        scheduler = SweepScheduler(sweep, interval_s=3600)

        await scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.01)
        await scheduler.stop(timeout=1.0)

        assert not scheduler.is_running
        assert sweep.run_once.await_count == 1

    @pytest.mark.asyncio
    async def test_loop_survives_failed_runs(self):
        sweep = MagicMock()
        sweep.run_once = AsyncMock(side_effect=RuntimeError("db down"))
        scheduler = SweepScheduler(sweep, interval_s=0.01)

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop(timeout=1.0)

        assert sweep.run_once.await_count >= 2

    @pytest.mark.asyncio
    async def test_double_start_is_ignored(self):
        sweep = MagicMock()
        sweep.run_once = AsyncMock(return_value=SweepResult())
        scheduler = SweepScheduler(sweep, interval_s=3600)

        await scheduler.start()
        await scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop(timeout=1.0)

        assert sweep.run_once.await_count == 1
