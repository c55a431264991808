"""Tests for the scheduled indexing trigger."""

import asyncio

import pytest

from src.processing.scheduler import IndexScheduler

from conftest import FakeSource, at


@pytest.mark.asyncio
async def test_scheduler_runs_sync_on_start(indexer):
    source = FakeSource({"a.md": (at(0), "alpha text")})
    scheduler = IndexScheduler(indexer, source, interval_hours=24)

    scheduler.start()
    for _ in range(100):
        if indexer.last_report is not None:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert indexer.last_report.added == ["a.md"]
    assert not scheduler.running


@pytest.mark.asyncio
async def test_scheduler_survives_failing_runs(indexer):
    class DownSource(FakeSource):
        calls = 0

        async def enumerate(self):
            DownSource.calls += 1
            raise RuntimeError("network down")

    scheduler = IndexScheduler(indexer, DownSource(), interval_hours=0.1 / 3600)
    scheduler.start()
    for _ in range(200):
        if DownSource.calls >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert DownSource.calls >= 2


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(indexer):
    await IndexScheduler(indexer, FakeSource(), interval_hours=1).stop()


@pytest.mark.asyncio
async def test_delayed_first_run(indexer):
    source = FakeSource({"a.md": (at(0), "alpha text")})
    scheduler = IndexScheduler(indexer, source, interval_hours=1, run_on_start=False)
    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()
    assert indexer.last_report is None
