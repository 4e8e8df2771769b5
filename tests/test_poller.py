"""
Tests for the poll cycle executor: per-target isolation and cycle reports
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from collector.engines import EngineReading
from collector.poller import CycleReport, PollCycleExecutor, TargetStatus
from storage import StorageError
from storage.models import EngineKind
from storage.sink import MetricSink

FIXED = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def collectors_for(**by_kind):
    return {EngineKind[k.upper()]: fn for k, fn in by_kind.items()}


@pytest.fixture(params=[True, False], ids=["concurrent", "sequential"])
def concurrent(request):
    return request.param


class TestRunOnce:

    @pytest.mark.asyncio
    async def test_one_failing_target_does_not_stop_others(
            self, memory_store, make_target, ticking_clock, reading_collector, failing_collector, concurrent):
        memory_store.add_target(make_target(1, engine_kind=EngineKind.RELATIONAL))
        memory_store.add_target(make_target(2, engine_kind=EngineKind.DOCUMENT))
        memory_store.add_target(make_target(3, engine_kind=EngineKind.KEY_VALUE))
        executor = PollCycleExecutor(
            memory_store, MetricSink(memory_store, clock=ticking_clock), timeout=1,
            collectors=collectors_for(relational=failing_collector, document=reading_collector,
                                      key_value=reading_collector),
            concurrent=concurrent,
        )

        report = await executor.run_once()

        assert (report.attempted, report.succeeded, report.failed) == (3, 2, 1)
        assert {s.target_id for s in memory_store.samples.values()} == {2, 3}
        failed = [r for r in report.results if r.status is TargetStatus.FAILED]
        assert failed[0].target_id == 1
        assert "refused" in failed[0].error

    @pytest.mark.asyncio
    async def test_hanging_target_times_out_without_blocking_others(
            self, memory_store, make_target, ticking_clock, reading_collector, hanging_collector):
        memory_store.add_target(make_target(1, engine_kind=EngineKind.DOCUMENT))
        memory_store.add_target(make_target(2, engine_kind=EngineKind.KEY_VALUE))
        executor = PollCycleExecutor(
            memory_store, MetricSink(memory_store, clock=ticking_clock), timeout=0.05,
            collectors=collectors_for(document=hanging_collector, key_value=reading_collector),
        )

        report = await executor.run_once()

        assert report.failed == 1
        assert report.succeeded == 1
        assert [s.target_id for s in memory_store.samples.values()] == [2]

    @pytest.mark.asyncio
    async def test_empty_descriptor_is_skipped_not_failed(
            self, memory_store, make_target, ticking_clock, reading_collector):
        memory_store.add_target(make_target(1, connection_descriptor=""))
        memory_store.add_target(make_target(2))
        executor = PollCycleExecutor(
            memory_store, MetricSink(memory_store, clock=ticking_clock), timeout=1,
            collectors=collectors_for(relational=reading_collector),
        )

        reports = [await executor.run_once() for _ in range(5)]

        assert all(r.skipped == 1 and r.failed == 0 and r.attempted == 1 for r in reports)
        assert all(s.target_id == 2 for s in memory_store.samples.values())
        assert len(memory_store.samples) == 5

    @pytest.mark.asyncio
    async def test_inactive_target_is_never_polled(self, make_target):
        collect = AsyncMock(return_value=EngineReading(1.0, 1.0))
        registry = AsyncMock()
        registry.list_active_targets.return_value = [make_target(1, active=False), make_target(2)]
        sink = AsyncMock()
        executor = PollCycleExecutor(registry, sink, timeout=1, collectors=collectors_for(relational=collect))

        report = await executor.run_once()

        assert report.attempted == 1
        collect.assert_awaited_once()
        assert sink.append.await_args.args[0] == 2

    @pytest.mark.asyncio
    async def test_registry_failure_aborts_cycle(self, reading_collector):
        registry = AsyncMock()
        registry.list_active_targets.side_effect = StorageError("list active targets", OSError("db down"))
        sink = AsyncMock()
        executor = PollCycleExecutor(registry, sink, timeout=1, collectors=collectors_for(relational=reading_collector))

        report = await executor.run_once()

        assert report.registry_error is not None
        assert report.attempted == 0
        assert not report.ok
        sink.append.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sink_write_error_is_isolated(self, make_target, reading_collector, memory_store):
        memory_store.add_target(make_target(1))
        memory_store.add_target(make_target(2))
        store = AsyncMock()

        async def flaky_insert(sample):
            if sample.target_id == 1:
                raise StorageError("insert sample", OSError("disk full"))
            return await memory_store.insert_sample(sample)
        store.insert_sample.side_effect = flaky_insert

        executor = PollCycleExecutor(
            memory_store, MetricSink(store), timeout=1, collectors=collectors_for(relational=reading_collector))
        report = await executor.run_once()

        assert report.failed == 1
        assert report.succeeded == 1
        assert [s.target_id for s in memory_store.samples.values()] == [2]

    @pytest.mark.asyncio
    async def test_unexpected_sink_error_is_isolated(self, make_target, reading_collector, memory_store, concurrent):
        memory_store.add_target(make_target(1))
        memory_store.add_target(make_target(2))
        store = AsyncMock()

        async def broken_insert(sample):
            if sample.target_id == 1:
                raise RuntimeError("unexpected store bug")
            await asyncio.sleep(0.05)
            return await memory_store.insert_sample(sample)
        store.insert_sample.side_effect = broken_insert

        executor = PollCycleExecutor(
            memory_store, MetricSink(store), timeout=1,
            collectors=collectors_for(relational=reading_collector), concurrent=concurrent,
        )
        report = await executor.run_once()

        assert report.failed == 1
        assert report.succeeded == 1
        failed = [r for r in report.results if r.status is TargetStatus.FAILED]
        assert failed[0].target_id == 1
        assert "unexpected store bug" in failed[0].error
        # target 2 was written before the cycle returned
        assert [s.target_id for s in memory_store.samples.values()] == [2]

    @pytest.mark.asyncio
    async def test_duplicate_write_counts_as_success(self, memory_store, make_target, reading_collector, concurrent):
        memory_store.add_target(make_target(1))
        executor = PollCycleExecutor(
            memory_store, MetricSink(memory_store, clock=lambda: FIXED),
            timeout=1, collectors=collectors_for(relational=reading_collector), concurrent=concurrent,
        )

        first = await executor.run_once()
        second = await executor.run_once()

        assert first.results[0].status is TargetStatus.OK
        assert second.results[0].status is TargetStatus.DUPLICATE
        assert second.succeeded == 1
        assert len(memory_store.samples) == 1

    @pytest.mark.asyncio
    async def test_registry_changes_seen_next_cycle(self, memory_store, make_target, ticking_clock, reading_collector):
        memory_store.add_target(make_target(1))
        executor = PollCycleExecutor(
            memory_store, MetricSink(memory_store, clock=ticking_clock), timeout=1,
            collectors=collectors_for(relational=reading_collector),
        )
        await executor.run_once()

        memory_store.add_target(make_target(2))
        memory_store.remove_target(1)
        report = await executor.run_once()

        assert [r.target_id for r in report.results] == [2]
        assert [s.target_id for s in memory_store.samples.values()] == [2]

    @pytest.mark.asyncio
    async def test_owner_is_forwarded_to_sink(self, make_target, reading_collector):
        registry = AsyncMock()
        registry.list_active_targets.return_value = [make_target(7, owner_id="alice")]
        sink = AsyncMock()
        executor = PollCycleExecutor(registry, sink, timeout=1, collectors=collectors_for(relational=reading_collector))

        await executor.run_once()

        sink.append.assert_awaited_once_with(7, "alice", 25.0, 128.0)


class TestCycleReport:

    def test_empty_report(self):
        report = CycleReport(FIXED, FIXED)
        assert (report.attempted, report.succeeded, report.failed, report.skipped) == (0, 0, 0, 0)
        assert report.ok
        assert "attempted=0" in report.summary()

