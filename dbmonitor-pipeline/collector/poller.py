# collector/poller.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from storage import StorageError
from storage.sink import AppendResult, WriteError, utcnow

from .engines import COLLECTORS, CollectionError, collect_target

logger = logging.getLogger(__name__)


class TargetStatus(Enum):
    OK = "ok"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TargetResult:
    target_id: int
    name: str
    status: TargetStatus
    error: Optional[str] = None


@dataclass(frozen=True)
class CycleReport:
    started_at: datetime
    finished_at: datetime
    results: Tuple[TargetResult, ...] = field(default_factory=tuple)
    registry_error: Optional[str] = None

    def _count(self, *statuses):
        return sum(1 for r in self.results if r.status in statuses)

    @property
    def attempted(self):
        return len(self.results) - self.skipped

    @property
    def succeeded(self):
        return self._count(TargetStatus.OK, TargetStatus.DUPLICATE)

    @property
    def failed(self):
        return self._count(TargetStatus.FAILED)

    @property
    def skipped(self):
        return self._count(TargetStatus.SKIPPED)

    @property
    def ok(self):
        return self.registry_error is None and self.failed == 0

    def summary(self):
        if self.registry_error is not None:
            return f"cycle aborted: {self.registry_error}"
        return (f"attempted={self.attempted} succeeded={self.succeeded} "
                f"failed={self.failed} skipped={self.skipped}")


class PollCycleExecutor:
    """One pass over every active target: collect, then append to the sink.

    A failure is recorded against its own target only. The only
    cycle-wide failure is not being able to list targets at all.
    """

    def __init__(self, registry, sink, timeout=8.0, collectors=None, concurrent=True, clock=utcnow):
        self.registry = registry
        self.sink = sink
        self.timeout = timeout
        self.collectors = COLLECTORS if collectors is None else collectors
        self.concurrent = concurrent
        self.clock = clock

    async def run_once(self) -> CycleReport:
        started = self.clock()
        try:
            targets = await self.registry.list_active_targets()
        except StorageError as e:
            logger.error("could not list targets, skipping cycle: %s", e)
            return CycleReport(started, self.clock(), registry_error=str(e))

        targets = [t for t in targets if t.active]
        if self.concurrent:
            results = await asyncio.gather(*(self._poll_target(t) for t in targets))
        else:
            results = [await self._poll_target(t) for t in targets]

        report = CycleReport(started, self.clock(), tuple(results))
        logger.info("poll cycle done: %s", report.summary())
        return report

    async def _poll_target(self, target) -> TargetResult:
        if not target.connection_descriptor:
            logger.warning("skipping target %s: connection string is empty", target.name)
            return TargetResult(target.id, target.name, TargetStatus.SKIPPED)

        try:
            reading = await collect_target(target, self.timeout, self.collectors)
        except CollectionError as e:
            kind = target.engine_kind.value if target.engine_kind else "unknown"
            logger.warning("failed to poll %s target %s: %s", kind, target.name, e.cause)
            return TargetResult(target.id, target.name, TargetStatus.FAILED, str(e.cause))

        try:
            outcome = await self.sink.append(target.id, target.owner_id, reading.cpu, reading.memory)
        except WriteError as e:
            return TargetResult(target.id, target.name, TargetStatus.FAILED, str(e.cause))
        except Exception as e:
            logger.exception("unexpected error writing sample for target %s", target.name)
            return TargetResult(target.id, target.name, TargetStatus.FAILED, str(e))

        if outcome is AppendResult.DUPLICATE:
            return TargetResult(target.id, target.name, TargetStatus.DUPLICATE)
        return TargetResult(target.id, target.name, TargetStatus.OK)
