# storage/sink.py
import logging
from datetime import datetime, timezone
from enum import Enum

from . import StorageError
from .models import MetricSample

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppendResult(Enum):
    WRITTEN = "written"
    DUPLICATE = "duplicate"


class WriteError(Exception):
    def __init__(self, target_id: int, cause: Exception):
        super().__init__(f"write for target {target_id} failed: {cause}")
        self.target_id = target_id
        self.cause = cause


class MetricSink:
    """Appends one time-stamped sample per successful collection.

    The sink owns the timestamp so that write times are UTC and never
    supplied by a collector. Uniqueness on (target, time) is enforced by
    the store; a collision is reported as DUPLICATE rather than an error.
    """

    def __init__(self, store, clock=utcnow):
        self.store = store
        self.clock = clock

    async def append(self, target_id, owner_id, cpu, memory, timestamp=None) -> AppendResult:
        ts = timestamp if timestamp is not None else self.clock()
        if ts.tzinfo is None:
            raise ValueError("sample timestamp must be timezone-aware")
        sample = MetricSample(
            target_id=target_id,
            owner_id=owner_id,
            time=ts.astimezone(timezone.utc),
            cpu=float(cpu),
            memory=float(memory),
        )
        try:
            written = await self.store.insert_sample(sample)
        except StorageError as e:
            logger.error("dropping sample for target %s: %s", target_id, e)
            raise WriteError(target_id, e) from e
        if not written:
            logger.debug("duplicate sample for target %s at %s skipped", target_id, sample.time.isoformat())
            return AppendResult.DUPLICATE
        return AppendResult.WRITTEN
