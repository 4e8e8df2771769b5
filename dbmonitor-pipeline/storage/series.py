# storage/series.py
from datetime import timedelta
from typing import Iterable, List

from .models import AggregatedPoint, OwnedSample
from .sink import utcnow

DEFAULT_LOOKBACK = timedelta(hours=3)


def minute_bucket(ts):
    return ts.replace(second=0, microsecond=0)


def aggregate_points(samples: Iterable[OwnedSample]) -> List[AggregatedPoint]:
    """Average samples per (target, minute), ascending by bucket then target id."""
    groups = {}
    for s in samples:
        key = (s.target_id, minute_bucket(s.time))
        name, cpus, mems = groups.setdefault(key, (s.name, [], []))
        cpus.append(s.cpu)
        mems.append(s.memory)

    points = [
        AggregatedPoint(
            target_id=target_id,
            name=name,
            time=bucket,
            cpu=sum(cpus) / len(cpus),
            memory=sum(mems) / len(mems),
        )
        for (target_id, bucket), (name, cpus, mems) in groups.items()
    ]
    points.sort(key=lambda p: (p.time, p.target_id))
    return points


class SeriesReader:
    def __init__(self, store, clock=utcnow):
        self.store = store
        self.clock = clock

    async def query(self, owner_id: str, lookback: timedelta = DEFAULT_LOOKBACK) -> List[AggregatedPoint]:
        if lookback <= timedelta(0):
            raise ValueError("lookback must be positive")
        now = self.clock()
        samples = await self.store.fetch_owner_samples(owner_id, now - lookback, now)
        return aggregate_points(samples)
