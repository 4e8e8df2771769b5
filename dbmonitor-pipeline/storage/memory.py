# storage/memory.py
from datetime import datetime
from typing import Dict, List, Tuple

from .models import MetricSample, OwnedSample, TargetDescriptor


class MemoryStore:
    """In-process store with the same contract as PostgresStore.

    Used for local runs without a database and by the test-suite.
    """

    def __init__(self):
        self.targets: Dict[int, TargetDescriptor] = {}
        self.samples: Dict[Tuple[int, datetime], MetricSample] = {}

    def add_target(self, target: TargetDescriptor):
        self.targets[target.id] = target

    def remove_target(self, target_id: int):
        self.targets.pop(target_id, None)
        for key in [k for k in self.samples if k[0] == target_id]:
            del self.samples[key]

    async def list_active_targets(self) -> List[TargetDescriptor]:
        return [
            t for _, t in sorted(self.targets.items())
            if t.active and t.connection_descriptor is not None
        ]

    async def insert_sample(self, sample: MetricSample) -> bool:
        key = (sample.target_id, sample.time)
        if key in self.samples:
            return False
        self.samples[key] = sample
        return True

    async def fetch_owner_samples(self, owner_id: str, since: datetime, until: datetime) -> List[OwnedSample]:
        out = []
        for (target_id, ts), s in self.samples.items():
            target = self.targets.get(target_id)
            if target is None or target.owner_id != owner_id:
                continue
            if since <= ts <= until:
                out.append(OwnedSample(target_id, target.name, ts, s.cpu, s.memory))
        out.sort(key=lambda s: (s.time, s.target_id))
        return out
