# storage/models.py
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class EngineKind(Enum):
    # values are the db_type strings stored by the registry
    RELATIONAL = "Postgres"
    DOCUMENT = "MongoDB"
    KEY_VALUE = "Redis"

    @classmethod
    def from_db_type(cls, db_type: Optional[str]) -> Optional["EngineKind"]:
        """Map a registry db_type to a kind; None when the type is unknown."""
        if not db_type:
            return cls.RELATIONAL
        try:
            return cls(db_type)
        except ValueError:
            return None


@dataclass(frozen=True)
class TargetDescriptor:
    id: int
    owner_id: str
    name: str
    engine_kind: Optional[EngineKind]
    connection_descriptor: Optional[str]
    active: bool = True


@dataclass(frozen=True)
class MetricSample:
    target_id: int
    owner_id: Optional[str]
    time: datetime
    cpu: float
    memory: float


@dataclass(frozen=True)
class OwnedSample:
    """A stored sample joined with the display name of its target."""
    target_id: int
    name: str
    time: datetime
    cpu: float
    memory: float


@dataclass(frozen=True)
class AggregatedPoint:
    target_id: int
    name: str
    time: datetime  # start of the minute bucket
    cpu: float
    memory: float
