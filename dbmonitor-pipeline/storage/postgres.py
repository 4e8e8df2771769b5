# storage/postgres.py
import asyncio
import logging
from datetime import datetime
from typing import List

import asyncpg

from . import StorageError
from .models import EngineKind, MetricSample, OwnedSample, TargetDescriptor

logger = logging.getLogger(__name__)

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

ACTIVE_TARGETS_SQL = """
SELECT id, user_id, name, connection_string, db_type, is_active
FROM monitored_databases
WHERE is_active = true AND connection_string IS NOT NULL
ORDER BY id
"""

INSERT_SAMPLE_SQL = """
INSERT INTO database_metrics(db_id, cpu, memory, time, tenant_id)
VALUES($1, $2, $3, $4, $5)
ON CONFLICT (db_id, time) DO NOTHING
"""

OWNER_SAMPLES_SQL = """
SELECT m.db_id, d.name, m.time, m.cpu, m.memory
FROM database_metrics m
JOIN monitored_databases d ON m.db_id = d.id
WHERE d.user_id = $1 AND m.time >= $2 AND m.time <= $3
ORDER BY m.time, m.db_id
"""


def row_to_target(row) -> TargetDescriptor:
    kind = EngineKind.from_db_type(row["db_type"])
    if kind is None:
        logger.warning("target %s has unsupported db_type %r", row["name"], row["db_type"])
    return TargetDescriptor(
        id=row["id"],
        owner_id=row["user_id"],
        name=row["name"],
        engine_kind=kind,
        connection_descriptor=row["connection_string"],
        active=bool(row["is_active"]),
    )


class PostgresStore:
    """Target registry reads, sample appends and owner-scoped sample reads over asyncpg."""

    def __init__(self, pool: asyncpg.pool.Pool):
        self.pool = pool

    async def list_active_targets(self) -> List[TargetDescriptor]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(ACTIVE_TARGETS_SQL)
        except _DRIVER_ERRORS as e:
            raise StorageError("list active targets", e) from e
        return [row_to_target(r) for r in rows]

    async def insert_sample(self, sample: MetricSample) -> bool:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    INSERT_SAMPLE_SQL,
                    sample.target_id, sample.cpu, sample.memory, sample.time, sample.owner_id,
                )
        except _DRIVER_ERRORS as e:
            raise StorageError("insert sample", e) from e
        # command tag is "INSERT 0 <rows>"
        return status.split()[-1] != "0"

    async def fetch_owner_samples(self, owner_id: str, since: datetime, until: datetime) -> List[OwnedSample]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(OWNER_SAMPLES_SQL, owner_id, since, until)
        except _DRIVER_ERRORS as e:
            raise StorageError("fetch owner samples", e) from e
        return [
            OwnedSample(
                target_id=r["db_id"],
                name=r["name"],
                time=r["time"],
                cpu=float(r["cpu"] or 0.0),
                memory=float(r["memory"] or 0.0),
            )
            for r in rows
        ]
