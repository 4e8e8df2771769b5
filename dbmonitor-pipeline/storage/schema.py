# storage/schema.py
import asyncio
import logging

import asyncpg

from .db import get_dsn

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    google_id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    name TEXT,
    picture TEXT,
    tenant_id TEXT
);

CREATE TABLE IF NOT EXISTS monitored_databases (
    id SERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    connection_string TEXT NOT NULL,
    db_type TEXT NOT NULL,
    host TEXT DEFAULT '',
    is_active BOOLEAN DEFAULT TRUE,
    tenant_id TEXT,
    UNIQUE(name, user_id)
);

ALTER TABLE monitored_databases ADD COLUMN IF NOT EXISTS tenant_id TEXT;
ALTER TABLE monitored_databases ADD COLUMN IF NOT EXISTS host TEXT DEFAULT '';

CREATE TABLE IF NOT EXISTS database_metrics (
    db_id INTEGER REFERENCES monitored_databases(id) ON DELETE CASCADE,
    time TIMESTAMPTZ NOT NULL,
    cpu DOUBLE PRECISION,
    memory DOUBLE PRECISION,
    storage_usage DOUBLE PRECISION,
    tenant_id TEXT,
    UNIQUE(db_id, time)
);

ALTER TABLE database_metrics ADD COLUMN IF NOT EXISTS tenant_id TEXT;
ALTER TABLE database_metrics ADD COLUMN IF NOT EXISTS storage_usage DOUBLE PRECISION;

CREATE INDEX IF NOT EXISTS database_metrics_time_idx ON database_metrics (time);
"""


async def ensure_schema(dsn=None, attempts=5, delay=5.0, connect=asyncpg.connect):
    """Create or upgrade the tables used by the collector and the read API.

    Every attempt opens a fresh connection so a server that is still
    starting up gets another chance. Returns False once all attempts are
    spent; callers keep running and surface storage errors later.
    """
    dsn = dsn or get_dsn()
    for attempt in range(1, attempts + 1):
        try:
            logger.info("schema ensure attempt %d/%d", attempt, attempts)
            conn = await connect(dsn)
            try:
                await conn.execute(SCHEMA_SQL)
            finally:
                await conn.close()
            logger.info("database schema verified")
            return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.warning("schema ensure attempt %d failed: %s", attempt, e)
            if attempt < attempts:
                await asyncio.sleep(delay)
    logger.error("schema ensure gave up after %d attempts; data requests may fail", attempts)
    return False
