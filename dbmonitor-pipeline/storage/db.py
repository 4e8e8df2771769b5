# storage/db.py
import os
from typing import Optional
import asyncpg

_db_pool: Optional[asyncpg.pool.Pool] = None

def get_dsn():
    dsn = os.getenv("DATABASE_CONNECTION_STRING")
    if dsn:
        return dsn
    user = os.getenv("POSTGRES_USER", "monitor")
    pwd = os.getenv("POSTGRES_PASSWORD", "monitorpass")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = int(os.getenv("POSTGRES_PORT", 5432))
    db = os.getenv("POSTGRES_DB", "dbmonitor")
    return f"postgresql://{user}:{pwd}@{host}:{port}/{db}"

async def init_db_pool():
    global _db_pool
    if _db_pool is None:
        # min_size=0 so the pool can be created while the server is still starting
        max_size = int(os.getenv("DB_POOL_MAX_SIZE", 10))
        _db_pool = await asyncpg.create_pool(dsn=get_dsn(), min_size=0, max_size=max_size)
    return _db_pool

async def close_db_pool():
    global _db_pool
    if _db_pool is not None:
        await _db_pool.close()
        _db_pool = None
