# collector/collector.py
import os
import asyncio
import logging
import argparse
from dotenv import load_dotenv

from storage.db import init_db_pool, close_db_pool, get_dsn
from storage.memory import MemoryStore
from storage.models import EngineKind, TargetDescriptor
from storage.postgres import PostgresStore
from storage.schema import ensure_schema
from storage.sink import MetricSink

from .poller import PollCycleExecutor
from .scheduler import Scheduler

load_dotenv()

# Config from environment or defaults
INTERVAL = float(os.getenv("COLLECTOR_INTERVAL_SECONDS", "10"))
TIMEOUT = float(os.getenv("COLLECTOR_TIMEOUT_SECONDS", "8"))
SEQUENTIAL = os.getenv("COLLECTOR_SEQUENTIAL", "false").lower() in ("1", "true", "yes")
SCHEMA_ATTEMPTS = int(os.getenv("SCHEMA_ATTEMPTS", "5"))
SCHEMA_RETRY_DELAY = float(os.getenv("SCHEMA_RETRY_DELAY_SECONDS", "5"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logger = logging.getLogger("collector")


def parse_target(value):
    """Parse ``KIND=DESCRIPTOR`` given on the command line for --memory runs."""
    kind, sep, descriptor = value.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected KIND=DESCRIPTOR, got {value!r}")
    engine = EngineKind.from_db_type(kind)
    if engine is None:
        raise argparse.ArgumentTypeError(f"unknown engine {kind!r}")
    return engine, descriptor


def memory_store(targets):
    store = MemoryStore()
    for i, (engine, descriptor) in enumerate(targets, start=1):
        store.add_target(TargetDescriptor(
            id=i,
            owner_id="local-dev",
            name=f"{engine.value.lower()}-{i}",
            engine_kind=engine,
            connection_descriptor=descriptor,
        ))
    return store


async def run(args):
    pool = None
    if args.memory:
        store = memory_store(args.target)
    else:
        await ensure_schema(get_dsn(), attempts=SCHEMA_ATTEMPTS, delay=SCHEMA_RETRY_DELAY)
        pool = await init_db_pool()
        store = PostgresStore(pool)

    executor = PollCycleExecutor(
        registry=store,
        sink=MetricSink(store),
        timeout=args.timeout,
        concurrent=not args.sequential,
    )
    try:
        if args.once:
            report = await executor.run_once()
            print("result:", report.summary())
        else:
            scheduler = Scheduler(executor, interval=args.interval)
            await scheduler.run()
    finally:
        if pool is not None:
            await close_db_pool()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Poll registered databases and store health samples")
    parser.add_argument("--once", action="store_true", help="run a single poll cycle and exit")
    parser.add_argument("--interval", type=float, default=INTERVAL)
    parser.add_argument("--timeout", type=float, default=TIMEOUT, help="per-target collection timeout in seconds")
    parser.add_argument("--sequential", action="store_true", default=SEQUENTIAL,
                        help="poll targets one at a time instead of concurrently")
    parser.add_argument("--memory", action="store_true", help="use an in-process store instead of PostgreSQL")
    parser.add_argument("--target", type=parse_target, action="append", default=[],
                        help="KIND=DESCRIPTOR target for --memory runs, e.g. Redis=redis://localhost:6379")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("collector interrupted, shutting down")


if __name__ == "__main__":
    main()
