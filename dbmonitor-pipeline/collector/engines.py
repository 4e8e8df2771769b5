# collector/engines.py
"""Per-engine health probes.

Each probe opens a short-lived client, reads the engine's own status
counters, and turns them into a (cpu, memory) estimate. None of the
engines expose host CPU through a lightweight query, so cpu is a linear
proxy on the connection count clamped to [0, 100]; memory is in MB.
"""
import asyncio
from dataclasses import dataclass
from urllib.parse import quote

import asyncpg
import redis.asyncio as aioredis
from pymongo import AsyncMongoClient

from storage.models import EngineKind

BYTES_PER_MB = 1024 * 1024

RELATIONAL_CPU_PER_CONNECTION = 5.0
DOCUMENT_CPU_PER_CONNECTION = 2.0
KEY_VALUE_CPU_PER_CLIENT = 3.0


class CollectionError(Exception):
    def __init__(self, target_name, cause):
        super().__init__(f"{target_name}: {cause}")
        self.target_name = target_name
        self.cause = cause


class UnsupportedEngineError(CollectionError):
    pass


@dataclass(frozen=True)
class EngineReading:
    cpu: float
    memory: float


def clamp_cpu(value):
    return max(0.0, min(float(value), 100.0))


def _number(value):
    # missing or unparsable statistics count as zero
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


POSTGRES_KEYS = {
    "host": "host",
    "server": "host",
    "port": "port",
    "database": "database",
    "db": "database",
    "username": "user",
    "user": "user",
    "user id": "user",
    "userid": "user",
    "uid": "user",
    "password": "password",
    "pwd": "password",
}


def postgres_dsn(descriptor):
    """Accept postgres:// URIs as well as the "Host=..;Port=..;Database=.." key/value form."""
    if "://" in descriptor:
        return descriptor
    parts = {}
    for item in descriptor.split(";"):
        key, sep, value = item.partition("=")
        name = POSTGRES_KEYS.get(key.strip().lower())
        if sep and name:
            parts[name] = value.strip()
    auth = ""
    if "user" in parts:
        auth = quote(parts["user"], safe="")
        if "password" in parts:
            auth += ":" + quote(parts["password"], safe="")
        auth += "@"
    host = parts.get("host", "localhost")
    port = f":{parts['port']}" if "port" in parts else ""
    database = "/" + quote(parts["database"], safe="") if "database" in parts else ""
    return f"postgresql://{auth}{host}{port}{database}"


async def collect_relational(descriptor, timeout):
    conn = await asyncpg.connect(postgres_dsn(descriptor), timeout=timeout)
    try:
        size_mb = await conn.fetchval(
            "SELECT pg_database_size(current_database()) / 1024 / 1024 AS size_mb")
        active = await conn.fetchval(
            "SELECT count(*) FROM pg_stat_activity WHERE datname = current_database()")
    finally:
        await conn.close()
    return EngineReading(
        cpu=clamp_cpu(_number(active) * RELATIONAL_CPU_PER_CONNECTION),
        memory=_number(size_mb),
    )


async def collect_document(descriptor, timeout):
    timeout_ms = int(timeout * 1000)
    client = AsyncMongoClient(
        descriptor,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )
    try:
        status = await client.admin.command("serverStatus")
    finally:
        await client.close()

    mem = status.get("mem") or {}
    connections = status.get("connections") or {}
    return EngineReading(
        cpu=clamp_cpu(_number(connections.get("current")) * DOCUMENT_CPU_PER_CONNECTION),
        memory=_number(mem.get("resident")),
    )


def redis_url(descriptor):
    """Accept redis:// URLs as well as the bare "host:port[,option=value...]" form."""
    if "://" in descriptor:
        return descriptor
    endpoint, _, options = descriptor.partition(",")
    user = password = None
    scheme = "redis"
    for opt in options.split(","):
        key, _, value = opt.partition("=")
        key, value = key.strip().lower(), value.strip()
        if key == "password":
            password = value
        elif key == "user":
            user = value
        elif key == "ssl" and value.lower() == "true":
            scheme = "rediss"
    auth = ""
    if user or password:
        auth = quote(user or "", safe="")
        if password:
            auth += ":" + quote(password, safe="")
        auth += "@"
    return f"{scheme}://{auth}{endpoint.strip()}"


async def collect_key_value(descriptor, timeout):
    client = aioredis.from_url(
        redis_url(descriptor),
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
    try:
        memory_info = await client.info("memory")
        client_info = await client.info("clients")
    finally:
        await client.aclose()
    return EngineReading(
        cpu=clamp_cpu(_number(client_info.get("connected_clients")) * KEY_VALUE_CPU_PER_CLIENT),
        memory=_number(memory_info.get("used_memory")) / BYTES_PER_MB,
    )


COLLECTORS = {
    EngineKind.RELATIONAL: collect_relational,
    EngineKind.DOCUMENT: collect_document,
    EngineKind.KEY_VALUE: collect_key_value,
}


def get_collector(kind, collectors=None):
    collectors = COLLECTORS if collectors is None else collectors
    try:
        return collectors[kind]
    except KeyError:
        raise UnsupportedEngineError(None, f"no collector for engine {kind!r}") from None


async def collect_target(target, timeout, collectors=None):
    """Run the collector for one target, bounded by ``timeout`` seconds.

    Every failure other than cancellation comes back as CollectionError
    carrying the target name.
    """
    try:
        collect = get_collector(target.engine_kind, collectors)
    except UnsupportedEngineError as e:
        raise UnsupportedEngineError(target.name, e.cause) from None
    try:
        return await asyncio.wait_for(collect(target.connection_descriptor, timeout), timeout)
    except asyncio.TimeoutError as e:
        raise CollectionError(target.name, f"timed out after {timeout}s") from e
    except Exception as e:
        raise CollectionError(target.name, e) from e
