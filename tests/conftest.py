"""
Pytest configuration and shared fixtures for all tests
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from collector.engines import EngineReading
from storage.memory import MemoryStore
from storage.models import EngineKind, TargetDescriptor


T0 = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_target():
    """Factory for target descriptors with sensible defaults"""
    def _make(id, owner_id="owner-1", engine_kind=EngineKind.RELATIONAL,
              connection_descriptor="postgresql://u:p@db/app", active=True, name=None):
        return TargetDescriptor(
            id=id,
            owner_id=owner_id,
            name=name or f"db-{id}",
            engine_kind=engine_kind,
            connection_descriptor=connection_descriptor,
            active=active,
        )
    return _make


@pytest.fixture
def ticking_clock():
    """Clock that advances one second per call, starting at T0"""
    state = {"n": 0}

    def _clock():
        ts = T0.replace(second=state["n"] % 60, minute=state["n"] // 60)
        state["n"] += 1
        return ts
    return _clock


@pytest.fixture
def reading_collector():
    """Collector returning a fixed reading"""
    async def _collect(descriptor, timeout):
        return EngineReading(cpu=25.0, memory=128.0)
    return _collect


@pytest.fixture
def failing_collector():
    async def _collect(descriptor, timeout):
        raise ConnectionRefusedError("connection refused")
    return _collect


@pytest.fixture
def hanging_collector():
    """Collector that never returns on its own"""
    async def _collect(descriptor, timeout):
        await asyncio.Event().wait()
    return _collect


@pytest.fixture
def mock_pool():
    """asyncpg-like pool whose acquire() yields the returned connection mock"""
    conn = AsyncMock()
    pool = MagicMock()
    acquire_ctx = MagicMock()
    acquire_ctx.__aenter__ = AsyncMock(return_value=conn)
    acquire_ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = acquire_ctx
    pool.conn = conn
    return pool
