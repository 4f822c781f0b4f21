"""
This file contains shared fixtures for the test suite.
"""

import asyncio
import datetime
import os
from collections import Counter
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Set env vars before any application modules are imported
os.environ.setdefault("TEST_MODE", "1")
os.environ.setdefault("DATABASE_PATH", ":memory:")

from fiscaldb.core.errors import AttachLimitReached, ConnectionClosed
from fiscaldb.core.fiscal_year import schema_name
from fiscaldb.db.router import DatabaseRouter
from fiscaldb.db.store import SQLiteStore

UTC = datetime.timezone.utc

# A moment inside fiscal year 2025_2026.
AUGUST_2025 = datetime.datetime(2025, 8, 15, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Callable clock whose time can be moved by tests."""

    def __init__(self, now: datetime.datetime):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


class FakeStore:
    """In-process stand-in for SQLiteStore that records every call."""

    def __init__(
        self,
        timeout: float = 1.0,
        connect_delay: float = 0.0,
        attach_delay: float = 0.0,
        attach_limit: int = 0,
    ):
        self.timeout = timeout
        self.connect_delay = connect_delay
        self.attach_delay = attach_delay
        self.attach_limit = attach_limit
        self.attached = set()
        self.connect_calls = 0
        self.close_calls = 0
        self.attach_calls: Counter = Counter()
        self.detach_calls: Counter = Counter()
        self._conn = None

    @property
    def connection(self):
        if self._conn is None:
            raise ConnectionClosed("Store connection is not open")
        return self._conn

    def existing_labels(self):
        return []

    async def connect(self):
        self.connect_calls += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        self._conn = MagicMock(name="connection")
        return self._conn

    async def attach(self, label):
        self.attach_calls[label] += 1
        if self.attach_delay:
            await asyncio.sleep(self.attach_delay)
        if self.attach_limit and label not in self.attached and len(self.attached) >= self.attach_limit:
            raise AttachLimitReached(f"Cannot attach fiscal year {label}")
        self.attached.add(label)
        return schema_name(label)

    async def detach(self, label):
        self.detach_calls[label] += 1
        self.attached.discard(label)
        return True

    async def close(self):
        self.close_calls += 1
        await asyncio.sleep(0)
        self._conn = None


@pytest.fixture
def clock():
    return FrozenClock(AUGUST_2025)


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def initializer():
    return AsyncMock(return_value=None)


@pytest_asyncio.fixture
async def fake_router(fake_store, clock, initializer):
    router = DatabaseRouter(fake_store, clock=clock, initializer=initializer, timeout=1.0)
    yield router
    await router.shutdown()


@pytest_asyncio.fixture
async def router(clock):
    """Router over a real in-memory SQLite store."""
    router = DatabaseRouter(SQLiteStore(":memory:", timeout=5.0), clock=clock)
    await router.connect()
    yield router
    await router.shutdown()
