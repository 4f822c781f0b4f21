"""Shared aiosqlite connection with one attached database per fiscal year.

The store owns exactly one physical SQLite connection. Each fiscal year is a
separate database file attached to that connection under the schema name
``fy_<label>``, so switching between years never opens a new connection.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import List, Protocol

import aiosqlite

from fiscaldb.core.errors import AttachLimitReached, ConnectionClosed
from fiscaldb.core.fiscal_year import schema_name
from fiscaldb.utils.validators import is_valid_fiscal_year_label

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class Store(Protocol):
    """What the router needs from the underlying store client."""

    timeout: float

    @property
    def connection(self) -> aiosqlite.Connection: ...

    def existing_labels(self) -> List[str]: ...

    async def connect(self) -> aiosqlite.Connection: ...

    async def attach(self, label: str) -> str: ...

    async def detach(self, label: str) -> bool: ...

    async def close(self) -> None: ...


class SQLiteStore:
    """Owns the shared connection that every fiscal-year database is attached to."""

    def __init__(self, path: str, *, timeout: float = 30.0) -> None:
        self.path = path
        self.timeout = timeout
        self._conn: aiosqlite.Connection | None = None
        self._closed = False

    @property
    def in_memory(self) -> bool:
        return self.path == MEMORY_PATH

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise ConnectionClosed("Store connection is not open")
        return self._conn

    def database_path(self, label: str) -> str:
        """Return where the database for *label* lives."""
        if self.in_memory:
            return MEMORY_PATH
        base = Path(self.path)
        return str(base.with_name(f"{base.stem}_{label}{base.suffix or '.db'}"))

    def existing_labels(self) -> List[str]:
        """Labels of the yearly database files already present on disk."""
        if self.in_memory:
            return []
        base = Path(self.path)
        prefix = f"{base.stem}_"
        suffix = base.suffix or ".db"
        labels = []
        for candidate in base.parent.glob(f"{prefix}*{suffix}"):
            label = candidate.name[len(prefix) : len(candidate.name) - len(suffix)]
            if is_valid_fiscal_year_label(label):
                labels.append(label)
        return sorted(labels)

    async def connect(self) -> aiosqlite.Connection:
        """Open the shared connection. Calling it again returns the open connection."""
        if self._conn is not None:
            return self._conn
        if self._closed:
            raise ConnectionClosed("Store has been closed")

        if not self.in_memory:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None keeps the connection in autocommit mode so that
        # ATTACH is never issued inside an implicit transaction.
        conn = await aiosqlite.connect(
            self.path,
            timeout=self.timeout,
            isolation_level=None,
            cached_statements=128,
        )
        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON;")
        except Exception:
            await conn.close()
            raise
        self._conn = conn
        logger.info("Opened shared database connection to %s", self.path)
        return conn

    async def attached_schemas(self) -> List[str]:
        cursor = await self.connection.execute("PRAGMA database_list;")
        rows = await cursor.fetchall()
        await cursor.close()
        return [row["name"] for row in rows]

    async def attach(self, label: str) -> str:
        """Attach the database for *label* and return its schema name.

        Attaching an already attached year is a no-op.

        Raises:
            AttachLimitReached: if the connection already holds as many
                attached databases as SQLite allows.
        """
        schema = schema_name(label)
        if schema in await self.attached_schemas():
            logger.debug("Schema %s already attached", schema)
            return schema
        path = self.database_path(label)
        try:
            await self.connection.execute(f'ATTACH DATABASE ? AS "{schema}";', (path,))
        except sqlite3.OperationalError as e:
            if "too many attached databases" in str(e):
                raise AttachLimitReached(f"Cannot attach fiscal year {label}: {e}") from e
            raise
        logger.info("Attached fiscal year %s from %s", label, path)
        return schema

    async def detach(self, label: str) -> bool:
        """Detach the database for *label*.

        Returns False when the year cannot be detached without losing its
        data, which is the case for in-memory databases.
        """
        if self.in_memory:
            return False
        schema = schema_name(label)
        if schema in await self.attached_schemas():
            await self.connection.execute(f'DETACH DATABASE "{schema}";')
            logger.info("Detached fiscal year %s", label)
        return True

    async def close(self) -> None:
        """Close the shared connection. Safe to call more than once."""
        self._closed = True
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await asyncio.wait_for(conn.close(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Timed out closing shared database connection")
            raise
        logger.info("Closed shared database connection to %s", self.path)
