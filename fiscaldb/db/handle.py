"""Handles addressing one fiscal-year database on the shared connection."""

from __future__ import annotations

import contextvars
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Iterable, List, Optional, Sequence

import aiosqlite

from fiscaldb.core.fiscal_year import FiscalYear
from fiscaldb.utils.validators import validate_table_name

if TYPE_CHECKING:
    from .router import DatabaseRouter

logger = logging.getLogger(__name__)

Params = Sequence[Any]

# Router whose transaction the current task is running inside, if any.
_transaction_owner: contextvars.ContextVar[Optional[DatabaseRouter]] = contextvars.ContextVar(
    "transaction_owner", default=None
)


class FiscalYearDatabase:
    """
    A lightweight view of one fiscal-year database.

    Handles do not own the connection and cannot be closed; they stop working
    once the router that produced them has been shut down.

    Usage:
        db = await router.current_database()
        await db.execute(f"INSERT INTO {db.table('vouchers')} ...", params)
    """

    __slots__ = ("_router", "_fiscal_year", "_schema")

    def __init__(self, router: DatabaseRouter, fiscal_year: FiscalYear, schema: str) -> None:
        self._router = router
        self._fiscal_year = fiscal_year
        self._schema = schema

    @property
    def label(self) -> str:
        return self._fiscal_year.label

    @property
    def fiscal_year(self) -> FiscalYear:
        return self._fiscal_year

    @property
    def schema(self) -> str:
        return self._schema

    def table(self, name: str) -> str:
        """Return *name* qualified with this year's schema, ready to splice into SQL."""
        return f'"{self._schema}"."{validate_table_name(name)}"'

    async def execute(self, sql: str, params: Optional[Params] = None) -> aiosqlite.Cursor:
        async with self._router._statement(self._fiscal_year) as conn:
            return await conn.execute(sql, params or ())

    async def executemany(self, sql: str, rows: Iterable[Params]) -> aiosqlite.Cursor:
        async with self._router._statement(self._fiscal_year) as conn:
            return await conn.executemany(sql, rows)

    async def fetchone(self, sql: str, params: Optional[Params] = None) -> Optional[aiosqlite.Row]:
        async with self._router._statement(self._fiscal_year) as conn:
            cursor = await conn.execute(sql, params or ())
            try:
                return await cursor.fetchone()
            finally:
                await cursor.close()

    async def fetchall(self, sql: str, params: Optional[Params] = None) -> List[aiosqlite.Row]:
        async with self._router._statement(self._fiscal_year) as conn:
            cursor = await conn.execute(sql, params or ())
            try:
                return list(await cursor.fetchall())
            finally:
                await cursor.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[FiscalYearDatabase]:
        """
        Run statements atomically.

        Transactions on the shared connection are serialized, and statements
        from other tasks wait until the open transaction ends. Resolve every
        fiscal year you need before entering one: opening a new year inside a
        transaction raises RouterError. A nested transaction joins the outer one.

        Usage:
            async with db.transaction():
                await db.execute(...)
                await db.execute(...)
        """
        router = self._router
        if router._in_transaction():
            router._attached_connection(self._fiscal_year)
            yield self
            return

        conn = await router._acquire_year(self._fiscal_year)
        token = _transaction_owner.set(router)
        try:
            await conn.execute("BEGIN;")
            try:
                yield self
            except BaseException:
                await conn.execute("ROLLBACK;")
                raise
            await conn.execute("COMMIT;")
        finally:
            _transaction_owner.reset(token)
            router._transaction_lock.release()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FiscalYearDatabase):
            return NotImplemented
        return self._router is other._router and self._fiscal_year == other._fiscal_year

    def __hash__(self) -> int:
        return hash((id(self._router), self._fiscal_year))

    def __repr__(self) -> str:
        return f"FiscalYearDatabase(label={self.label!r}, schema={self._schema!r})"
