"""Routes queries to the database of the right fiscal year.

One router owns one store (and therefore one physical connection). Yearly
databases are attached lazily on first use and cached by label; concurrent
first requests for the same year share a single attach-and-initialize task.

The connection can only hold a bounded number of attached years. When it is
full, the least recently used year other than the current one is detached;
handles to it keep working and re-attach the year on their next statement.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

import aiosqlite

from fiscaldb.config import AppSettings, get_settings
from fiscaldb.core.errors import AttachLimitReached, ConnectionClosed, ConnectionFailure, RouterError
from fiscaldb.core.fiscal_year import FiscalYear, Moment, parse_fiscal_year_label, utc_now

from .handle import FiscalYearDatabase, _transaction_owner
from .schema import initialize_fiscal_year
from .store import SQLiteStore, Store

logger = logging.getLogger(__name__)

Clock = Callable[[], Moment]
Initializer = Callable[[aiosqlite.Connection, str], Awaitable[None]]


class RouterState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class DatabaseRouter:
    """Resolves fiscal-year databases over a single shared store connection."""

    def __init__(
        self,
        store: Store,
        *,
        clock: Clock = utc_now,
        initializer: Initializer = initialize_fiscal_year,
        timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._initializer = initializer
        self._timeout = timeout if timeout is not None else store.timeout
        self._state = RouterState.UNINITIALIZED
        # Attached years, least recently used first.
        self._handles: OrderedDict[str, FiscalYearDatabase] = OrderedDict()
        self._inflight: Dict[str, asyncio.Future[FiscalYearDatabase]] = {}
        self._connect_lock = asyncio.Lock()
        self._transaction_lock = asyncio.Lock()
        self._closing: Optional[asyncio.Future[None]] = None

    @property
    def state(self) -> RouterState:
        return self._state

    @property
    def timeout(self) -> float:
        return self._timeout

    async def __aenter__(self) -> DatabaseRouter:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # region Lifecycle

    def _ensure_not_closed(self) -> None:
        if self._state in (RouterState.SHUTTING_DOWN, RouterState.CLOSED):
            raise ConnectionClosed(f"Database router is {self._state.value}")

    async def connect(self) -> None:
        """Open the shared connection. Concurrent and repeated calls connect once."""
        self._ensure_not_closed()
        if self._state is RouterState.CONNECTED:
            return

        async with self._connect_lock:
            self._ensure_not_closed()
            if self._state is RouterState.CONNECTED:
                return
            logger.info("Connecting database router")
            try:
                await asyncio.wait_for(self._store.connect(), timeout=self._timeout)
            except asyncio.TimeoutError as e:
                logger.error("Timed out after %.1fs opening shared database connection", self._timeout)
                raise ConnectionFailure(
                    f"Timed out after {self._timeout}s opening shared database connection"
                ) from e
            except RouterError:
                raise
            except Exception as e:
                logger.exception("Failed to open shared database connection: %s", e)
                raise ConnectionFailure(f"Failed to open shared database connection: {e}") from e

            if self._state is not RouterState.UNINITIALIZED:
                # shutdown() ran while we were connecting
                await self._store.close()
                raise ConnectionClosed("Database router was shut down while connecting")

            self._state = RouterState.CONNECTED
            logger.info("Database router connected")

    async def shutdown(self) -> None:
        """
        Close the shared connection.

        Idempotent; concurrent callers all wait for the one close.
        """
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._close())
        await asyncio.shield(self._closing)

    async def _close(self) -> None:
        previous = self._state
        self._state = RouterState.SHUTTING_DOWN
        logger.info("Shutting down database router (was %s)", previous.value)

        pending = list(self._inflight.values())
        if pending:
            logger.debug("Waiting for %d pending fiscal year initializations", len(pending))
            await asyncio.wait(pending, timeout=self._timeout)

        lock_acquired = False
        try:
            await asyncio.wait_for(self._transaction_lock.acquire(), timeout=self._timeout)
            lock_acquired = True
        except asyncio.TimeoutError:
            logger.warning("Open transaction did not finish before shutdown; closing anyway")

        try:
            await self._store.close()
        except Exception as exc:
            logger.warning("Error closing shared database connection: %s", exc)
        finally:
            if lock_acquired:
                self._transaction_lock.release()
            self._handles.clear()
            self._state = RouterState.CLOSED
        logger.info("Database router closed")

    def _checked_connection(self) -> aiosqlite.Connection:
        if self._state is not RouterState.CONNECTED:
            raise ConnectionClosed(f"Database router is {self._state.value}")
        return self._store.connection

    # endregion

    # region Statements

    def _in_transaction(self) -> bool:
        return _transaction_owner.get() is self

    def _attached_connection(self, fiscal_year: FiscalYear) -> aiosqlite.Connection:
        connection = self._checked_connection()
        label = fiscal_year.label
        if label not in self._handles:
            raise RouterError(
                f"Fiscal year {label} is not attached; resolve it before entering a transaction"
            )
        self._handles.move_to_end(label)
        return connection

    async def _acquire_year(self, fiscal_year: FiscalYear) -> aiosqlite.Connection:
        """Take the statement lock with *fiscal_year* attached.

        The caller must release ``_transaction_lock`` afterwards.
        """
        label = fiscal_year.label
        while True:
            if label not in self._handles:
                await self._resolve(fiscal_year)
            try:
                await asyncio.wait_for(self._transaction_lock.acquire(), timeout=self._timeout)
            except asyncio.TimeoutError as e:
                logger.error("Timed out after %.1fs waiting for the shared connection", self._timeout)
                raise ConnectionFailure(
                    f"Timed out after {self._timeout}s waiting for the shared connection"
                ) from e
            if self._state is not RouterState.CONNECTED:
                self._transaction_lock.release()
                raise ConnectionClosed(f"Database router is {self._state.value}")
            if label in self._handles:
                self._handles.move_to_end(label)
                return self._store.connection
            # detached to make room for another year while we waited
            self._transaction_lock.release()
            logger.debug("Fiscal year %s was detached; attaching it again", label)

    @asynccontextmanager
    async def _statement(self, fiscal_year: FiscalYear) -> AsyncIterator[aiosqlite.Connection]:
        """Connection for one statement against *fiscal_year*.

        Inside a transaction on this router the statement joins it; otherwise it
        waits for any open transaction to finish.
        """
        if self._in_transaction():
            yield self._attached_connection(fiscal_year)
            return
        connection = await self._acquire_year(fiscal_year)
        try:
            yield connection
        finally:
            self._transaction_lock.release()

    # endregion

    # region Resolution

    def current_fiscal_year(self) -> FiscalYear:
        return FiscalYear.for_date(self._clock())

    async def current_database(self) -> FiscalYearDatabase:
        """Return the database for the fiscal year the clock is currently in."""
        return await self._resolve(self.current_fiscal_year())

    async def database_for_year(self, label: str) -> FiscalYearDatabase:
        """Return the database for an explicit label such as ``"2023_2024"``.

        Raises:
            InvalidLabel: if *label* is not of the form ``<year>_<year+1>``.
        """
        return await self._resolve(parse_fiscal_year_label(label))

    async def database_for_date(self, moment: Moment) -> FiscalYearDatabase:
        """Return the database for the fiscal year containing *moment*."""
        return await self._resolve(FiscalYear.for_date(moment))

    def available_years(self) -> List[str]:
        """Labels resolved in this process or present in the store, oldest first."""
        self._ensure_not_closed()
        labels = set(self._handles)
        labels.update(self._store.existing_labels())
        return sorted(labels, key=parse_fiscal_year_label)

    async def _resolve(self, fiscal_year: FiscalYear) -> FiscalYearDatabase:
        self._ensure_not_closed()
        if self._state is RouterState.UNINITIALIZED:
            await self.connect()

        label = fiscal_year.label
        handle = self._handles.get(label)
        if handle is not None:
            logger.debug("Using cached database for fiscal year %s", label)
            self._handles.move_to_end(label)
            return handle
        if self._in_transaction():
            # attaching waits for the open transaction, which is ours
            raise RouterError(
                f"Fiscal year {label} is not attached; resolve it before entering a transaction"
            )

        task = self._inflight.get(label)
        if task is None:
            task = asyncio.ensure_future(self._open_year(fiscal_year))
            self._inflight[label] = task
            task.add_done_callback(partial(self._forget_inflight, label))

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.error("Timed out after %.1fs opening fiscal year %s", self._timeout, label)
            raise ConnectionFailure(f"Timed out after {self._timeout}s opening fiscal year {label}") from e

    def _forget_inflight(self, label: str, task: asyncio.Future) -> None:
        if self._inflight.get(label) is task:
            del self._inflight[label]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Initialization of fiscal year %s failed: %s", label, task.exception())

    async def _open_year(self, fiscal_year: FiscalYear) -> FiscalYearDatabase:
        label = fiscal_year.label
        try:
            # ATTACH is refused inside an open transaction
            async with self._transaction_lock:
                self._checked_connection()
                schema = await self._attach(label)
                await self._initializer(self._checked_connection(), schema)

                if self._state is not RouterState.CONNECTED:
                    raise ConnectionClosed(f"Database router is {self._state.value}")
                handle = FiscalYearDatabase(self, fiscal_year, schema)
                self._handles[label] = handle
        except RouterError:
            raise
        except Exception as e:
            logger.exception("Failed to open fiscal year %s: %s", label, e)
            raise ConnectionFailure(f"Failed to open fiscal year {label}: {e}") from e

        logger.info("Fiscal year %s ready (schema %s)", label, schema)
        return handle

    async def _attach(self, label: str) -> str:
        """Attach *label*, detaching least recently used years while the connection is full."""
        while True:
            try:
                return await self._store.attach(label)
            except AttachLimitReached:
                if not await self._evict_one(keep=label):
                    logger.error("No attached fiscal year can be detached to make room for %s", label)
                    raise

    async def _evict_one(self, keep: str) -> bool:
        protected = {keep, self.current_fiscal_year().label}
        for label in list(self._handles):
            if label in protected:
                continue
            try:
                detached = await self._store.detach(label)
            except Exception as e:
                logger.warning("Could not detach fiscal year %s: %s", label, e)
                continue
            if not detached:
                continue
            del self._handles[label]
            logger.info("Detached least recently used fiscal year %s to make room for %s", label, keep)
            return True
        return False

    # endregion


def create_router(settings: AppSettings | None = None, *, clock: Clock = utc_now) -> DatabaseRouter:
    """Build a router over an :class:`SQLiteStore` configured from settings."""
    settings = settings or get_settings()
    store = SQLiteStore(settings.db.path, timeout=settings.db.timeout)
    return DatabaseRouter(store, clock=clock, timeout=settings.db.timeout)
