"""
aiosqlite connection pool for the ledger database.

Writers go through `transaction()`, which opens with BEGIN IMMEDIATE: the
projection compare-and-swap and the movement insert hold SQLite's write
lock from their first statement until commit.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from stock_ledger.config import get_logger, get_settings

logger = get_logger(__name__)

PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    # FULL: a committed movement survives power loss together with its projection
    "PRAGMA synchronous=FULL",
    "PRAGMA foreign_keys=ON",
)


class ConnectionPool:
    """Fixed set of connections to one ledger database, handed out through a queue."""

    def __init__(
        self,
        db_path: Path,
        pool_size: int = 5,
        busy_timeout: int = 30000,
    ):
        self.db_path = db_path
        self.pool_size = pool_size
        self.busy_timeout = busy_timeout  # ms a writer waits for SQLite's lock

        self._idle: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue()
        self._open: list[aiosqlite.Connection] = []
        self._opening = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return bool(self._open)

    @property
    def idle(self) -> int:
        """Connections not currently checked out."""
        return self._idle.qsize()

    async def initialize(self) -> None:
        async with self._opening:
            if self._open:
                return
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            for _ in range(self.pool_size):
                conn = await self._connect()
                self._open.append(conn)
                self._idle.put_nowait(conn)

        logger.info(
            "connection_pool_initialized",
            db_path=str(self.db_path),
            pool_size=self.pool_size,
        )

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.db_path)
        for pragma in PRAGMAS:
            await conn.execute(pragma)
        await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout)}")
        conn.row_factory = aiosqlite.Row
        return conn

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Check out a connection for reads; it goes back to the pool on exit."""
        if not self._open:
            await self.initialize()

        conn = await self._idle.get()
        try:
            yield conn
        finally:
            self._idle.put_nowait(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Check out a connection inside a BEGIN IMMEDIATE transaction.

        Commits when the block exits normally. Any exception, cancellation
        included, rolls the whole transaction back before it propagates.
        """
        async with self.acquire() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException as e:
                await conn.rollback()
                logger.debug("write_transaction_rolled_back", error=type(e).__name__)
                raise
            await conn.commit()

    async def ping(self) -> bool:
        async with self.acquire() as conn:
            cursor = await conn.execute("SELECT 1")
            row = await cursor.fetchone()
        return row is not None and row[0] == 1

    async def close(self) -> None:
        async with self._opening:
            for conn in self._open:
                await conn.close()
            self._open.clear()
            self._idle = asyncio.Queue()
        logger.info("connection_pool_closed", db_path=str(self.db_path))


_pool: ConnectionPool | None = None


async def get_pool() -> ConnectionPool:
    """Process-wide pool for the configured database."""
    global _pool
    if _pool is None:
        storage = get_settings().storage
        _pool = ConnectionPool(
            db_path=storage.db_path,
            pool_size=storage.pool_size,
            busy_timeout=storage.busy_timeout,
        )
        await _pool.initialize()
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
