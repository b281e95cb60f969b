"""Per-product mutual exclusion."""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from stock_ledger.config import get_logger
from stock_ledger.core.exceptions import LedgerTimeoutError

logger = get_logger(__name__)


class ProductLockRegistry:
    """
    One asyncio.Lock per product ID, created on demand.

    Locks are held weakly, so a product nobody is waiting on costs nothing.
    Movements on different products never share a lock.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, product_id: str) -> asyncio.Lock:
        """Get (or create) the lock for a product."""
        lock = self._locks.get(product_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[product_id] = lock
        return lock

    def is_locked(self, product_id: str) -> bool:
        lock = self._locks.get(product_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(
        self, product_id: str, timeout: float | None = None
    ) -> AsyncIterator[None]:
        """
        Hold the product's lock for the duration of the block.

        Raises LedgerTimeoutError if it cannot be acquired within `timeout`
        seconds; nothing inside the block has run in that case.
        """
        lock = self.get(product_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout)
        except TimeoutError:
            logger.warning("ledger_lock_timeout", product_id=product_id, timeout=timeout)
            raise LedgerTimeoutError(product_id, timeout or 0.0) from None
        try:
            yield
        finally:
            lock.release()
