"""Storage infrastructure implementations."""

from stock_ledger.infrastructure.storage.sqlite import (
    SQLiteLedgerStore,
    close_pool,
    get_ledger_store,
    get_pool,
)

__all__ = [
    "SQLiteLedgerStore",
    "get_ledger_store",
    # Connection pool
    "get_pool",
    "close_pool",
]
