"""Core interfaces (ports) for dependency injection."""

from stock_ledger.core.interfaces.ledger_store import ILedgerStore

__all__ = [
    "ILedgerStore",
]
