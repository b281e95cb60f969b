"""Infrastructure layer implementations."""

from stock_ledger.infrastructure import storage

__all__ = ["storage"]
