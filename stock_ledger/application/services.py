"""
Service factory functions for dependency injection.

This module wires infrastructure implementations to core services.
Use cases should import from here.

The ledger service is a process-wide singleton: its lock registry is what
serializes concurrent movements on the same product.
"""

from stock_ledger.core.interfaces import ILedgerStore
from stock_ledger.core.services import LedgerService

# Singleton instance
_ledger_service: LedgerService | None = None


async def get_ledger_service(store: ILedgerStore | None = None) -> LedgerService:
    """
    Get or create the LedgerService instance.

    Async because store initialization may be async.

    Args:
        store: Optional store override; bypasses the singleton

    Returns:
        Configured LedgerService
    """
    global _ledger_service

    if store is not None:
        return LedgerService(store=store)

    if _ledger_service is None:
        # Lazy import infrastructure
        from stock_ledger.infrastructure.storage.sqlite import get_ledger_store

        _ledger_service = LedgerService(store=await get_ledger_store())
    return _ledger_service


def reset_services() -> None:
    """
    Reset singleton service instances.

    Useful for testing or when configuration changes.
    """
    global _ledger_service
    _ledger_service = None


__all__ = [
    "get_ledger_service",
    "reset_services",
]
