"""
Dependency injection container for FastAPI.

Provides service instances to route handlers.
"""

from fastapi import Depends

from stock_ledger.application.services import get_ledger_service
from stock_ledger.application.use_cases import (
    RecordMovementUseCase,
    RegisterProductUseCase,
    ReplayProjectionUseCase,
)
from stock_ledger.core.interfaces import ILedgerStore
from stock_ledger.core.services import LedgerService
from stock_ledger.infrastructure.storage.sqlite import get_ledger_store


# Service dependencies
async def get_ledger() -> LedgerService:
    """Get the process-wide ledger service."""
    return await get_ledger_service()


async def get_store() -> ILedgerStore:
    """Get the ledger store for read-only queries."""
    return await get_ledger_store()


# Use case dependencies
def get_record_movement_use_case(
    ledger: LedgerService = Depends(get_ledger),
) -> RecordMovementUseCase:
    """Get record movement use case."""
    return RecordMovementUseCase(ledger_service=ledger)


def get_register_product_use_case(
    ledger: LedgerService = Depends(get_ledger),
) -> RegisterProductUseCase:
    """Get register product use case."""
    return RegisterProductUseCase(ledger_service=ledger)


def get_replay_projection_use_case(
    ledger: LedgerService = Depends(get_ledger),
) -> ReplayProjectionUseCase:
    """Get replay projection use case."""
    return ReplayProjectionUseCase(ledger_service=ledger)
