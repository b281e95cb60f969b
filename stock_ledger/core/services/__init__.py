"""Core services: conversion engine, locking and the ledger."""

from stock_ledger.core.services import conversion_engine
from stock_ledger.core.services.conversion_engine import (
    AppliedChange,
    ChangeMode,
    MovementOutcome,
    ReplayResult,
    StockChange,
    apply_change,
    apply_movement,
    apply_to_projection,
    compute_change,
    replay,
    to_base_units,
)
from stock_ledger.core.services.ledger_service import (
    INITIAL_STOCK_REFERENCE,
    LedgerService,
    MovementResult,
)
from stock_ledger.core.services.locks import ProductLockRegistry

__all__ = [
    # Conversion engine
    "conversion_engine",
    "ChangeMode",
    "StockChange",
    "AppliedChange",
    "MovementOutcome",
    "ReplayResult",
    "compute_change",
    "apply_change",
    "apply_movement",
    "apply_to_projection",
    "replay",
    "to_base_units",
    # Ledger
    "LedgerService",
    "MovementResult",
    "INITIAL_STOCK_REFERENCE",
    "ProductLockRegistry",
]
