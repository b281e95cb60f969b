"""Core domain entities."""

from stock_ledger.core.entities.movement import (
    MovementKind,
    StockMovement,
    StockUnit,
)
from stock_ledger.core.entities.product import Product
from stock_ledger.core.entities.projection import (
    DriftReport,
    LedgerWarning,
    StockProjection,
    WarningCode,
)

__all__ = [
    # Movement entities
    "MovementKind",
    "StockUnit",
    "StockMovement",
    # Product entities
    "Product",
    # Projection entities
    "StockProjection",
    "LedgerWarning",
    "WarningCode",
    "DriftReport",
]
