"""Stock movement entities."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stock_ledger.core.exceptions import UnknownMovementKindError, UnknownUnitError


class MovementKind(str, Enum):
    """Types of stock movements."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    ADJUSTMENT = "adjustment"  # absolute target, not a delta

    @classmethod
    def parse(cls, value: Any) -> "MovementKind":
        """Coerce caller input to a kind, raising UnknownMovementKindError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownMovementKindError(value, [k.value for k in cls]) from None


class StockUnit(str, Enum):
    """Denomination a movement quantity is expressed in."""

    PIECES = "pcs"
    BASE_UNIT = "base_unit"

    @classmethod
    def parse(cls, value: Any) -> "StockUnit":
        """Coerce caller input to a unit, raising UnknownUnitError."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        normalized = _UNIT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise UnknownUnitError(value, [u.value for u in cls]) from None


_UNIT_ALIASES = {
    "pieces": "pcs",
    "piece": "pcs",
    "pc": "pcs",
    "base": "base_unit",
    "baseunit": "base_unit",
}


class StockMovement(BaseModel):
    """
    A single stock change request against one product.

    Append-only: once recorded, a movement is never updated or deleted.
    `quantity` is always expressed in `unit`; for ADJUSTMENT it is the
    absolute target rather than a change.
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    product_id: str
    kind: MovementKind
    unit: StockUnit
    quantity: Decimal = Field(allow_inf_nan=True)
    reference: str | None = None  # e.g. sale number
    notes: str | None = None

    # Set by the ledger at acceptance
    recorded_at: datetime | None = None
    sequence: int | None = None  # per-product, strictly increasing
    resulting_pieces: int | None = None  # stock_pieces right after applying

    @field_validator("quantity", mode="before")
    @classmethod
    def float_to_exact_decimal(cls, v: Any) -> Any:
        # 0.3 must stay 0.3, not 0.299999...
        if isinstance(v, float):
            return Decimal(repr(v))
        return v

    @property
    def is_recorded(self) -> bool:
        return self.id is not None and self.recorded_at is not None
