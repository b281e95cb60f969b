"""Stock projection, ledger warnings and drift reports."""

from enum import Enum
from fractions import Fraction
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class StockProjection(BaseModel):
    """
    Current-state view of one product's stock.

    `stock_pieces` is authoritative; base units are always derived from it.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str
    pieces_per_base_unit: int
    stock_pieces: int = 0
    total_pieces_added: int = 0
    total_pieces_reduced: int = 0
    movement_count: int = 0

    @property
    def stock_base_units_exact(self) -> Fraction:
        return Fraction(self.stock_pieces, self.pieces_per_base_unit)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def stock_base_units(self) -> float:
        return self.stock_pieces / self.pieces_per_base_unit

    def split(self) -> tuple[int, int]:
        """Stock as (whole base units, loose pieces), e.g. 90 pcs @24 -> (3, 18)."""
        return divmod(self.stock_pieces, self.pieces_per_base_unit)


class WarningCode(str, Enum):
    """Non-fatal conditions surfaced alongside a successful movement."""

    STOCK_WENT_NEGATIVE = "stock_went_negative"
    FRACTIONAL_PIECE_ROUNDED = "fractional_piece_rounded"


class LedgerWarning(BaseModel):
    """Structured, non-fatal fact the caller decides how to present."""

    model_config = ConfigDict(frozen=True)

    code: WarningCode
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class DriftReport(BaseModel):
    """Comparison of the live projection against a replay of the movement log."""

    product_id: str
    live: StockProjection
    replayed: StockProjection
    movements_replayed: int = 0
    first_divergent_sequence: int | None = None
    repaired: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_drift(self) -> bool:
        return self.live != self.replayed or self.first_divergent_sequence is not None
