"""Product stock entity."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from stock_ledger.core.entities.projection import StockProjection


def utcnow() -> datetime:
    return datetime.now(UTC)


class Product(BaseModel):
    """
    A product as seen by the ledger: its conversion factor and stock projection.

    A product with no `pieces_per_base_unit` is Unknown and accepts no
    movements; once a factor >= 1 is set it is Active.
    """

    id: str
    name: str | None = None
    base_unit_name: str | None = None  # e.g. "dus", "box"
    pieces_per_base_unit: int | None = 1

    stock_pieces: int = 0
    min_stock_level: int = 10  # pieces
    initial_stock_pieces: int = 0

    # Tracking counters, derived from applied movements
    total_pieces_added: int = 0
    total_pieces_reduced: int = 0
    movement_count: int = 0

    version: int = 0  # bumped on every projection or factor write
    last_movement_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.pieces_per_base_unit is not None and self.pieces_per_base_unit >= 1

    @property
    def stock_base_units(self) -> float:
        """Stock in base units, derived from pieces (0.0 while Unknown)."""
        if not self.is_active:
            return 0.0
        return self.stock_pieces / self.pieces_per_base_unit  # type: ignore[operator]

    @property
    def is_low_stock(self) -> bool:
        return self.stock_pieces <= self.min_stock_level

    def projection(self) -> StockProjection:
        """Snapshot of the current projection."""
        return StockProjection(
            product_id=self.id,
            pieces_per_base_unit=self.pieces_per_base_unit or 1,
            stock_pieces=self.stock_pieces,
            total_pieces_added=self.total_pieces_added,
            total_pieces_reduced=self.total_pieces_reduced,
            movement_count=self.movement_count,
        )
