"""
Conversion engine: pure translation of stock movements into piece counts.

Nothing here touches storage, locks or clocks. The live ledger and the
replay path both fold movements through `apply_to_projection`, so the two
cannot compute different projections from the same log.

Rules:
- Pieces are authoritative. Base units are always derived as
  stock_pieces / pieces_per_base_unit after the piece count is final.
- A quantity in pieces must be a whole number.
- A quantity in base units is converted with quantity * factor and rounded
  half-up to a whole piece; rounding is reported, never silent.
- INBOUND/OUTBOUND produce a signed delta, ADJUSTMENT an absolute target.
- Stock never goes below zero; clamping is reported.
- No piece count or counter may exceed MAX_PIECES.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from enum import Enum
from fractions import Fraction
from typing import Any

from stock_ledger.core.entities import (
    LedgerWarning,
    MovementKind,
    StockMovement,
    StockProjection,
    StockUnit,
    WarningCode,
)
from stock_ledger.core.exceptions import (
    InvalidConversionFactorError,
    InvalidQuantityError,
)

ONE = Decimal(1)

# Piece counts and counters are stored as SQLite INTEGER (signed 64-bit).
MAX_PIECES = 2**63 - 1


class ChangeMode(str, Enum):
    """Whether a change is added to current stock or replaces it."""

    DELTA = "delta"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class StockChange:
    """Normalized effect of one movement, in pieces."""

    mode: ChangeMode
    pieces: int  # signed delta, or absolute target
    exact_pieces: Decimal  # same sign as `pieces`, before rounding

    @property
    def rounded(self) -> bool:
        return self.exact_pieces != self.pieces


@dataclass(frozen=True)
class AppliedChange:
    """Result of applying a StockChange to a piece count."""

    previous_pieces: int
    new_pieces: int
    clamped: bool = False
    shortfall: int = 0  # pieces that could not be removed

    @property
    def added(self) -> int:
        return max(self.new_pieces - self.previous_pieces, 0)

    @property
    def reduced(self) -> int:
        return max(self.previous_pieces - self.new_pieces, 0)


@dataclass(frozen=True)
class MovementOutcome:
    """Everything one movement did to a projection."""

    change: StockChange
    applied: AppliedChange
    warnings: tuple[LedgerWarning, ...] = ()


@dataclass(frozen=True)
class ReplayResult:
    """Projection rebuilt from the movement log."""

    projection: StockProjection
    movements_replayed: int
    first_divergent_sequence: int | None = None


def to_decimal(quantity: Any) -> Decimal:
    """Coerce a caller quantity to a finite Decimal."""
    if isinstance(quantity, bool):
        raise InvalidQuantityError(quantity, "quantity must be a number")
    if isinstance(quantity, Decimal):
        value = quantity
    elif isinstance(quantity, int):
        value = Decimal(quantity)
    elif isinstance(quantity, float):
        value = Decimal(repr(quantity))
    elif isinstance(quantity, str):
        try:
            value = Decimal(quantity.strip())
        except InvalidOperation:
            raise InvalidQuantityError(quantity, "quantity must be a number") from None
    else:
        raise InvalidQuantityError(quantity, "quantity must be a number")

    if not value.is_finite():
        raise InvalidQuantityError(quantity, "quantity must be finite")
    return value


def validate_quantity(kind: MovementKind, quantity: Any) -> Decimal:
    """Check the sign rule for `kind`: > 0 for in/out, >= 0 for adjustments."""
    value = to_decimal(quantity)
    if kind is MovementKind.ADJUSTMENT:
        if value < 0:
            raise InvalidQuantityError(quantity, "adjustment target must be >= 0")
    elif value <= 0:
        raise InvalidQuantityError(quantity, f"{kind.value} quantity must be > 0")
    return value


def validate_conversion_factor(factor: Any, product_id: str | None = None) -> int:
    """Return the factor if it is an integer >= 1."""
    if isinstance(factor, bool) or not isinstance(factor, int) or factor < 1:
        raise InvalidConversionFactorError(factor, product_id)
    return factor


def _to_pieces(unit: StockUnit, quantity: Decimal, factor: int) -> tuple[int, Decimal]:
    """Magnitude in whole pieces plus the exact pre-rounding amount."""
    if unit is StockUnit.PIECES:
        if quantity != quantity.to_integral_value():
            raise InvalidQuantityError(quantity, "piece quantities must be whole numbers")
        if quantity > MAX_PIECES:
            raise InvalidQuantityError(quantity, "quantity is too large")
        return int(quantity), quantity

    # Enough digits for the product to be exact, so rounding is never hidden.
    digits = len(quantity.as_tuple().digits) + len(str(factor)) + 1
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, digits)
        exact = quantity * factor
    if exact > MAX_PIECES:
        raise InvalidQuantityError(quantity, "quantity is too large")
    try:
        whole = exact.quantize(ONE, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidQuantityError(quantity, "quantity is too large") from None
    return int(whole), exact


def compute_change(
    kind: MovementKind,
    unit: StockUnit,
    quantity: Any,
    pieces_per_base_unit: int,
) -> StockChange:
    """Translate (kind, unit, quantity) into a piece delta or absolute target."""
    factor = validate_conversion_factor(pieces_per_base_unit)
    value = validate_quantity(kind, quantity)
    pieces, exact = _to_pieces(unit, value, factor)

    if kind is MovementKind.ADJUSTMENT:
        return StockChange(ChangeMode.ABSOLUTE, pieces, exact)
    if kind is MovementKind.OUTBOUND:
        return StockChange(ChangeMode.DELTA, -pieces, -exact)
    return StockChange(ChangeMode.DELTA, pieces, exact)


def apply_change(current_pieces: int, change: StockChange) -> AppliedChange:
    """Apply a change to a piece count, flooring at zero."""
    if change.mode is ChangeMode.ABSOLUTE:
        target = change.pieces
    else:
        target = current_pieces + change.pieces
    if target > MAX_PIECES:
        raise InvalidQuantityError(
            change.pieces, f"resulting stock would exceed {MAX_PIECES} pieces"
        )

    if target < 0:
        return AppliedChange(
            previous_pieces=current_pieces,
            new_pieces=0,
            clamped=True,
            shortfall=-target,
        )
    return AppliedChange(previous_pieces=current_pieces, new_pieces=target)


def to_base_units(stock_pieces: int, pieces_per_base_unit: int) -> Fraction:
    """Exact base-unit quantity for a piece count."""
    return Fraction(stock_pieces, validate_conversion_factor(pieces_per_base_unit))


def _warnings_for(
    movement: StockMovement, change: StockChange, applied: AppliedChange
) -> tuple[LedgerWarning, ...]:
    warnings = []
    if change.rounded:
        warnings.append(
            LedgerWarning(
                code=WarningCode.FRACTIONAL_PIECE_ROUNDED,
                message=(
                    f"{movement.quantity} {movement.unit.value} is "
                    f"{abs(change.exact_pieces)} pieces; applied {abs(change.pieces)}"
                ),
                details={
                    "requested_quantity": str(movement.quantity),
                    "unit": movement.unit.value,
                    "exact_pieces": str(abs(change.exact_pieces)),
                    "applied_pieces": abs(change.pieces),
                },
            )
        )
    if applied.clamped:
        warnings.append(
            LedgerWarning(
                code=WarningCode.STOCK_WENT_NEGATIVE,
                message=(
                    f"Stock of {movement.product_id} would drop {applied.shortfall} "
                    "pieces below zero; clamped to 0, please reconcile"
                ),
                details={
                    "product_id": movement.product_id,
                    "previous_pieces": applied.previous_pieces,
                    "requested_pieces": abs(change.pieces),
                    "shortfall_pieces": applied.shortfall,
                },
            )
        )
    return tuple(warnings)


def apply_movement(
    current_pieces: int, movement: StockMovement, pieces_per_base_unit: int
) -> MovementOutcome:
    """Compute and apply one movement to a piece count."""
    change = compute_change(
        movement.kind, movement.unit, movement.quantity, pieces_per_base_unit
    )
    applied = apply_change(current_pieces, change)
    return MovementOutcome(
        change=change,
        applied=applied,
        warnings=_warnings_for(movement, change, applied),
    )


def apply_to_projection(
    projection: StockProjection, movement: StockMovement
) -> tuple[StockProjection, MovementOutcome]:
    """Fold one movement into a projection, updating the tracking counters."""
    outcome = apply_movement(
        projection.stock_pieces, movement, projection.pieces_per_base_unit
    )
    applied = outcome.applied
    added = projection.total_pieces_added + applied.added
    reduced = projection.total_pieces_reduced + applied.reduced
    if max(added, reduced) > MAX_PIECES:
        raise InvalidQuantityError(
            movement.quantity, f"movement totals would exceed {MAX_PIECES} pieces"
        )
    new_projection = projection.model_copy(
        update={
            "stock_pieces": applied.new_pieces,
            "total_pieces_added": added,
            "total_pieces_reduced": reduced,
            "movement_count": projection.movement_count + 1,
        }
    )
    return new_projection, outcome


def replay(
    product_id: str,
    pieces_per_base_unit: int,
    movements: Iterable[StockMovement],
) -> ReplayResult:
    """
    Rebuild a projection from zero by folding movements in order.

    Movements carrying `resulting_pieces` are cross-checked; the sequence of
    the first one whose recorded result disagrees with the fold is reported.
    """
    projection = StockProjection(
        product_id=product_id,
        pieces_per_base_unit=validate_conversion_factor(pieces_per_base_unit, product_id),
    )
    count = 0
    first_divergent: int | None = None

    for movement in movements:
        projection, _ = apply_to_projection(projection, movement)
        count += 1
        if (
            first_divergent is None
            and movement.resulting_pieces is not None
            and movement.resulting_pieces != projection.stock_pieces
        ):
            first_divergent = movement.sequence

    return ReplayResult(
        projection=projection,
        movements_replayed=count,
        first_divergent_sequence=first_divergent,
    )
