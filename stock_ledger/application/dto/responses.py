"""Response DTOs for API endpoints.

Pydantic v2 models for API response serialization.
These are the ONLY contracts between use cases and API layer.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from stock_ledger.core.entities import (
    DriftReport,
    LedgerWarning,
    Product,
    StockMovement,
    StockProjection,
)


class ProjectionResponse(BaseModel):
    """Current stock of one product."""

    product_id: str
    pieces_per_base_unit: int
    stock_pieces: int = Field(..., description="Authoritative stock in pieces")
    stock_base_units: float = Field(..., description="stock_pieces / pieces_per_base_unit")
    whole_base_units: int = Field(..., description="Full base units in stock")
    loose_pieces: int = Field(..., description="Pieces beyond the last full base unit")
    total_pieces_added: int = 0
    total_pieces_reduced: int = 0
    movement_count: int = 0


class MovementResponse(BaseModel):
    """A recorded movement."""

    id: int | None = None
    product_id: str
    kind: str
    unit: str
    quantity: str = Field(..., description="Exact decimal quantity as entered")
    reference: str | None = None
    notes: str | None = None
    sequence: int | None = None
    resulting_pieces: int | None = None
    recorded_at: datetime | None = None


class WarningResponse(BaseModel):
    """Non-fatal ledger warning."""

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class MovementResultResponse(BaseModel):
    """Response for a recorded movement."""

    projection: ProjectionResponse
    movement: MovementResponse
    warnings: list[WarningResponse] = Field(default_factory=list)


class MovementListResponse(BaseModel):
    """List of movements."""

    movements: list[MovementResponse]
    total: int


class ProductResponse(BaseModel):
    """Product with its stock projection."""

    id: str
    name: str | None = None
    base_unit_name: str | None = None
    pieces_per_base_unit: int | None = None
    is_active: bool
    stock_pieces: int
    stock_base_units: float
    min_stock_level: int
    is_low_stock: bool
    initial_stock_pieces: int = 0
    total_pieces_added: int = 0
    total_pieces_reduced: int = 0
    movement_count: int = 0
    version: int = 0
    last_movement_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    """List of products."""

    products: list[ProductResponse]
    total: int


class DriftReportResponse(BaseModel):
    """Live projection vs. replay of the movement log."""

    product_id: str
    has_drift: bool
    live: ProjectionResponse
    replayed: ProjectionResponse
    movements_replayed: int
    first_divergent_sequence: int | None = None
    repaired: bool = False


class ProviderHealthResponse(BaseModel):
    """Provider health status."""

    name: str
    available: bool
    latency_ms: float | None = None
    error: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str = "1.0.0"
    uptime_seconds: float
    database: ProviderHealthResponse | None = None


class ErrorResponse(BaseModel):
    """Standardized error response DTO.

    Every error response includes:
    - error_code: machine-readable code (e.g. PRODUCT_NOT_FOUND)
    - message: human-readable description
    - hint: suggested recovery action
    - path: request path that triggered the error
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error description")
    hint: str | None = Field(default=None, description="Suggested recovery action")
    detail: str | None = Field(default=None, description="Additional details")
    details: dict[str, Any] | None = Field(default=None, description="Structured error context")
    path: str | None = Field(default=None, description="Request path")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


# Entity -> DTO converters shared by use cases and routes


def to_projection_response(projection: StockProjection) -> ProjectionResponse:
    whole, loose = projection.split()
    return ProjectionResponse(
        product_id=projection.product_id,
        pieces_per_base_unit=projection.pieces_per_base_unit,
        stock_pieces=projection.stock_pieces,
        stock_base_units=projection.stock_base_units,
        whole_base_units=whole,
        loose_pieces=loose,
        total_pieces_added=projection.total_pieces_added,
        total_pieces_reduced=projection.total_pieces_reduced,
        movement_count=projection.movement_count,
    )


def to_movement_response(movement: StockMovement) -> MovementResponse:
    return MovementResponse(
        id=movement.id,
        product_id=movement.product_id,
        kind=movement.kind.value,
        unit=movement.unit.value,
        quantity=str(movement.quantity),
        reference=movement.reference,
        notes=movement.notes,
        sequence=movement.sequence,
        resulting_pieces=movement.resulting_pieces,
        recorded_at=movement.recorded_at,
    )


def to_warning_response(warning: LedgerWarning) -> WarningResponse:
    return WarningResponse(
        code=warning.code.value,
        message=warning.message,
        details=warning.details,
    )


def to_product_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        name=product.name,
        base_unit_name=product.base_unit_name,
        pieces_per_base_unit=product.pieces_per_base_unit,
        is_active=product.is_active,
        stock_pieces=product.stock_pieces,
        stock_base_units=product.stock_base_units,
        min_stock_level=product.min_stock_level,
        is_low_stock=product.is_low_stock,
        initial_stock_pieces=product.initial_stock_pieces,
        total_pieces_added=product.total_pieces_added,
        total_pieces_reduced=product.total_pieces_reduced,
        movement_count=product.movement_count,
        version=product.version,
        last_movement_at=product.last_movement_at,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def to_drift_report_response(report: DriftReport) -> DriftReportResponse:
    return DriftReportResponse(
        product_id=report.product_id,
        has_drift=report.has_drift,
        live=to_projection_response(report.live),
        replayed=to_projection_response(report.replayed),
        movements_replayed=report.movements_replayed,
        first_divergent_sequence=report.first_divergent_sequence,
        repaired=report.repaired,
    )
