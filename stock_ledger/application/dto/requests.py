"""Request DTOs for API endpoints.

Pydantic v2 models for API request validation.
These are the ONLY contracts between API and use cases.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class RegisterProductRequest(BaseModel):
    """Request to register a product with the ledger."""

    id: str = Field(
        ...,
        min_length=1,
        description="Product ID",
        examples=["SKU-MIE-GORENG"],
    )
    name: str | None = Field(default=None, description="Display name")
    base_unit_name: str | None = Field(
        default=None,
        description="Name of the base (bulk) unit",
        examples=["dus", "box", "carton"],
    )
    pieces_per_base_unit: int | None = Field(
        default=1,
        description="Pieces per base unit; null registers the product as Unknown",
        examples=[24, 40],
    )
    min_stock_level: int | None = Field(
        default=None,
        description="Low-stock threshold in pieces (default from settings)",
    )
    initial_stock_pieces: int = Field(
        default=0,
        description="Opening stock, recorded as an adjustment movement",
    )


class RecordMovementRequest(BaseModel):
    """Request to record a stock movement.

    `kind` and `unit` are validated by the ledger so that unknown values
    surface as UNKNOWN_MOVEMENT_KIND / UNKNOWN_UNIT rather than schema errors.
    """

    product_id: str = Field(..., description="Product ID")
    kind: str = Field(
        ...,
        description="Movement kind",
        examples=["inbound", "outbound", "adjustment"],
    )
    unit: str = Field(
        ...,
        description="Denomination of quantity; never inferred",
        examples=["pcs", "base_unit"],
    )
    quantity: Decimal = Field(
        ...,
        allow_inf_nan=True,
        description="Amount in `unit`; absolute target for adjustments",
        examples=["5", "1.5"],
    )
    reference: str | None = Field(
        default=None,
        description="External reference (sale number, receipt)",
        examples=["SALE-0001"],
    )
    notes: str | None = Field(default=None, description="Free-text notes")
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds to wait for the product lock",
    )


class SetConversionFactorRequest(BaseModel):
    """Request to set a product's pieces-per-base-unit."""

    pieces_per_base_unit: int = Field(..., description="Pieces per base unit", examples=[24])
    timeout: float | None = Field(default=None, gt=0)
