"""Data transfer objects for the API boundary."""

from stock_ledger.application.dto.requests import (
    RecordMovementRequest,
    RegisterProductRequest,
    SetConversionFactorRequest,
)
from stock_ledger.application.dto.responses import (
    DriftReportResponse,
    ErrorResponse,
    HealthResponse,
    MovementListResponse,
    MovementResponse,
    MovementResultResponse,
    ProductListResponse,
    ProductResponse,
    ProjectionResponse,
    ProviderHealthResponse,
    WarningResponse,
)

__all__ = [
    # Requests
    "RegisterProductRequest",
    "RecordMovementRequest",
    "SetConversionFactorRequest",
    # Responses
    "ProjectionResponse",
    "MovementResponse",
    "WarningResponse",
    "MovementResultResponse",
    "MovementListResponse",
    "ProductResponse",
    "ProductListResponse",
    "DriftReportResponse",
    "HealthResponse",
    "ProviderHealthResponse",
    "ErrorResponse",
]
