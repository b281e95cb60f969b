"""
Application layer - Use cases, DTOs, and service factories.

This layer orchestrates the ledger by:
1. Defining request/response DTOs for API contracts
2. Implementing use cases that coordinate core services
3. Providing factory functions for dependency injection
"""

from stock_ledger.application.dto import (
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
    RecordMovementRequest,
    RegisterProductRequest,
    SetConversionFactorRequest,
    WarningResponse,
)
from stock_ledger.application.services import get_ledger_service, reset_services
from stock_ledger.application.use_cases import (
    RecordMovementUseCase,
    RegisterProductUseCase,
    ReplayProjectionUseCase,
)

__all__ = [
    # Request DTOs
    "RegisterProductRequest",
    "RecordMovementRequest",
    "SetConversionFactorRequest",
    # Response DTOs
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
    # Use Cases
    "RecordMovementUseCase",
    "RegisterProductUseCase",
    "ReplayProjectionUseCase",
    # Service factories
    "get_ledger_service",
    "reset_services",
]
