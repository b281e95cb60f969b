"""Stock movement endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, status

from stock_ledger.api.dependencies import get_record_movement_use_case, get_store
from stock_ledger.application.dto.requests import RecordMovementRequest
from stock_ledger.application.dto.responses import (
    ErrorResponse,
    MovementListResponse,
    MovementResultResponse,
    to_movement_response,
)
from stock_ledger.application.use_cases import RecordMovementUseCase
from stock_ledger.core.interfaces import ILedgerStore

router = APIRouter(prefix="/api/movements", tags=["movements"])


@router.post(
    "",
    response_model=MovementResultResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def record_movement(
    request: RecordMovementRequest,
    use_case: RecordMovementUseCase = Depends(get_record_movement_use_case),
) -> MovementResultResponse:
    """Record an inbound, outbound or adjustment movement."""
    result = await use_case.execute(request)
    return use_case.to_response(result)


@router.get("", response_model=MovementListResponse)
async def list_movements(
    start: datetime | None = None,
    end: datetime | None = None,
    product_id: str | None = None,
    limit: int = 1000,
    store: ILedgerStore = Depends(get_store),
) -> MovementListResponse:
    """Movements recorded in [start, end), oldest first."""
    movements = await store.list_movements(
        start=start, end=end, product_id=product_id, limit=limit
    )
    return MovementListResponse(
        movements=[to_movement_response(m) for m in movements],
        total=len(movements),
    )
