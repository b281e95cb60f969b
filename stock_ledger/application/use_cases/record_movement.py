"""Record Movement Use Case: inbound, outbound or adjustment through the ledger."""

from stock_ledger.application.dto.requests import RecordMovementRequest
from stock_ledger.application.dto.responses import (
    MovementResultResponse,
    to_movement_response,
    to_projection_response,
    to_warning_response,
)
from stock_ledger.config import get_logger
from stock_ledger.core.entities import MovementKind, StockMovement, StockUnit
from stock_ledger.core.services import LedgerService, MovementResult

logger = get_logger(__name__)


class RecordMovementUseCase:
    """Validate a movement request and hand it to the ledger."""

    def __init__(self, ledger_service: LedgerService | None = None):
        self._ledger_service = ledger_service

    async def _get_ledger_service(self) -> LedgerService:
        if self._ledger_service is None:
            from stock_ledger.application.services import get_ledger_service

            self._ledger_service = await get_ledger_service()
        return self._ledger_service

    async def execute(self, request: RecordMovementRequest) -> MovementResult:
        """Execute record movement use case."""
        logger.info(
            "record_movement_started",
            product_id=request.product_id,
            kind=request.kind,
            unit=request.unit,
            quantity=str(request.quantity),
        )

        # Unknown kind/unit raise before anything touches the ledger
        movement = StockMovement(
            product_id=request.product_id,
            kind=MovementKind.parse(request.kind),
            unit=StockUnit.parse(request.unit),
            quantity=request.quantity,
            reference=request.reference,
            notes=request.notes,
        )

        service = await self._get_ledger_service()
        return await service.record_movement(movement, timeout=request.timeout)

    def to_response(self, result: MovementResult) -> MovementResultResponse:
        """Convert result to API response."""
        return MovementResultResponse(
            projection=to_projection_response(result.projection),
            movement=to_movement_response(result.movement),
            warnings=[to_warning_response(w) for w in result.warnings],
        )
