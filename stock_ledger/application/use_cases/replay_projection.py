"""Replay Projection Use Case: verify or repair a projection against its log."""

from stock_ledger.application.dto.responses import (
    DriftReportResponse,
    to_drift_report_response,
)
from stock_ledger.config import get_logger
from stock_ledger.core.entities import DriftReport
from stock_ledger.core.services import LedgerService

logger = get_logger(__name__)


class ReplayProjectionUseCase:
    """Replay a product's movement log and compare it with the live projection."""

    def __init__(self, ledger_service: LedgerService | None = None):
        self._ledger_service = ledger_service

    async def _get_ledger_service(self) -> LedgerService:
        if self._ledger_service is None:
            from stock_ledger.application.services import get_ledger_service

            self._ledger_service = await get_ledger_service()
        return self._ledger_service

    async def execute(self, product_id: str, repair: bool = False) -> DriftReport:
        """
        Verify a projection, repairing it when asked.

        Args:
            product_id: Product to check
            repair: Overwrite the projection with the replayed one on drift

        Returns:
            DriftReport; `repaired` is True only if a write happened
        """
        service = await self._get_ledger_service()
        if repair:
            report = await service.repair_projection(product_id)
        else:
            report = await service.verify_projection(product_id)

        logger.info(
            "replay_projection_complete",
            product_id=product_id,
            has_drift=report.has_drift,
            repaired=report.repaired,
            movements_replayed=report.movements_replayed,
        )
        return report

    def to_response(self, report: DriftReport) -> DriftReportResponse:
        """Convert result to API response."""
        return to_drift_report_response(report)
