"""Register Product Use Case."""

from stock_ledger.application.dto.requests import RegisterProductRequest
from stock_ledger.application.dto.responses import ProductResponse, to_product_response
from stock_ledger.config import get_logger, get_settings
from stock_ledger.core.entities import Product
from stock_ledger.core.services import LedgerService

logger = get_logger(__name__)


class RegisterProductUseCase:
    """Register a product, optionally with opening stock."""

    def __init__(self, ledger_service: LedgerService | None = None):
        self._ledger_service = ledger_service

    async def _get_ledger_service(self) -> LedgerService:
        if self._ledger_service is None:
            from stock_ledger.application.services import get_ledger_service

            self._ledger_service = await get_ledger_service()
        return self._ledger_service

    async def execute(self, request: RegisterProductRequest) -> Product:
        """Execute register product use case."""
        min_level = request.min_stock_level
        if min_level is None:
            min_level = get_settings().ledger.default_min_stock_level

        product = Product(
            id=request.id.strip(),
            name=request.name,
            base_unit_name=request.base_unit_name,
            pieces_per_base_unit=request.pieces_per_base_unit,
            min_stock_level=min_level,
        )

        service = await self._get_ledger_service()
        created = await service.register_product(
            product, initial_stock_pieces=request.initial_stock_pieces
        )

        logger.info(
            "product_registered",
            product_id=created.id,
            pieces_per_base_unit=created.pieces_per_base_unit,
            stock_pieces=created.stock_pieces,
        )
        return created

    def to_response(self, product: Product) -> ProductResponse:
        """Convert result to API response."""
        return to_product_response(product)
