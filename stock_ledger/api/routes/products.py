"""Product registration, projection and drift endpoints."""

from fastapi import APIRouter, Depends, status

from stock_ledger.api.dependencies import (
    get_ledger,
    get_register_product_use_case,
    get_replay_projection_use_case,
    get_store,
)
from stock_ledger.application.dto.requests import (
    RegisterProductRequest,
    SetConversionFactorRequest,
)
from stock_ledger.application.dto.responses import (
    DriftReportResponse,
    ErrorResponse,
    MovementListResponse,
    ProductListResponse,
    ProductResponse,
    ProjectionResponse,
    to_movement_response,
    to_product_response,
    to_projection_response,
)
from stock_ledger.application.use_cases import (
    RegisterProductUseCase,
    ReplayProjectionUseCase,
)
from stock_ledger.core.exceptions import ProductNotFoundError
from stock_ledger.core.interfaces import ILedgerStore
from stock_ledger.core.services import LedgerService

router = APIRouter(prefix="/api/products", tags=["products"])


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def register_product(
    request: RegisterProductRequest,
    use_case: RegisterProductUseCase = Depends(get_register_product_use_case),
) -> ProductResponse:
    """Register a product, optionally with opening stock."""
    product = await use_case.execute(request)
    return use_case.to_response(product)


@router.get("", response_model=ProductListResponse)
async def list_products(
    limit: int = 100,
    offset: int = 0,
    store: ILedgerStore = Depends(get_store),
) -> ProductListResponse:
    """List registered products."""
    products = await store.list_products(limit=limit, offset=offset)
    return ProductListResponse(
        products=[to_product_response(p) for p in products],
        total=len(products),
    )


@router.get("/low-stock", response_model=ProductListResponse)
async def list_low_stock(
    limit: int = 100,
    offset: int = 0,
    store: ILedgerStore = Depends(get_store),
) -> ProductListResponse:
    """List products at or below their minimum stock level."""
    products = await store.list_low_stock(limit=limit, offset=offset)
    return ProductListResponse(
        products=[to_product_response(p) for p in products],
        total=len(products),
    )


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_product(
    product_id: str,
    store: ILedgerStore = Depends(get_store),
) -> ProductResponse:
    """Get a product with its projection and counters."""
    product = await store.get_product(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return to_product_response(product)


@router.get(
    "/{product_id}/projection",
    response_model=ProjectionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_projection(
    product_id: str,
    ledger: LedgerService = Depends(get_ledger),
) -> ProjectionResponse:
    """Current stock in pieces and base units."""
    projection = await ledger.get_projection(product_id)
    return to_projection_response(projection)


@router.put(
    "/{product_id}/conversion-factor",
    response_model=ProductResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def set_conversion_factor(
    product_id: str,
    request: SetConversionFactorRequest,
    ledger: LedgerService = Depends(get_ledger),
) -> ProductResponse:
    """Set pieces-per-base-unit; only allowed before the first movement."""
    product = await ledger.set_conversion_factor(
        product_id, request.pieces_per_base_unit, timeout=request.timeout
    )
    return to_product_response(product)


@router.get(
    "/{product_id}/movements",
    response_model=MovementListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_movements(
    product_id: str,
    limit: int = 100,
    offset: int = 0,
    store: ILedgerStore = Depends(get_store),
) -> MovementListResponse:
    """Movement history for a product, newest first."""
    if await store.get_product(product_id) is None:
        raise ProductNotFoundError(product_id)
    movements = await store.get_movements(product_id, limit=limit, offset=offset)
    return MovementListResponse(
        movements=[to_movement_response(m) for m in movements],
        total=len(movements),
    )


@router.post(
    "/{product_id}/replay",
    response_model=DriftReportResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def verify_projection(
    product_id: str,
    use_case: ReplayProjectionUseCase = Depends(get_replay_projection_use_case),
) -> DriftReportResponse:
    """Replay the movement log and report any drift from the live projection."""
    report = await use_case.execute(product_id)
    return use_case.to_response(report)


@router.post(
    "/{product_id}/repair",
    response_model=DriftReportResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def repair_projection(
    product_id: str,
    use_case: ReplayProjectionUseCase = Depends(get_replay_projection_use_case),
) -> DriftReportResponse:
    """Overwrite a drifted projection with the one replayed from the log."""
    report = await use_case.execute(product_id, repair=True)
    return use_case.to_response(report)
