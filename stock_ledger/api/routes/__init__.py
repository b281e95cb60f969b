"""API route modules."""

from stock_ledger.api.routes.health import router as health_router
from stock_ledger.api.routes.movements import router as movements_router
from stock_ledger.api.routes.products import router as products_router

__all__ = [
    "health_router",
    "products_router",
    "movements_router",
]
