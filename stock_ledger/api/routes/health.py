"""
Health check endpoints.
"""

import time

from fastapi import APIRouter

from stock_ledger import __version__
from stock_ledger.application.dto.responses import HealthResponse, ProviderHealthResponse

router = APIRouter(prefix="/api/health", tags=["health"])

# Track startup time
_start_time = time.time()


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check.

    Returns service status and uptime.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime_seconds=time.time() - _start_time,
    )


@router.get("/db", response_model=HealthResponse)
async def db_health() -> HealthResponse:
    """
    Database health check.

    Tests SQLite connectivity and response time.
    """
    from stock_ledger.infrastructure.storage.sqlite import get_pool

    try:
        pool = await get_pool()
        start = time.time()
        available = await pool.ping()
        latency = (time.time() - start) * 1000

        db_status = ProviderHealthResponse(
            name="sqlite",
            available=available,
            latency_ms=latency,
        )

    except Exception as e:
        db_status = ProviderHealthResponse(
            name="sqlite",
            available=False,
            error=str(e),
        )

    return HealthResponse(
        status="healthy" if db_status.available else "unhealthy",
        version=__version__,
        uptime_seconds=time.time() - _start_time,
        database=db_status,
    )
