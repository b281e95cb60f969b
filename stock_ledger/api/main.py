"""
FastAPI application factory.

Creates and configures the main application instance.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stock_ledger import __version__
from stock_ledger.api.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from stock_ledger.api.middleware.error_handler import setup_exception_handlers
from stock_ledger.api.routes import health_router, movements_router, products_router
from stock_ledger.config import configure_logging, get_logger, get_settings

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan handler.

    Runs migrations and opens the connection pool on startup; closes it on shutdown.
    """
    settings = get_settings()

    logger.info(
        "application_starting",
        host=settings.api.host,
        port=settings.api.port,
        debug=settings.api.debug,
    )

    try:
        from stock_ledger.infrastructure.storage.sqlite import get_pool
        from stock_ledger.infrastructure.storage.sqlite.migrations.migrator import (
            run_migrations,
            verify_schema_integrity,
        )

        await run_migrations()
        logger.info("database_initialized")

        for check in await verify_schema_integrity():
            if check["status"] != "PASS":
                logger.warning("schema_integrity_check_failed", **check)

        await get_pool()
        logger.info("connection_pool_ready")

    except Exception as e:
        logger.error("database_init_failed", error=str(e))
        raise

    logger.info("application_started")

    yield

    logger.info("application_stopping")

    from stock_ledger.application.services import reset_services
    from stock_ledger.infrastructure.storage.sqlite import close_pool, reset_ledger_store

    await close_pool()
    reset_ledger_store()
    reset_services()

    logger.info("application_stopped")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()
    configure_logging()

    app = FastAPI(
        title="Stock Ledger API",
        description="Append-only stock movements with piece/base-unit conversion",
        version=__version__,
        docs_url="/docs" if settings.api.debug else None,
        redoc_url="/redoc" if settings.api.debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    # CORS
    if settings.api.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(products_router)
    app.include_router(movements_router)

    # Root health endpoint (for k8s/docker health checks)
    @app.get("/health")
    async def root_health() -> dict[str, str]:
        """Simple health check at root level."""
        return {
            "status": "healthy",
            "version": __version__,
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "stock_ledger.api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
    )
