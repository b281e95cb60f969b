"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Callable
from decimal import Decimal
from pathlib import Path

import pytest

from stock_ledger.application.services import reset_services
from stock_ledger.config import reset_settings
from stock_ledger.core.entities import MovementKind, Product, StockMovement, StockUnit
from stock_ledger.core.services import LedgerService
from stock_ledger.infrastructure.storage.sqlite import (
    ConnectionPool,
    SQLiteLedgerStore,
    close_pool,
    reset_ledger_store,
)
from stock_ledger.infrastructure.storage.sqlite.migrations import initialize_database


@pytest.fixture(autouse=True)
async def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> AsyncGenerator[None, None]:
    """Point settings at a temp data dir and drop every singleton around each test."""
    monkeypatch.setenv("STORAGE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("ENVIRONMENT", "development")
    reset_settings()
    reset_services()
    reset_ledger_store()
    yield
    await close_pool()
    reset_ledger_store()
    reset_services()
    reset_settings()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ledger.db"


@pytest.fixture
async def migrated_db(db_path: Path) -> Path:
    """Temporary database with every migration applied."""
    results = await initialize_database(db_path)
    assert all(r.success for r in results)
    return db_path


@pytest.fixture
async def pool(migrated_db: Path) -> AsyncGenerator[ConnectionPool, None]:
    pool = ConnectionPool(db_path=migrated_db, pool_size=3, busy_timeout=5000)
    await pool.initialize()
    yield pool
    await pool.close()


@pytest.fixture
def store(pool: ConnectionPool) -> SQLiteLedgerStore:
    return SQLiteLedgerStore(pool=pool)


@pytest.fixture
def ledger(store: SQLiteLedgerStore) -> LedgerService:
    """Ledger over a real temp database, with fast retries."""
    return LedgerService(
        store=store,
        lock_timeout=2.0,
        max_cas_retries=3,
        cas_retry_delay=0,
    )


@pytest.fixture
def make_movement() -> Callable[..., StockMovement]:
    """Factory for unrecorded movements."""

    def _make(
        kind: MovementKind | str = MovementKind.INBOUND,
        unit: StockUnit | str = StockUnit.PIECES,
        quantity: int | str | Decimal = 1,
        product_id: str = "SKU-DUS24",
        **kwargs,
    ) -> StockMovement:
        return StockMovement(
            product_id=product_id,
            kind=MovementKind.parse(kind),
            unit=StockUnit.parse(unit),
            quantity=Decimal(str(quantity)),
            **kwargs,
        )

    return _make


@pytest.fixture
def dus_product() -> Product:
    """A product sold by the piece and bought by the 'dus' of 24."""
    return Product(
        id="SKU-DUS24",
        name="Instant noodles",
        base_unit_name="dus",
        pieces_per_base_unit=24,
    )


@pytest.fixture
async def registered_product(ledger: LedgerService, dus_product: Product) -> Product:
    return await ledger.register_product(dus_product)
