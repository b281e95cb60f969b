"""SQLite implementation of the ledger store."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from decimal import Decimal

import aiosqlite

from stock_ledger.config import get_logger
from stock_ledger.core.entities import MovementKind, Product, StockMovement, StockUnit
from stock_ledger.core.exceptions import DuplicateProductError, PersistenceFailedError
from stock_ledger.core.interfaces import ILedgerStore
from stock_ledger.infrastructure.storage.sqlite.connection import ConnectionPool, get_pool

logger = get_logger(__name__)


def _ts(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO timestamp so text order equals time order."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class SQLiteLedgerStore(ILedgerStore):
    """
    SQLite storage for product projections and the movement log.

    `apply_movement` is the only statement pair that touches stock: the
    versioned UPDATE of the product row and the INSERT into the log run in
    one BEGIN IMMEDIATE transaction.
    """

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    async def _get_pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = await get_pool()
        return self._pool

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        pool = await self._get_pool()
        async with pool.transaction() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def create_product(
        self, product: Product, opening: StockMovement | None = None
    ) -> Product:
        """Insert a product row, plus its opening movement in the same transaction."""
        try:
            async with self._transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO products (
                        id, name, base_unit_name, pieces_per_base_unit,
                        stock_pieces, stock_base_units, min_stock_level,
                        initial_stock_pieces, total_pieces_added, total_pieces_reduced,
                        movement_count, version, last_movement_at, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        product.id,
                        product.name,
                        product.base_unit_name,
                        product.pieces_per_base_unit,
                        product.stock_pieces,
                        product.stock_base_units,
                        product.min_stock_level,
                        product.initial_stock_pieces,
                        product.total_pieces_added,
                        product.total_pieces_reduced,
                        product.movement_count,
                        product.version,
                        _ts(product.last_movement_at),
                        _ts(product.created_at),
                        _ts(product.updated_at),
                    ),
                )
                if opening is not None:
                    await self._insert_movement(conn, opening)
        except aiosqlite.IntegrityError as e:
            if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
                raise DuplicateProductError(product.id) from e
            raise PersistenceFailedError("create_product", str(e)) from e
        except (aiosqlite.Error, OverflowError) as e:
            raise PersistenceFailedError("create_product", str(e)) from e

        logger.info("product_created", product_id=product.id)
        return product

    async def get_product(self, product_id: str) -> Product | None:
        """Get product by ID."""
        try:
            async with self._connection() as conn:
                cursor = await conn.execute(
                    "SELECT * FROM products WHERE id = ?", (product_id,)
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceFailedError("get_product", str(e)) from e
        return self._row_to_product(row) if row else None

    async def list_products(self, limit: int = 100, offset: int = 0) -> list[Product]:
        """List products ordered by ID."""
        return await self._query_products(
            "SELECT * FROM products ORDER BY id LIMIT ? OFFSET ?",
            (limit, offset),
            "list_products",
        )

    async def list_low_stock(self, limit: int = 100, offset: int = 0) -> list[Product]:
        """List products at or below their minimum level, emptiest first."""
        return await self._query_products(
            """
            SELECT * FROM products
            WHERE stock_pieces <= min_stock_level
            ORDER BY stock_pieces, id
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
            "list_low_stock",
        )

    async def _query_products(
        self, sql: str, params: tuple, operation: str
    ) -> list[Product]:
        try:
            async with self._connection() as conn:
                cursor = await conn.execute(sql, params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceFailedError(operation, str(e)) from e
        return [self._row_to_product(row) for row in rows]

    async def update_conversion_factor(
        self, product_id: str, pieces_per_base_unit: int, expected_version: int
    ) -> bool:
        """Set the factor while the product has no movements and the version matches."""
        try:
            async with self._transaction() as conn:
                cursor = await conn.execute(
                    """
                    UPDATE products SET
                        pieces_per_base_unit = ?,
                        stock_base_units = stock_pieces * 1.0 / ?,
                        version = version + 1,
                        updated_at = ?
                    WHERE id = ? AND version = ? AND movement_count = 0
                    """,
                    (
                        pieces_per_base_unit,
                        pieces_per_base_unit,
                        _ts(datetime.now(UTC)),
                        product_id,
                        expected_version,
                    ),
                )
                updated = cursor.rowcount == 1
        except aiosqlite.Error as e:
            raise PersistenceFailedError("update_conversion_factor", str(e)) from e
        return updated

    # ------------------------------------------------------------------
    # Projection writes
    # ------------------------------------------------------------------

    async def apply_movement(
        self, product: Product, expected_version: int, movement: StockMovement
    ) -> StockMovement | None:
        """Versioned projection update plus log append, all or nothing."""
        try:
            async with self._transaction() as conn:
                if not await self._write_projection(conn, product, expected_version):
                    return None
                movement_id = await self._insert_movement(conn, movement)
        except (aiosqlite.Error, OverflowError) as e:
            logger.error(
                "movement_persist_failed",
                product_id=movement.product_id,
                error=str(e),
            )
            raise PersistenceFailedError("apply_movement", str(e)) from e

        return movement.model_copy(update={"id": movement_id})

    async def replace_projection(self, product: Product, expected_version: int) -> bool:
        """Overwrite the projection row if its version is still `expected_version`."""
        try:
            async with self._transaction() as conn:
                return await self._write_projection(conn, product, expected_version)
        except (aiosqlite.Error, OverflowError) as e:
            raise PersistenceFailedError("replace_projection", str(e)) from e

    @staticmethod
    async def _insert_movement(
        conn: aiosqlite.Connection, movement: StockMovement
    ) -> int | None:
        cursor = await conn.execute(
            """
            INSERT INTO stock_movements (
                product_id, kind, unit, quantity, reference, notes,
                sequence, resulting_pieces, recorded_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                movement.product_id,
                movement.kind.value,
                movement.unit.value,
                str(movement.quantity),
                movement.reference,
                movement.notes,
                movement.sequence,
                movement.resulting_pieces,
                _ts(movement.recorded_at),
            ),
        )
        return cursor.lastrowid

    @staticmethod
    async def _write_projection(
        conn: aiosqlite.Connection, product: Product, expected_version: int
    ) -> bool:
        cursor = await conn.execute(
            """
            UPDATE products SET
                stock_pieces = ?,
                stock_base_units = ?,
                total_pieces_added = ?,
                total_pieces_reduced = ?,
                movement_count = ?,
                version = ?,
                last_movement_at = ?,
                updated_at = ?
            WHERE id = ? AND version = ?
            """,
            (
                product.stock_pieces,
                product.stock_base_units,
                product.total_pieces_added,
                product.total_pieces_reduced,
                product.movement_count,
                product.version,
                _ts(product.last_movement_at),
                _ts(product.updated_at),
                product.id,
                expected_version,
            ),
        )
        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Movement log
    # ------------------------------------------------------------------

    async def get_movements(
        self, product_id: str, limit: int = 100, offset: int = 0
    ) -> list[StockMovement]:
        """Get movements for a product, newest first."""
        return await self._query_movements(
            """
            SELECT * FROM stock_movements
            WHERE product_id = ?
            ORDER BY recorded_at DESC, sequence DESC
            LIMIT ? OFFSET ?
            """,
            (product_id, limit, offset),
            "get_movements",
        )

    async def get_replay_log(self, product_id: str) -> list[StockMovement]:
        """Every movement for a product in the order it was applied."""
        return await self._query_movements(
            """
            SELECT * FROM stock_movements
            WHERE product_id = ?
            ORDER BY recorded_at, sequence
            """,
            (product_id,),
            "get_replay_log",
        )

    async def list_movements(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        product_id: str | None = None,
        limit: int = 1000,
    ) -> list[StockMovement]:
        """List movements recorded in [start, end), oldest first."""
        conditions = []
        params: list = []
        if start is not None:
            conditions.append("recorded_at >= ?")
            params.append(_ts(start))
        if end is not None:
            conditions.append("recorded_at < ?")
            params.append(_ts(end))
        if product_id is not None:
            conditions.append("product_id = ?")
            params.append(product_id)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        return await self._query_movements(
            f"""
            SELECT * FROM stock_movements
            {where}
            ORDER BY recorded_at, product_id, sequence
            LIMIT ?
            """,
            tuple(params),
            "list_movements",
        )

    async def _query_movements(
        self, sql: str, params: tuple, operation: str
    ) -> list[StockMovement]:
        try:
            async with self._connection() as conn:
                cursor = await conn.execute(sql, params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceFailedError(operation, str(e)) from e
        return [self._row_to_movement(row) for row in rows]

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_product(row: aiosqlite.Row) -> Product:
        """Convert a database row to a Product entity."""
        return Product(
            id=row["id"],
            name=row["name"],
            base_unit_name=row["base_unit_name"],
            pieces_per_base_unit=row["pieces_per_base_unit"],
            stock_pieces=row["stock_pieces"],
            min_stock_level=row["min_stock_level"],
            initial_stock_pieces=row["initial_stock_pieces"],
            total_pieces_added=row["total_pieces_added"],
            total_pieces_reduced=row["total_pieces_reduced"],
            movement_count=row["movement_count"],
            version=row["version"],
            last_movement_at=_parse_ts(row["last_movement_at"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_movement(row: aiosqlite.Row) -> StockMovement:
        """Convert a database row to a StockMovement entity."""
        return StockMovement(
            id=row["id"],
            product_id=row["product_id"],
            kind=MovementKind(row["kind"]),
            unit=StockUnit(row["unit"]),
            quantity=Decimal(row["quantity"]),
            reference=row["reference"],
            notes=row["notes"],
            sequence=row["sequence"],
            resulting_pieces=row["resulting_pieces"],
            recorded_at=_parse_ts(row["recorded_at"]),
        )
