"""Tests for SQLiteLedgerStore."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import aiosqlite
import pytest

from stock_ledger.core.entities import MovementKind, Product, StockMovement, StockUnit
from stock_ledger.core.exceptions import DuplicateProductError, PersistenceFailedError

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)


def _accepted(product_id: str, sequence: int, resulting: int, at: datetime, **kwargs) -> StockMovement:
    fields = {
        "kind": MovementKind.INBOUND,
        "unit": StockUnit.PIECES,
        "quantity": Decimal("1"),
    }
    fields.update(kwargs)
    return StockMovement(
        product_id=product_id,
        sequence=sequence,
        resulting_pieces=resulting,
        recorded_at=at,
        **fields,
    )


async def _append(store, product: Product, movement: StockMovement) -> StockMovement:
    """Advance the projection by one version and append the movement."""
    updated = product.model_copy(
        update={
            "stock_pieces": movement.resulting_pieces,
            "movement_count": product.movement_count + 1,
            "version": product.version + 1,
            "last_movement_at": movement.recorded_at,
        }
    )
    stored = await store.apply_movement(updated, product.version, movement)
    assert stored is not None
    return stored


class TestProducts:
    async def test_create_and_get(self, store, dus_product):
        await store.create_product(dus_product)
        loaded = await store.get_product("SKU-DUS24")

        assert loaded is not None
        assert loaded.name == "Instant noodles"
        assert loaded.base_unit_name == "dus"
        assert loaded.pieces_per_base_unit == 24
        assert loaded.stock_pieces == 0
        assert loaded.version == 0
        assert loaded.created_at.tzinfo is not None

    async def test_get_missing(self, store):
        assert await store.get_product("NOPE") is None

    async def test_create_with_opening_movement(self, store, dus_product):
        opened = dus_product.model_copy(
            update={
                "stock_pieces": 50,
                "initial_stock_pieces": 50,
                "total_pieces_added": 50,
                "movement_count": 1,
                "version": 1,
                "last_movement_at": T0,
            }
        )
        opening = _accepted(
            "SKU-DUS24", 1, 50, T0,
            kind=MovementKind.ADJUSTMENT, quantity=Decimal("50"), reference="initial-stock",
        )

        await store.create_product(opened, opening)

        product = await store.get_product("SKU-DUS24")
        assert product.stock_pieces == 50
        assert product.version == 1
        [movement] = await store.get_replay_log("SKU-DUS24")
        assert movement.reference == "initial-stock"
        assert movement.resulting_pieces == 50

    async def test_failed_opening_movement_discards_product(self, store, pool, dus_product):
        async with pool.transaction() as conn:
            await conn.execute(
                """
                CREATE TRIGGER fail_opening BEFORE INSERT ON stock_movements
                BEGIN SELECT RAISE(ABORT, 'no movements'); END
                """
            )
        opening = _accepted("SKU-DUS24", 1, 50, T0, kind=MovementKind.ADJUSTMENT)

        with pytest.raises(PersistenceFailedError):
            await store.create_product(dus_product.model_copy(update={"version": 1}), opening)

        assert await store.get_product("SKU-DUS24") is None

    async def test_out_of_range_piece_count_is_persistence_error(self, store, dus_product):
        with pytest.raises(PersistenceFailedError):
            await store.create_product(dus_product.model_copy(update={"stock_pieces": 2**64}))
        assert await store.get_product("SKU-DUS24") is None

    async def test_duplicate(self, store, dus_product):
        await store.create_product(dus_product)
        with pytest.raises(DuplicateProductError):
            await store.create_product(dus_product)

    async def test_unknown_factor_round_trips_as_none(self, store):
        await store.create_product(Product(id="SKU-LOOSE", pieces_per_base_unit=None))
        loaded = await store.get_product("SKU-LOOSE")
        assert loaded.pieces_per_base_unit is None
        assert not loaded.is_active

    async def test_list_products_ordered_by_id(self, store):
        for product_id in ["SKU-C", "SKU-A", "SKU-B"]:
            await store.create_product(Product(id=product_id))
        products = await store.list_products()
        assert [p.id for p in products] == ["SKU-A", "SKU-B", "SKU-C"]

        page = await store.list_products(limit=1, offset=1)
        assert [p.id for p in page] == ["SKU-B"]

    async def test_list_low_stock(self, store):
        await store.create_product(Product(id="SKU-EMPTY", min_stock_level=10))
        await store.create_product(Product(id="SKU-FULL", min_stock_level=0, stock_pieces=5))
        await store.create_product(Product(id="SKU-EDGE", min_stock_level=3, stock_pieces=3))

        low = await store.list_low_stock()
        assert [p.id for p in low] == ["SKU-EMPTY", "SKU-EDGE"]


class TestConversionFactor:
    async def test_update_bumps_version(self, store):
        await store.create_product(Product(id="SKU-X", pieces_per_base_unit=None))
        assert await store.update_conversion_factor("SKU-X", 12, expected_version=0)

        loaded = await store.get_product("SKU-X")
        assert loaded.pieces_per_base_unit == 12
        assert loaded.version == 1

    async def test_stale_version_rejected(self, store):
        await store.create_product(Product(id="SKU-X"))
        assert not await store.update_conversion_factor("SKU-X", 12, expected_version=3)
        assert (await store.get_product("SKU-X")).pieces_per_base_unit == 1

    async def test_rejected_once_movements_exist(self, store, dus_product):
        await store.create_product(dus_product)
        await _append(store, dus_product, _accepted("SKU-DUS24", 1, 1, T0))

        assert not await store.update_conversion_factor("SKU-DUS24", 12, expected_version=1)
        assert (await store.get_product("SKU-DUS24")).pieces_per_base_unit == 24


class TestApplyMovement:
    async def test_persists_projection_and_movement(self, store, dus_product):
        await store.create_product(dus_product)
        stored = await _append(
            store,
            dus_product,
            _accepted("SKU-DUS24", 1, 36, T0, unit=StockUnit.BASE_UNIT, quantity=Decimal("1.5"), reference="PO-1"),
        )

        assert stored.id is not None
        product = await store.get_product("SKU-DUS24")
        assert product.stock_pieces == 36
        assert product.version == 1
        assert product.last_movement_at == T0

        [movement] = await store.get_movements("SKU-DUS24")
        assert movement.id == stored.id
        assert movement.unit == StockUnit.BASE_UNIT
        assert movement.quantity == Decimal("1.5")
        assert movement.reference == "PO-1"
        assert movement.recorded_at == T0

    async def test_quantity_stored_exactly(self, store, dus_product):
        await store.create_product(dus_product)
        await _append(
            store,
            dus_product,
            _accepted("SKU-DUS24", 1, 7, T0, unit=StockUnit.BASE_UNIT, quantity=Decimal("0.3")),
        )
        [movement] = await store.get_replay_log("SKU-DUS24")
        assert movement.quantity == Decimal("0.3")
        assert str(movement.quantity) == "0.3"

    async def test_stale_version_writes_nothing(self, store, dus_product):
        """Test a lost compare-and-swap leaves both projection and log untouched."""
        await store.create_product(dus_product)
        stale = dus_product.model_copy(update={"stock_pieces": 99, "version": 6})

        result = await store.apply_movement(stale, 5, _accepted("SKU-DUS24", 6, 99, T0))

        assert result is None
        assert (await store.get_product("SKU-DUS24")).stock_pieces == 0
        assert await store.get_movements("SKU-DUS24") == []

    async def test_failed_insert_rolls_back_projection(self, store, pool, dus_product):
        await store.create_product(dus_product)
        await _append(store, dus_product, _accepted("SKU-DUS24", 1, 1, T0))
        product = await store.get_product("SKU-DUS24")

        # Same sequence twice violates UNIQUE(product_id, sequence)
        updated = product.model_copy(update={"stock_pieces": 50, "version": 2})
        with pytest.raises(PersistenceFailedError):
            await store.apply_movement(updated, 1, _accepted("SKU-DUS24", 1, 50, T0))

        reloaded = await store.get_product("SKU-DUS24")
        assert reloaded.stock_pieces == 1
        assert reloaded.version == 1
        assert len(await store.get_movements("SKU-DUS24")) == 1

    async def test_replace_projection(self, store, dus_product):
        await store.create_product(dus_product)
        repaired = dus_product.model_copy(update={"stock_pieces": 12, "version": 1})
        assert await store.replace_projection(repaired, 0)
        assert not await store.replace_projection(repaired, 0)
        assert (await store.get_product("SKU-DUS24")).stock_pieces == 12

    async def test_out_of_range_projection_rolls_back(self, store, dus_product):
        await store.create_product(dus_product)
        updated = dus_product.model_copy(update={"stock_pieces": 2**64, "version": 1})

        with pytest.raises(PersistenceFailedError):
            await store.apply_movement(updated, 0, _accepted("SKU-DUS24", 1, 1, T0))

        product = await store.get_product("SKU-DUS24")
        assert product.stock_pieces == 0
        assert product.version == 0
        assert await store.get_movements("SKU-DUS24") == []


class TestMovementLog:
    async def test_log_is_append_only(self, store, pool, dus_product):
        await store.create_product(dus_product)
        await _append(store, dus_product, _accepted("SKU-DUS24", 1, 1, T0))

        async with pool.acquire() as conn:
            with pytest.raises(aiosqlite.IntegrityError):
                await conn.execute("UPDATE stock_movements SET quantity = '5'")
            with pytest.raises(aiosqlite.IntegrityError):
                await conn.execute("DELETE FROM stock_movements")
            await conn.rollback()

        assert len(await store.get_movements("SKU-DUS24")) == 1

    async def test_ordering(self, store, dus_product):
        await store.create_product(dus_product)
        product = dus_product
        for sequence in range(1, 4):
            await _append(
                store,
                product,
                _accepted("SKU-DUS24", sequence, sequence, T0 + timedelta(seconds=sequence)),
            )
            product = await store.get_product("SKU-DUS24")

        newest_first = await store.get_movements("SKU-DUS24")
        assert [m.sequence for m in newest_first] == [3, 2, 1]

        replay_order = await store.get_replay_log("SKU-DUS24")
        assert [m.sequence for m in replay_order] == [1, 2, 3]

        page = await store.get_movements("SKU-DUS24", limit=1, offset=1)
        assert [m.sequence for m in page] == [2]

    async def test_same_timestamp_falls_back_to_sequence(self, store, dus_product):
        await store.create_product(dus_product)
        product = dus_product
        for sequence in range(1, 4):
            await _append(store, product, _accepted("SKU-DUS24", sequence, sequence, T0))
            product = await store.get_product("SKU-DUS24")

        assert [m.sequence for m in await store.get_replay_log("SKU-DUS24")] == [1, 2, 3]

    async def test_list_movements_time_range(self, store):
        a = Product(id="SKU-A")
        b = Product(id="SKU-B")
        await store.create_product(a)
        await store.create_product(b)
        await _append(store, a, _accepted("SKU-A", 1, 1, T0))
        await _append(store, b, _accepted("SKU-B", 1, 1, T0 + timedelta(hours=1)))
        a = await store.get_product("SKU-A")
        await _append(store, a, _accepted("SKU-A", 2, 2, T0 + timedelta(hours=2)))

        window = await store.list_movements(start=T0, end=T0 + timedelta(hours=2))
        assert [(m.product_id, m.sequence) for m in window] == [("SKU-A", 1), ("SKU-B", 1)]

        only_a = await store.list_movements(product_id="SKU-A")
        assert [m.sequence for m in only_a] == [1, 2]

        assert len(await store.list_movements(limit=1)) == 1

    async def test_naive_bounds_are_utc(self, store):
        a = Product(id="SKU-A")
        await store.create_product(a)
        await _append(store, a, _accepted("SKU-A", 1, 1, T0))

        naive_start = T0.replace(tzinfo=None)
        assert len(await store.list_movements(start=naive_start)) == 1
        assert await store.list_movements(end=naive_start) == []

    async def test_movement_requires_existing_product(self, store):
        ghost = Product(id="GHOST", version=1)
        # No product row, so the versioned UPDATE matches nothing
        assert await store.apply_movement(ghost, 0, _accepted("GHOST", 1, 1, T0)) is None
