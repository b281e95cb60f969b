"""Tests for LedgerService with a mocked store."""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from stock_ledger.core.entities import (
    MovementKind,
    Product,
    StockMovement,
    StockUnit,
    WarningCode,
)
from stock_ledger.core.exceptions import (
    ConcurrentUpdateError,
    ConversionFactorLockedError,
    InvalidConversionFactorError,
    InvalidQuantityError,
    LedgerTimeoutError,
    ProductNotFoundError,
    ValidationError,
)
from stock_ledger.core.services import LedgerService, ProductLockRegistry

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _stored(product, expected_version, movement):
    return movement.model_copy(update={"id": 1})


@pytest.fixture
def mock_store():
    store = AsyncMock()
    store.get_product.return_value = Product(
        id="SKU-DUS24", pieces_per_base_unit=24, stock_pieces=90, version=4
    )
    store.apply_movement.side_effect = _stored
    return store


@pytest.fixture
def service(mock_store):
    return LedgerService(
        store=mock_store,
        lock_timeout=1.0,
        max_cas_retries=3,
        cas_retry_delay=0,
        clock=lambda: NOW,
    )


def _movement(kind="inbound", unit="pcs", quantity="1", product_id="SKU-DUS24", **kwargs):
    return StockMovement(
        product_id=product_id,
        kind=MovementKind(kind),
        unit=StockUnit(unit),
        quantity=Decimal(quantity),
        **kwargs,
    )


class TestRecordMovement:
    async def test_applies_and_persists(self, service, mock_store):
        """Test a base-unit receipt lands as pieces."""
        result = await service.record_movement(_movement(unit="base_unit", quantity="1.5"))

        assert result.projection.stock_pieces == 126
        assert result.warnings == []
        assert result.movement.id == 1

        product, expected_version, movement = mock_store.apply_movement.call_args[0]
        assert expected_version == 4
        assert product.version == 5
        assert product.stock_pieces == 126
        assert product.last_movement_at == NOW
        assert movement.sequence == 5
        assert movement.resulting_pieces == 126
        assert movement.recorded_at == NOW

    async def test_returns_clamp_warning(self, service):
        result = await service.record_movement(
            _movement(kind="outbound", unit="base_unit", quantity="10")
        )
        assert result.projection.stock_pieces == 0
        assert [w.code for w in result.warnings] == [WarningCode.STOCK_WENT_NEGATIVE]

    async def test_recorded_at_never_goes_backwards(self, service, mock_store):
        later = NOW + timedelta(seconds=5)
        mock_store.get_product.return_value = Product(
            id="SKU-DUS24", pieces_per_base_unit=24, version=1, last_movement_at=later
        )
        result = await service.record_movement(_movement())
        assert result.movement.recorded_at == later

    async def test_invalid_quantity_rejected_before_reading(self, service, mock_store):
        with pytest.raises(InvalidQuantityError):
            await service.record_movement(_movement(quantity="0"))
        mock_store.get_product.assert_not_awaited()
        mock_store.apply_movement.assert_not_awaited()

    async def test_fractional_pieces_rejected_without_write(self, service, mock_store):
        with pytest.raises(InvalidQuantityError):
            await service.record_movement(_movement(quantity="2.5"))
        mock_store.apply_movement.assert_not_awaited()

    async def test_blank_product_id_rejected(self, service, mock_store):
        with pytest.raises(ValidationError):
            await service.record_movement(_movement(product_id="  "))
        mock_store.get_product.assert_not_awaited()

    async def test_unknown_product(self, service, mock_store):
        mock_store.get_product.return_value = None
        with pytest.raises(ProductNotFoundError):
            await service.record_movement(_movement(product_id="NOPE"))
        mock_store.apply_movement.assert_not_awaited()

    async def test_unknown_factor_rejects_movement(self, service, mock_store):
        mock_store.get_product.return_value = Product(id="SKU-DUS24", pieces_per_base_unit=None)
        with pytest.raises(InvalidConversionFactorError):
            await service.record_movement(_movement())
        mock_store.apply_movement.assert_not_awaited()

    async def test_retries_on_version_conflict(self, service, mock_store):
        """Test a lost compare-and-swap re-reads and succeeds."""
        stored = _movement().model_copy(update={"id": 9})
        mock_store.apply_movement.side_effect = [None, stored]

        result = await service.record_movement(_movement())

        assert result.movement.id == 9
        assert mock_store.apply_movement.await_count == 2
        assert mock_store.get_product.await_count == 2

    async def test_gives_up_after_max_retries(self, service, mock_store):
        mock_store.apply_movement.side_effect = None
        mock_store.apply_movement.return_value = None

        with pytest.raises(ConcurrentUpdateError) as exc_info:
            await service.record_movement(_movement())

        assert mock_store.apply_movement.await_count == 3
        assert exc_info.value.details["attempts"] == 3

    async def test_storage_failure_propagates_without_retry(self, service, mock_store):
        from stock_ledger.core.exceptions import PersistenceFailedError

        mock_store.apply_movement.side_effect = PersistenceFailedError("apply_movement", "disk full")
        with pytest.raises(PersistenceFailedError):
            await service.record_movement(_movement())
        assert mock_store.apply_movement.await_count == 1

    async def test_lock_timeout(self, mock_store):
        locks = ProductLockRegistry()
        service = LedgerService(store=mock_store, locks=locks, lock_timeout=0.05)

        async with locks.hold("SKU-DUS24"):
            with pytest.raises(LedgerTimeoutError):
                await service.record_movement(_movement())

        mock_store.get_product.assert_not_awaited()

    async def test_caller_timeout_overrides_default(self, mock_store):
        locks = ProductLockRegistry()
        service = LedgerService(store=mock_store, locks=locks, lock_timeout=30)

        async with locks.hold("SKU-DUS24"):
            with pytest.raises(LedgerTimeoutError) as exc_info:
                await service.record_movement(_movement(), timeout=0.05)
        assert exc_info.value.details["timeout"] == 0.05

    async def test_same_product_is_serialized(self, mock_store):
        """Test the store never sees two writers for one product at once."""
        in_flight = 0
        peak = 0

        async def slow_apply(product, expected_version, movement):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return movement.model_copy(update={"id": 1})

        mock_store.apply_movement.side_effect = slow_apply
        service = LedgerService(store=mock_store, lock_timeout=5)

        await asyncio.gather(*(service.record_movement(_movement()) for _ in range(5)))
        assert peak == 1


class TestProjectionReads:
    async def test_get_projection(self, service):
        projection = await service.get_projection("SKU-DUS24")
        assert projection.stock_pieces == 90
        assert projection.stock_base_units == 3.75

    async def test_replay_from_log(self, service, mock_store):
        mock_store.get_replay_log.return_value = [
            _movement(unit="base_unit", quantity="5"),
            _movement(kind="outbound", quantity="30"),
        ]
        projection = await service.replay_from_log("SKU-DUS24")
        assert projection.stock_pieces == 90
        assert projection.movement_count == 2

    async def test_verify_reports_drift(self, service, mock_store):
        mock_store.get_replay_log.return_value = [_movement(quantity="10", sequence=1, resulting_pieces=10)]
        report = await service.verify_projection("SKU-DUS24")
        assert report.has_drift
        assert report.live.stock_pieces == 90
        assert report.replayed.stock_pieces == 10
        assert not report.repaired
        mock_store.replace_projection.assert_not_awaited()

    async def test_repair_writes_replayed_projection(self, service, mock_store):
        mock_store.get_replay_log.return_value = [_movement(quantity="10", sequence=1, resulting_pieces=10)]
        mock_store.replace_projection.return_value = True

        report = await service.repair_projection("SKU-DUS24")

        assert report.repaired
        product, expected_version = mock_store.replace_projection.call_args[0]
        assert expected_version == 4
        assert product.version == 5
        assert product.stock_pieces == 10
        assert product.movement_count == 1

    async def test_repair_without_drift_is_noop(self, service, mock_store):
        mock_store.get_product.return_value = Product(
            id="SKU-DUS24", pieces_per_base_unit=24, stock_pieces=10,
            total_pieces_added=10, movement_count=1, version=1,
        )
        mock_store.get_replay_log.return_value = [_movement(quantity="10", sequence=1, resulting_pieces=10)]

        report = await service.repair_projection("SKU-DUS24")

        assert not report.has_drift
        assert not report.repaired
        mock_store.replace_projection.assert_not_awaited()


class TestProducts:
    async def test_register_validates_factor(self, service, mock_store):
        with pytest.raises(InvalidConversionFactorError):
            await service.register_product(Product(id="SKU-X", pieces_per_base_unit=0))
        mock_store.create_product.assert_not_awaited()

    async def test_register_rejects_negative_initial_stock(self, service, mock_store):
        with pytest.raises(ValidationError):
            await service.register_product(Product(id="SKU-X"), initial_stock_pieces=-1)
        mock_store.create_product.assert_not_awaited()

    async def test_register_resets_projection(self, service, mock_store):
        mock_store.create_product.side_effect = lambda product, opening=None: product
        created = await service.register_product(
            Product(id="SKU-X", pieces_per_base_unit=12, stock_pieces=50, version=7)
        )
        assert created.stock_pieces == 0
        assert created.version == 0
        assert created.created_at == NOW
        assert mock_store.create_product.call_args.args[1] is None

    async def test_register_writes_opening_movement_with_product(self, service, mock_store):
        mock_store.create_product.side_effect = lambda product, opening=None: product

        created = await service.register_product(
            Product(id="SKU-X", pieces_per_base_unit=12), initial_stock_pieces=50
        )

        product, opening = mock_store.create_product.call_args.args
        assert created.stock_pieces == 50
        assert created.initial_stock_pieces == 50
        assert created.total_pieces_added == 50
        assert created.movement_count == 1
        assert created.version == 1
        assert created.last_movement_at == NOW
        assert opening.kind == MovementKind.ADJUSTMENT
        assert opening.unit == StockUnit.PIECES
        assert opening.reference == "initial-stock"
        assert opening.sequence == 1
        assert opening.resulting_pieces == 50
        assert opening.recorded_at == NOW
        mock_store.apply_movement.assert_not_awaited()

    async def test_register_waits_for_product_lock(self, service, mock_store):
        async with service.locks.hold("SKU-X"):
            with pytest.raises(LedgerTimeoutError):
                await service.register_product(
                    Product(id="SKU-X", pieces_per_base_unit=12),
                    initial_stock_pieces=50,
                    timeout=0.01,
                )
        mock_store.create_product.assert_not_awaited()

    async def test_set_factor(self, service, mock_store):
        mock_store.get_product.return_value = Product(id="SKU-X", pieces_per_base_unit=None, version=0)
        mock_store.update_conversion_factor.return_value = True

        product = await service.set_conversion_factor("SKU-X", 12)

        assert product.pieces_per_base_unit == 12
        assert product.version == 1
        mock_store.update_conversion_factor.assert_awaited_once_with("SKU-X", 12, 0)

    async def test_set_factor_locked_after_movements(self, service, mock_store):
        mock_store.get_product.return_value = Product(
            id="SKU-X", pieces_per_base_unit=24, movement_count=2
        )
        with pytest.raises(ConversionFactorLockedError):
            await service.set_conversion_factor("SKU-X", 12)
        mock_store.update_conversion_factor.assert_not_awaited()

    @pytest.mark.parametrize("factor", [0, -1, True])
    async def test_set_factor_validates(self, service, factor):
        with pytest.raises(InvalidConversionFactorError):
            await service.set_conversion_factor("SKU-X", factor)

    async def test_set_factor_unknown_product(self, service, mock_store):
        mock_store.get_product.return_value = None
        with pytest.raises(ProductNotFoundError):
            await service.set_conversion_factor("NOPE", 12)
