"""Tests for RegisterProductUseCase."""

from unittest.mock import AsyncMock

import pytest

from stock_ledger.application.dto.requests import RegisterProductRequest
from stock_ledger.application.use_cases.register_product import RegisterProductUseCase


@pytest.fixture
def mock_ledger():
    ledger = AsyncMock()
    ledger.register_product.side_effect = lambda product, initial_stock_pieces=0: product
    return ledger


@pytest.fixture
def use_case(mock_ledger):
    return RegisterProductUseCase(ledger_service=mock_ledger)


class TestRegisterProductUseCase:
    async def test_default_min_stock_level_from_settings(self, use_case, monkeypatch):
        """Test an omitted threshold falls back to LEDGER_DEFAULT_MIN_STOCK_LEVEL."""
        from stock_ledger.config import reset_settings

        monkeypatch.setenv("LEDGER_DEFAULT_MIN_STOCK_LEVEL", "48")
        reset_settings()

        product = await use_case.execute(RegisterProductRequest(id="SKU-1"))
        assert product.min_stock_level == 48

    async def test_explicit_fields(self, use_case, mock_ledger):
        request = RegisterProductRequest(
            id="  SKU-DUS24 ",
            name="Instant noodles",
            base_unit_name="dus",
            pieces_per_base_unit=24,
            min_stock_level=5,
            initial_stock_pieces=100,
        )
        product = await use_case.execute(request)

        assert product.id == "SKU-DUS24"
        assert product.pieces_per_base_unit == 24
        assert product.min_stock_level == 5
        assert mock_ledger.register_product.call_args.kwargs["initial_stock_pieces"] == 100

    async def test_unknown_factor_passes_through(self, use_case):
        product = await use_case.execute(
            RegisterProductRequest(id="SKU-LOOSE", pieces_per_base_unit=None)
        )
        assert product.pieces_per_base_unit is None
        assert not product.is_active

    def test_to_response(self, use_case):
        from stock_ledger.core.entities import Product

        response = use_case.to_response(
            Product(id="SKU-1", pieces_per_base_unit=24, stock_pieces=5, min_stock_level=10)
        )
        assert response.is_low_stock
        assert response.stock_base_units == pytest.approx(5 / 24)
