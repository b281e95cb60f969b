"""API test fixtures: the real app wired to a temp-database ledger."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from stock_ledger.api.dependencies import get_ledger, get_store
from stock_ledger.api.main import app


@pytest.fixture
async def api_client(ledger, store) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_store] = lambda: store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_ledger, None)
    app.dependency_overrides.pop(get_store, None)


@pytest.fixture
async def dus_registered(api_client: AsyncClient) -> dict:
    response = await api_client.post(
        "/api/products",
        json={
            "id": "SKU-DUS24",
            "name": "Instant noodles",
            "base_unit_name": "dus",
            "pieces_per_base_unit": 24,
        },
    )
    assert response.status_code == 201
    return response.json()
