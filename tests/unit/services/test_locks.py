"""Tests for the per-product lock registry."""

import asyncio
import time

import pytest

from stock_ledger.core.exceptions import LedgerTimeoutError
from stock_ledger.core.services import ProductLockRegistry


class TestProductLockRegistry:
    def test_same_product_same_lock(self):
        locks = ProductLockRegistry()
        assert locks.get("A") is locks.get("A")
        assert locks.get("A") is not locks.get("B")

    async def test_hold_and_release(self):
        locks = ProductLockRegistry()
        async with locks.hold("A"):
            assert locks.is_locked("A")
        assert not locks.is_locked("A")

    async def test_released_on_error(self):
        locks = ProductLockRegistry()
        with pytest.raises(RuntimeError):
            async with locks.hold("A"):
                raise RuntimeError("boom")
        assert not locks.is_locked("A")

    async def test_timeout(self):
        locks = ProductLockRegistry()
        async with locks.hold("A"):
            with pytest.raises(LedgerTimeoutError) as exc_info:
                async with locks.hold("A", timeout=0.05):
                    pass
        assert exc_info.value.details["product_id"] == "A"
        # The timed-out waiter must not leave the lock held
        assert not locks.is_locked("A")

    async def test_other_products_do_not_wait(self):
        locks = ProductLockRegistry()
        async with locks.hold("A"):
            start = time.monotonic()
            async with locks.hold("B", timeout=0.5):
                pass
            assert time.monotonic() - start < 0.1

    async def test_waiter_proceeds_after_release(self):
        locks = ProductLockRegistry()
        order = []

        async def worker(name: str, delay: float):
            async with locks.hold("A", timeout=1):
                order.append(f"{name}-in")
                await asyncio.sleep(delay)
                order.append(f"{name}-out")

        await asyncio.gather(worker("first", 0.02), worker("second", 0))
        assert order == ["first-in", "first-out", "second-in", "second-out"]
