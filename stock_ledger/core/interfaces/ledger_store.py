"""Abstract interface for ledger storage."""

from abc import ABC, abstractmethod
from datetime import datetime

from stock_ledger.core.entities import Product, StockMovement


class ILedgerStore(ABC):
    """Interface for product projection and movement log persistence."""

    @abstractmethod
    async def create_product(
        self, product: Product, opening: StockMovement | None = None
    ) -> Product:
        """
        Register a new product. Raises DuplicateProductError if the ID exists.

        `opening`, when given, is appended to the log in the same transaction.
        """
        pass

    @abstractmethod
    async def get_product(self, product_id: str) -> Product | None:
        """Get product by ID."""
        pass

    @abstractmethod
    async def list_products(self, limit: int = 100, offset: int = 0) -> list[Product]:
        """List products with pagination."""
        pass

    @abstractmethod
    async def list_low_stock(self, limit: int = 100, offset: int = 0) -> list[Product]:
        """List products whose stock_pieces is at or below their min_stock_level."""
        pass

    @abstractmethod
    async def update_conversion_factor(
        self, product_id: str, pieces_per_base_unit: int, expected_version: int
    ) -> bool:
        """
        Set the conversion factor if no movements exist and the version matches.

        Returns False when the guard fails.
        """
        pass

    @abstractmethod
    async def apply_movement(
        self, product: Product, expected_version: int, movement: StockMovement
    ) -> StockMovement | None:
        """
        Persist the new projection and append the movement as one transaction.

        The projection write is conditional on the stored version still being
        `expected_version`; returns None (nothing written) when it is not.
        """
        pass

    @abstractmethod
    async def replace_projection(self, product: Product, expected_version: int) -> bool:
        """Overwrite projection fields (repair); conditional on the version."""
        pass

    @abstractmethod
    async def get_movements(
        self, product_id: str, limit: int = 100, offset: int = 0
    ) -> list[StockMovement]:
        """Get movements for a product, newest first."""
        pass

    @abstractmethod
    async def get_replay_log(self, product_id: str) -> list[StockMovement]:
        """Get every movement for a product in recorded_at order (oldest first)."""
        pass

    @abstractmethod
    async def list_movements(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        product_id: str | None = None,
        limit: int = 1000,
    ) -> list[StockMovement]:
        """List movements recorded in [start, end), oldest first."""
        pass
