"""
Domain exceptions for the stock ledger.

Validation errors are raised before any mutation, concurrency errors are
transient and safe to retry, storage errors leave no partial state.
"""

from typing import Any


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Validation Exceptions
class ValidationError(LedgerError):
    """Input validation failed."""

    def __init__(self, field: str, message: str, value: Any = None):
        super().__init__(
            f"Validation error for '{field}': {message}",
            code="VALIDATION_ERROR",
            details={
                "field": field,
                "message": message,
                "value": str(value)[:100] if value is not None else None,
            },
        )


class InvalidQuantityError(ValidationError):
    """Quantity is non-finite, out of range, or a fractional piece count."""

    def __init__(self, quantity: Any, reason: str):
        super().__init__(field="quantity", message=reason, value=quantity)
        self.code = "INVALID_QUANTITY"


class InvalidConversionFactorError(ValidationError):
    """Pieces-per-base-unit is missing or below 1."""

    def __init__(self, factor: Any, product_id: str | None = None):
        super().__init__(
            field="pieces_per_base_unit",
            message="conversion factor must be an integer >= 1",
            value=factor,
        )
        self.code = "INVALID_CONVERSION_FACTOR"
        if product_id is not None:
            self.details["product_id"] = product_id


class UnknownUnitError(ValidationError):
    """Movement unit is not one of the known denominations."""

    def __init__(self, unit: Any, allowed: list[str]):
        super().__init__(
            field="unit",
            message=f"Unknown unit. Allowed: {', '.join(allowed)}",
            value=unit,
        )
        self.code = "UNKNOWN_UNIT"
        self.details["allowed"] = allowed


class UnknownMovementKindError(ValidationError):
    """Movement kind is not inbound, outbound or adjustment."""

    def __init__(self, kind: Any, allowed: list[str]):
        super().__init__(
            field="kind",
            message=f"Unknown movement kind. Allowed: {', '.join(allowed)}",
            value=kind,
        )
        self.code = "UNKNOWN_MOVEMENT_KIND"
        self.details["allowed"] = allowed


# Not-found Exceptions
class NotFoundError(LedgerError):
    """Base exception for missing resources."""

    pass


class ProductNotFoundError(NotFoundError):
    """Product does not exist."""

    def __init__(self, product_id: str):
        super().__init__(
            f"Product not found: {product_id}",
            code="PRODUCT_NOT_FOUND",
            details={"product_id": product_id},
        )


# Conflict Exceptions
class ConflictError(LedgerError):
    """Request conflicts with current state."""

    pass


class DuplicateProductError(ConflictError):
    """Product with the same ID is already registered."""

    def __init__(self, product_id: str):
        super().__init__(
            f"Product already exists: {product_id}",
            code="DUPLICATE_PRODUCT",
            details={"product_id": product_id},
        )


class ConversionFactorLockedError(ConflictError):
    """Conversion factor cannot change once movements exist."""

    def __init__(self, product_id: str, movement_count: int):
        super().__init__(
            f"Conversion factor of {product_id} is locked: "
            f"{movement_count} movement(s) already recorded",
            code="CONVERSION_FACTOR_LOCKED",
            details={"product_id": product_id, "movement_count": movement_count},
        )


# Concurrency Exceptions
class ConcurrencyError(LedgerError):
    """Transient contention on a product; the whole call may be retried."""

    pass


class LedgerTimeoutError(ConcurrencyError):
    """Per-product lock was not acquired within the caller's budget."""

    def __init__(self, product_id: str, timeout: float):
        super().__init__(
            f"Timed out after {timeout}s waiting for product {product_id}",
            code="LEDGER_TIMEOUT",
            details={"product_id": product_id, "timeout": timeout},
        )


class ConcurrentUpdateError(ConcurrencyError):
    """Projection version changed underneath every attempt."""

    def __init__(self, product_id: str, attempts: int):
        super().__init__(
            f"Concurrent update on product {product_id} after {attempts} attempt(s)",
            code="CONCURRENT_UPDATE",
            details={"product_id": product_id, "attempts": attempts},
        )


# Storage Exceptions
class StorageError(LedgerError):
    """Base exception for storage operations."""

    pass


class PersistenceFailedError(StorageError):
    """Database operation failed and was rolled back."""

    def __init__(self, operation: str, error: str):
        super().__init__(
            f"Database error during {operation}: {error}",
            code="PERSISTENCE_FAILED",
            details={"operation": operation, "error": error},
        )


class ConfigurationError(LedgerError):
    """Configuration error."""

    pass
