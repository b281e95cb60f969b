"""
Ledger service: the only write path to product stock.

Each movement runs under the product's lock: read the projection and
conversion factor, fold the movement through the conversion engine, then
persist the new projection and the movement record in one transaction.
The projection write is a compare-and-swap on the product version, which
also serializes writers in other processes sharing the database.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stock_ledger.config import get_logger, get_settings
from stock_ledger.core.entities import (
    DriftReport,
    LedgerWarning,
    MovementKind,
    Product,
    StockMovement,
    StockProjection,
    StockUnit,
)
from stock_ledger.core.exceptions import (
    ConcurrentUpdateError,
    ConversionFactorLockedError,
    InvalidConversionFactorError,
    ProductNotFoundError,
    ValidationError,
)
from stock_ledger.core.interfaces import ILedgerStore
from stock_ledger.core.services.conversion_engine import (
    apply_to_projection,
    replay,
    validate_conversion_factor,
    validate_quantity,
)
from stock_ledger.core.services.locks import ProductLockRegistry

logger = get_logger(__name__)

INITIAL_STOCK_REFERENCE = "initial-stock"


@dataclass
class MovementResult:
    """Result of recording a movement."""

    projection: StockProjection
    movement: StockMovement
    warnings: list[LedgerWarning] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LedgerService:
    """Accepts stock movements and keeps product projections consistent."""

    def __init__(
        self,
        store: ILedgerStore,
        locks: ProductLockRegistry | None = None,
        lock_timeout: float | None = None,
        max_cas_retries: int | None = None,
        cas_retry_delay: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        settings = get_settings().ledger
        self._store = store
        self._locks = locks or ProductLockRegistry()
        self.lock_timeout = settings.lock_timeout if lock_timeout is None else lock_timeout
        self.max_cas_retries = max(
            1, settings.max_cas_retries if max_cas_retries is None else max_cas_retries
        )
        self.cas_retry_delay = (
            settings.cas_retry_delay if cas_retry_delay is None else cas_retry_delay
        )
        self._clock = clock or _utcnow

    @property
    def locks(self) -> ProductLockRegistry:
        return self._locks

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    async def record_movement(
        self, movement: StockMovement, timeout: float | None = None
    ) -> MovementResult:
        """
        Apply a movement to its product's projection and append it to the log.

        Args:
            movement: Unrecorded movement; id/recorded_at/sequence are assigned here
            timeout: Seconds to wait for the product lock (default from settings)

        Returns:
            Post-movement projection, the recorded movement and any warnings

        Raises:
            InvalidQuantityError: Quantity fails the rule for its kind/unit
            InvalidConversionFactorError: Product has no usable factor
            ProductNotFoundError: Unknown product_id
            LedgerTimeoutError: Lock not acquired within the timeout
            ConcurrentUpdateError: Version kept changing across retries
            PersistenceFailedError: Storage failed; nothing was written
        """
        if not movement.product_id or not movement.product_id.strip():
            raise ValidationError("product_id", "product_id is required")
        validate_quantity(movement.kind, movement.quantity)

        budget = self.lock_timeout if timeout is None else timeout
        async with self._locks.hold(movement.product_id, budget):
            result = await self._apply_with_retry(movement)

        logger.info(
            "movement_recorded",
            product_id=movement.product_id,
            movement_id=result.movement.id,
            kind=movement.kind.value,
            unit=movement.unit.value,
            quantity=str(movement.quantity),
            reference=movement.reference,
            stock_pieces=result.projection.stock_pieces,
            stock_base_units=result.projection.stock_base_units,
        )
        for warning in result.warnings:
            logger.warning(
                warning.code.value,
                **{"product_id": movement.product_id, **warning.details},
            )
        return result

    async def _apply_with_retry(self, movement: StockMovement) -> MovementResult:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_cas_retries),
            wait=wait_exponential(
                multiplier=self.cas_retry_delay,
                max=self.cas_retry_delay * 8,
            ),
            retry=retry_if_exception_type(ConcurrentUpdateError),
            before_sleep=self._log_conflict,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._apply_once(
                    movement, attempt.retry_state.attempt_number
                )
        raise ConcurrentUpdateError(movement.product_id, self.max_cas_retries)

    @staticmethod
    def _log_conflict(retry_state: RetryCallState) -> None:
        logger.info(
            "projection_version_conflict",
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    async def _apply_once(self, movement: StockMovement, attempt: int) -> MovementResult:
        product = await self._require_active(movement.product_id)

        projection, outcome = apply_to_projection(product.projection(), movement)

        now = self._clock()
        # Keep recorded_at monotone per product so replay order == apply order
        recorded_at = now
        if product.last_movement_at is not None and product.last_movement_at > now:
            recorded_at = product.last_movement_at

        new_version = product.version + 1
        updated = product.model_copy(
            update={
                "stock_pieces": projection.stock_pieces,
                "total_pieces_added": projection.total_pieces_added,
                "total_pieces_reduced": projection.total_pieces_reduced,
                "movement_count": projection.movement_count,
                "version": new_version,
                "last_movement_at": recorded_at,
                "updated_at": now,
            }
        )
        accepted = movement.model_copy(
            update={
                "id": None,
                "recorded_at": recorded_at,
                "sequence": new_version,
                "resulting_pieces": projection.stock_pieces,
            }
        )

        stored = await self._store.apply_movement(updated, product.version, accepted)
        if stored is None:
            raise ConcurrentUpdateError(product.id, attempt)

        return MovementResult(
            projection=projection,
            movement=stored,
            warnings=list(outcome.warnings),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_projection(self, product_id: str) -> StockProjection:
        """Read-only snapshot of a product's projection."""
        product = await self._require_active(product_id)
        return product.projection()

    async def replay_from_log(self, product_id: str) -> StockProjection:
        """Recompute a product's projection from zero using its movement log."""
        product = await self._require_active(product_id)
        log = await self._store.get_replay_log(product_id)
        result = replay(product_id, product.pieces_per_base_unit, log)  # type: ignore[arg-type]
        return result.projection

    # ------------------------------------------------------------------
    # Drift detection and repair
    # ------------------------------------------------------------------

    async def verify_projection(
        self, product_id: str, timeout: float | None = None
    ) -> DriftReport:
        """Compare the live projection with a replay of the log."""
        budget = self.lock_timeout if timeout is None else timeout
        async with self._locks.hold(product_id, budget):
            report, _ = await self._compare(product_id)
        return report

    async def repair_projection(
        self, product_id: str, timeout: float | None = None
    ) -> DriftReport:
        """Overwrite a drifted projection with the one replayed from the log."""
        budget = self.lock_timeout if timeout is None else timeout
        async with self._locks.hold(product_id, budget):
            report, product = await self._compare(product_id)
            if not report.has_drift:
                return report

            replayed = report.replayed
            repaired = product.model_copy(
                update={
                    "stock_pieces": replayed.stock_pieces,
                    "total_pieces_added": replayed.total_pieces_added,
                    "total_pieces_reduced": replayed.total_pieces_reduced,
                    "movement_count": replayed.movement_count,
                    "version": product.version + 1,
                    "updated_at": self._clock(),
                }
            )
            if not await self._store.replace_projection(repaired, product.version):
                raise ConcurrentUpdateError(product_id, 1)

        logger.info(
            "projection_repaired",
            product_id=product_id,
            stock_pieces_before=report.live.stock_pieces,
            stock_pieces_after=report.replayed.stock_pieces,
        )
        return report.model_copy(update={"repaired": True})

    async def _compare(self, product_id: str) -> tuple[DriftReport, Product]:
        product = await self._require_active(product_id)
        log = await self._store.get_replay_log(product_id)
        result = replay(product_id, product.pieces_per_base_unit, log)  # type: ignore[arg-type]
        report = DriftReport(
            product_id=product_id,
            live=product.projection(),
            replayed=result.projection,
            movements_replayed=result.movements_replayed,
            first_divergent_sequence=result.first_divergent_sequence,
        )
        if report.has_drift:
            logger.warning(
                "projection_drift_detected",
                product_id=product_id,
                live_pieces=report.live.stock_pieces,
                replayed_pieces=report.replayed.stock_pieces,
                first_divergent_sequence=report.first_divergent_sequence,
            )
        return report, product

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def register_product(
        self,
        product: Product,
        initial_stock_pieces: int = 0,
        timeout: float | None = None,
    ) -> Product:
        """
        Register a product with an empty projection.

        Initial stock is recorded as an ADJUSTMENT movement so that replaying
        the log from zero reproduces it. The product row and that opening
        movement are written in one transaction: either both exist or neither.
        """
        if product.pieces_per_base_unit is not None:
            validate_conversion_factor(product.pieces_per_base_unit, product.id)
        if initial_stock_pieces < 0:
            raise ValidationError(
                "initial_stock_pieces", "must be >= 0", initial_stock_pieces
            )
        if initial_stock_pieces and not product.is_active:
            raise InvalidConversionFactorError(product.pieces_per_base_unit, product.id)

        now = self._clock()
        fresh = product.model_copy(
            update={
                "stock_pieces": 0,
                "initial_stock_pieces": initial_stock_pieces,
                "total_pieces_added": 0,
                "total_pieces_reduced": 0,
                "movement_count": 0,
                "version": 0,
                "last_movement_at": None,
                "created_at": now,
                "updated_at": now,
            }
        )

        opening: StockMovement | None = None
        if initial_stock_pieces:
            movement = StockMovement(
                product_id=fresh.id,
                kind=MovementKind.ADJUSTMENT,
                unit=StockUnit.PIECES,
                quantity=initial_stock_pieces,
                reference=INITIAL_STOCK_REFERENCE,
            )
            projection, _ = apply_to_projection(fresh.projection(), movement)
            fresh = fresh.model_copy(
                update={
                    "stock_pieces": projection.stock_pieces,
                    "total_pieces_added": projection.total_pieces_added,
                    "total_pieces_reduced": projection.total_pieces_reduced,
                    "movement_count": projection.movement_count,
                    "version": 1,
                    "last_movement_at": now,
                }
            )
            opening = movement.model_copy(
                update={
                    "recorded_at": now,
                    "sequence": 1,
                    "resulting_pieces": projection.stock_pieces,
                }
            )

        budget = self.lock_timeout if timeout is None else timeout
        async with self._locks.hold(fresh.id, budget):
            created = await self._store.create_product(fresh, opening)

        if opening is not None:
            logger.info(
                "opening_stock_recorded",
                product_id=created.id,
                stock_pieces=created.stock_pieces,
            )
        return created

    async def set_conversion_factor(
        self, product_id: str, pieces_per_base_unit: int, timeout: float | None = None
    ) -> Product:
        """
        Set a product's pieces-per-base-unit.

        Allowed only while no movements exist; afterwards the factor is
        locked and ConversionFactorLockedError is raised.
        """
        factor = validate_conversion_factor(pieces_per_base_unit, product_id)
        budget = self.lock_timeout if timeout is None else timeout
        async with self._locks.hold(product_id, budget):
            product = await self._require_product(product_id)
            if product.movement_count > 0:
                raise ConversionFactorLockedError(product_id, product.movement_count)
            if product.pieces_per_base_unit == factor:
                return product

            ok = await self._store.update_conversion_factor(
                product_id, factor, product.version
            )
            if not ok:
                current = await self._require_product(product_id)
                if current.movement_count > 0:
                    raise ConversionFactorLockedError(product_id, current.movement_count)
                raise ConcurrentUpdateError(product_id, 1)

        logger.info(
            "conversion_factor_set",
            product_id=product_id,
            old=product.pieces_per_base_unit,
            new=factor,
        )
        return product.model_copy(
            update={"pieces_per_base_unit": factor, "version": product.version + 1}
        )

    async def _require_product(self, product_id: str) -> Product:
        product = await self._store.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def _require_active(self, product_id: str) -> Product:
        product = await self._require_product(product_id)
        if not product.is_active:
            raise InvalidConversionFactorError(product.pieces_per_base_unit, product_id)
        return product
