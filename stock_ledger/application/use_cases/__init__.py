"""Application use cases."""

from stock_ledger.application.use_cases.record_movement import RecordMovementUseCase
from stock_ledger.application.use_cases.register_product import RegisterProductUseCase
from stock_ledger.application.use_cases.replay_projection import ReplayProjectionUseCase

__all__ = [
    "RecordMovementUseCase",
    "RegisterProductUseCase",
    "ReplayProjectionUseCase",
]
