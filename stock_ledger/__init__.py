"""Inventory stock ledger and unit-conversion engine."""

__version__ = "1.0.0"
