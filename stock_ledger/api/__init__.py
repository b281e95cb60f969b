"""HTTP API for the stock ledger."""
