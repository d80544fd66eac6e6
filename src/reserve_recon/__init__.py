"""Reserve verification and solvency reconciliation for a tokenized reserve asset."""

__version__ = "0.1.0"
