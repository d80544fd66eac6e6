"""Reconciliation engine: guard, sequencer, audit, pipeline, price sync."""

from reserve_recon.engine.audit import AuditRecorder
from reserve_recon.engine.guard import InvariantGuard
from reserve_recon.engine.ledger_reader import LedgerReader
from reserve_recon.engine.pipeline import ReconciliationPipeline
from reserve_recon.engine.price import PriceDriftReconciler, compute_price_units
from reserve_recon.engine.sequencer import TransactionSequencer

__all__ = [
    "AuditRecorder",
    "InvariantGuard",
    "LedgerReader",
    "PriceDriftReconciler",
    "ReconciliationPipeline",
    "TransactionSequencer",
    "compute_price_units",
]
