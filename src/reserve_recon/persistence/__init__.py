"""Persistence: off-chain serial ledger and commitment audit trail."""

from reserve_recon.persistence.ledger_store import LedgerStore, SQLiteLedgerStore

__all__ = ["LedgerStore", "SQLiteLedgerStore"]
