"""Ledger reader: the full ordered serial set for one run."""

from __future__ import annotations

import logging

from reserve_recon.errors import DataSourceError
from reserve_recon.persistence.ledger_store import LedgerStore


logger = logging.getLogger(__name__)


class LedgerReader:
    """Reads every serial identifier from the off-chain store.

    Failures propagate as DataSourceError; the caller decides whether to
    abort. An empty list is a valid result.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def read(self) -> list[str]:
        serials = self._store.list_serials()
        # Byte-order sort keeps the contract independent of store collation.
        ordered = sorted(serials, key=lambda s: s.encode("utf-8"))
        if len(set(ordered)) != len(ordered):
            raise DataSourceError("Ledger returned duplicate serial numbers")
        logger.debug("Read %d serials from ledger", len(ordered))
        return ordered
