"""Audit recorder: off-chain trail for a published commitment.

Two writes, both best-effort because on-chain state is the system of
record:

1. Upsert a CommitmentAuditEntry keyed by root hash. Re-running after a
   crash updates the same row instead of adding another.
2. Stamp the serials folded into the root that are not yet tied to a
   commitment. Serials ingested after the ledger read are left for the
   run that folds them in; rows missed here are stamped by the next run.

Failures are logged as warnings and reported back, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from reserve_recon.engine.run_context import RunLog
from reserve_recon.errors import DataSourceError
from reserve_recon.models.commitment import AuditStatus, Commitment, CommitmentAuditEntry
from reserve_recon.persistence.ledger_store import LedgerStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditOutcome:
    entry_recorded: bool
    rows_stamped: Optional[int]


class AuditRecorder:

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def record(
        self,
        commitment: Commitment,
        serials: Iterable[str],
        tx_signature: Optional[str],
        status: AuditStatus,
        log: Optional[RunLog] = None,
    ) -> AuditOutcome:
        log = log or RunLog(logger)
        entry = CommitmentAuditEntry(
            root_hash=commitment.root_hex,
            total_serials=commitment.leaf_count,
            onchain_tx_signature=tx_signature,
            status=status,
        )

        entry_recorded = False
        try:
            self._store.upsert_audit_entry(entry)
            entry_recorded = True
            log.info(f"Audit entry recorded for {entry.root_hash} ({status.value})")
        except DataSourceError as exc:
            log.warning(f"Failed to record audit entry: {exc}")

        rows: Optional[int] = None
        try:
            rows = self._store.stamp_unreconciled(entry.root_hash, serials)
            log.info(f"Stamped {rows} serial rows with {entry.root_hash}")
        except DataSourceError as exc:
            log.warning(f"Failed to stamp serial rows: {exc}")

        return AuditOutcome(entry_recorded=entry_recorded, rows_stamped=rows)
