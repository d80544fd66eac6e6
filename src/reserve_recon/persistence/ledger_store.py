"""Off-chain serial ledger and commitment audit trail.

The store holds two tables:

- ``serials``: one row per physical reserve unit, unique on serial
  number. Rows are created by ingestion and only ever stamped with the
  commitment they were folded into. They are never deleted.
- ``commitment_audit``: one row per published root, unique on root hash.
  Upserts are keyed on the root so repeated runs that reach the same
  root never duplicate rows.

All sqlite3 failures are wrapped in DataSourceError.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional, Protocol, runtime_checkable

from reserve_recon.errors import DataSourceError
from reserve_recon.models.commitment import AuditStatus, CommitmentAuditEntry, SerialRecord


_SCHEMA = """
CREATE TABLE IF NOT EXISTS serials (
    serial_number TEXT PRIMARY KEY,
    batch_id TEXT NOT NULL,
    received_utc TEXT NOT NULL,
    included_in_commitment TEXT
);
CREATE INDEX IF NOT EXISTS idx_serials_batch ON serials(batch_id);
CREATE INDEX IF NOT EXISTS idx_serials_commitment ON serials(included_in_commitment);

CREATE TABLE IF NOT EXISTS commitment_audit (
    root_hash TEXT PRIMARY KEY,
    total_serials INTEGER NOT NULL,
    onchain_tx_signature TEXT,
    status TEXT NOT NULL,
    recorded_utc TEXT NOT NULL
);
"""


@runtime_checkable
class LedgerStore(Protocol):
    """Contract for the off-chain store used by the pipeline."""

    def list_serials(self) -> list[str]:
        """All serial numbers, ascending by byte value."""
        ...

    def upsert_audit_entry(self, entry: CommitmentAuditEntry) -> None:
        ...

    def stamp_unreconciled(self, root_hash: str, serials: Iterable[str]) -> int:
        """Stamp the unstamped rows among ``serials`` with ``root_hash``. Returns rows touched."""
        ...


class SQLiteLedgerStore:
    """LedgerStore on a single SQLite file.

    One connection guarded by a lock; safe to share across the threads
    that serve concurrent triggers.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = str(path)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(self._path, check_same_thread=False, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA busy_timeout=30000;")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise DataSourceError(f"Cannot open ledger store {self._path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Serials
    # ------------------------------------------------------------------

    def list_serials(self) -> list[str]:
        with self._cursor() as conn:
            rows = conn.execute("SELECT serial_number FROM serials ORDER BY serial_number").fetchall()
        return [row["serial_number"] for row in rows]

    def serial_records(self) -> list[SerialRecord]:
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT serial_number, batch_id, included_in_commitment "
                "FROM serials ORDER BY serial_number"
            ).fetchall()
        return [
            SerialRecord(
                serial_number=row["serial_number"],
                batch_id=row["batch_id"],
                included_in_commitment=row["included_in_commitment"],
            )
            for row in rows
        ]

    def add_serials(self, batch_id: str, serials: Iterable[str]) -> int:
        """Insert a batch of serials. Existing serials are left untouched.

        Returns the number of rows actually inserted.
        """
        now = _utc_now()
        values = [(s, batch_id, now) for s in serials]
        for serial, _, _ in values:
            if not serial:
                raise ValueError("Serial numbers must be non-empty")
        with self._transaction() as conn:
            before = conn.total_changes
            conn.executemany(
                "INSERT OR IGNORE INTO serials (serial_number, batch_id, received_utc) "
                "VALUES (?, ?, ?)",
                values,
            )
            return conn.total_changes - before

    def stamp_unreconciled(self, root_hash: str, serials: Iterable[str]) -> int:
        """Stamp only the listed serials; rows ingested after the ledger read stay NULL."""
        values = [(root_hash, s) for s in serials]
        with self._transaction() as conn:
            before = conn.total_changes
            conn.executemany(
                "UPDATE serials SET included_in_commitment = ? "
                "WHERE serial_number = ? AND included_in_commitment IS NULL",
                values,
            )
            return conn.total_changes - before

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def upsert_audit_entry(self, entry: CommitmentAuditEntry) -> None:
        recorded = entry.recorded_utc or _utc_now()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO commitment_audit "
                "(root_hash, total_serials, onchain_tx_signature, status, recorded_utc) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(root_hash) DO UPDATE SET "
                "total_serials = excluded.total_serials, "
                "onchain_tx_signature = excluded.onchain_tx_signature, "
                "status = excluded.status",
                (
                    entry.root_hash,
                    entry.total_serials,
                    entry.onchain_tx_signature,
                    entry.status.value,
                    recorded,
                ),
            )

    def get_audit_entry(self, root_hash: str) -> Optional[CommitmentAuditEntry]:
        with self._cursor() as conn:
            row = conn.execute(
                "SELECT * FROM commitment_audit WHERE root_hash = ?", (root_hash,),
            ).fetchone()
        return _audit_from_row(row) if row is not None else None

    def latest_audit_entry(self) -> Optional[CommitmentAuditEntry]:
        history = self.audit_history(limit=1)
        return history[0] if history else None

    def audit_history(self, limit: int = 10) -> list[CommitmentAuditEntry]:
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT * FROM commitment_audit ORDER BY recorded_utc DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_audit_from_row(row) for row in rows]

    def audit_count(self) -> int:
        with self._cursor() as conn:
            return conn.execute("SELECT COUNT(*) FROM commitment_audit").fetchone()[0]

    def batch_count(self) -> int:
        with self._cursor() as conn:
            return conn.execute("SELECT COUNT(DISTINCT batch_id) FROM serials").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                raise DataSourceError(f"Ledger store query failed: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE;")
                try:
                    yield self._conn
                except BaseException:
                    self._conn.execute("ROLLBACK;")
                    raise
                self._conn.execute("COMMIT;")
            except sqlite3.Error as exc:
                raise DataSourceError(f"Ledger store write failed: {exc}") from exc


def _audit_from_row(row: sqlite3.Row) -> CommitmentAuditEntry:
    return CommitmentAuditEntry(
        root_hash=row["root_hash"],
        total_serials=row["total_serials"],
        onchain_tx_signature=row["onchain_tx_signature"],
        status=AuditStatus(row["status"]),
        recorded_utc=row["recorded_utc"],
    )


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
