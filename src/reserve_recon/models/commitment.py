"""Commitment and ledger record models.

A Commitment is the durable output of one Merkle build: the 32-byte
root, its hex form and the number of leaves folded into it. The tree
itself is rebuilt every run and never persisted.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


ROOT_SIZE = 32


class AuditStatus(str, enum.Enum):
    """Outcome recorded against a published root."""
    CONFIRMED = "confirmed"  # every attempted step landed
    PARTIAL = "partial"      # root published, a later step failed


@dataclass(frozen=True)
class SerialRecord:
    """One physical reserve unit in the off-chain ledger."""
    serial_number: str
    batch_id: str
    included_in_commitment: Optional[str] = None


@dataclass(frozen=True)
class Commitment:
    """Root and leaf count of a commitment over a serial set."""
    root: bytes
    leaf_count: int

    def __post_init__(self) -> None:
        if len(self.root) != ROOT_SIZE:
            raise ValueError(f"Commitment root must be {ROOT_SIZE} bytes, got {len(self.root)}")
        if self.leaf_count < 0:
            raise ValueError("leaf_count must be non-negative")

    @property
    def root_hex(self) -> str:
        return "0x" + self.root.hex()


@dataclass(frozen=True)
class CommitmentAuditEntry:
    """Off-chain audit row, unique on root_hash."""
    root_hash: str
    total_serials: int
    onchain_tx_signature: Optional[str]
    status: AuditStatus
    recorded_utc: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "root_hash": self.root_hash,
            "total_serials": self.total_serials,
            "onchain_tx_signature": self.onchain_tx_signature,
            "status": self.status.value,
            "recorded_utc": self.recorded_utc,
        }
