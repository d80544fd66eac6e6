"""Decoded snapshot of the on-chain protocol state account.

A snapshot is a point-in-time read and is immutable once decoded. State
can change between reads, so callers take a fresh snapshot before and
after every mutating sequence.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional


class SolvencyStatus(str, enum.Enum):
    SOLVENT = "SOLVENT"
    INSOLVENT = "INSOLVENT"


@dataclass(frozen=True)
class ProtocolStateSnapshot:
    """Typed view of the protocol state account (layout V2)."""
    schema_version: int
    authority: str
    operator: str
    mint_address: str
    treasury_address: str
    total_supply: int
    total_burned: int
    current_commitment_root: bytes
    proven_reserves: int
    last_update_timestamp: int
    last_proof_timestamp: int
    price_units: int
    is_paused: bool
    bump: int

    @property
    def root_hex(self) -> str:
        return "0x" + self.current_commitment_root.hex()

    def summary(self) -> dict[str, Any]:
        """Compact form for reports."""
        return {
            "schema_version": self.schema_version,
            "total_supply": self.total_supply,
            "proven_reserves": self.proven_reserves,
            "commitment_root": self.root_hex,
            "last_update": _iso(self.last_update_timestamp),
            "last_proof": _iso(self.last_proof_timestamp),
            "price_units": self.price_units,
            "is_paused": self.is_paused,
        }


def solvency_status(snapshot: ProtocolStateSnapshot) -> tuple[SolvencyStatus, Optional[float]]:
    """Return (status, reserves/supply ratio). Ratio is None when supply is zero."""
    status = (
        SolvencyStatus.SOLVENT
        if snapshot.total_supply <= snapshot.proven_reserves
        else SolvencyStatus.INSOLVENT
    )
    if snapshot.total_supply == 0:
        return status, None
    return status, snapshot.proven_reserves / snapshot.total_supply


def _iso(ts: int) -> Optional[str]:
    if ts <= 0:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
