"""Invariant guard: the last check before an on-chain reserve change.

This is the only thing standing between an operator error (a stale or
truncated ledger read) and an insolvent published state.

Default policy, evaluated in order:
1. The protocol must not be paused. Never overridable.
2. A prior on-chain read is required. A missing baseline is a refusal,
   not permission to proceed.
3. proposed < total_supply is refused (instantly insolvent).
4. proposed < proven_reserves is refused (reserve decrease without a
   burn/removal workflow).
5. Otherwise approve.

Rules 2-4 are bypassed only by an explicit operator override, which
defaults to disabled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from reserve_recon.errors import InvariantViolation
from reserve_recon.models.protocol_state import ProtocolStateSnapshot


logger = logging.getLogger(__name__)


class RefusalReason:
    PAUSED = "paused"
    NO_BASELINE = "no_baseline"
    BELOW_SUPPLY = "below_supply"
    BELOW_RESERVES = "below_reserves"


@dataclass(frozen=True)
class GuardDecision:
    """An approved transition. Refusals raise instead."""
    proposed: int
    supply: Optional[int]
    reserves: Optional[int]
    overridden: bool = False
    note: str = ""


class InvariantGuard:
    """Decides whether publishing ``proposed`` reserves is safe."""

    def check(
        self,
        proposed: int,
        snapshot: Optional[ProtocolStateSnapshot],
        allow_override: bool = False,
    ) -> GuardDecision:
        """Approve or raise InvariantViolation carrying both counts."""
        if proposed < 0:
            raise ValueError("proposed reserve count must be non-negative")

        if snapshot is not None and snapshot.is_paused:
            raise InvariantViolation(
                RefusalReason.PAUSED, proposed,
                snapshot.total_supply, snapshot.proven_reserves,
                message="Protocol is paused; refusing to publish a new commitment",
            )

        violation = self._violation(proposed, snapshot)
        if violation is None:
            return GuardDecision(
                proposed=proposed,
                supply=snapshot.total_supply,
                reserves=snapshot.proven_reserves,
            )

        if allow_override:
            logger.warning("Invariant guard overridden: %s", violation)
            return GuardDecision(
                proposed=proposed,
                supply=violation.supply,
                reserves=violation.reserves,
                overridden=True,
                note=str(violation),
            )
        raise violation

    @staticmethod
    def _violation(
        proposed: int,
        snapshot: Optional[ProtocolStateSnapshot],
    ) -> Optional[InvariantViolation]:
        if snapshot is None:
            return InvariantViolation(
                RefusalReason.NO_BASELINE, proposed,
                message="Safety check failed: unable to read on-chain protocol state",
            )

        supply = snapshot.total_supply
        reserves = snapshot.proven_reserves
        if proposed < supply:
            return InvariantViolation(
                RefusalReason.BELOW_SUPPLY, proposed, supply, reserves,
                message=(
                    f"Refusing to set proven reserves below on-chain supply "
                    f"(proposed={proposed}, supply={supply}). "
                    "Ingest more serials or burn supply first."
                ),
            )
        if proposed < reserves:
            return InvariantViolation(
                RefusalReason.BELOW_RESERVES, proposed, supply, reserves,
                message=(
                    f"Refusing to decrease proven reserves "
                    f"(proposed={proposed}, reserves={reserves}) "
                    "without a burn/removal workflow."
                ),
            )
        return None
