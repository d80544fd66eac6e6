"""Price drift reconciler.

Reads the on-chain price field, compares it with a candidate computed
off-chain and publishes only when the relative drift reaches the
threshold. Noise-level drift is skipped to avoid needless transactions.
Price has no supply-safety coupling, so this is a single mutating call
with no sequencing.

The program rejects any single change larger than 20% of the current
price; such candidates are refused locally instead of being submitted.
"""

from __future__ import annotations

import logging
from decimal import ROUND_FLOOR, Decimal
from typing import Optional

from reserve_recon.chain import instructions
from reserve_recon.chain.reader import OnChainStateReader
from reserve_recon.chain.rpc import LedgerRpc
from reserve_recon.config import ReconcilerConfig
from reserve_recon.errors import ReconciliationError, TransactionError
from reserve_recon.models.report import PriceSyncReport, PriceSyncStatus


logger = logging.getLogger(__name__)

UNITS_PER_NATIVE = 10**9


def compute_price_units(
    asset_usd: Decimal,
    native_usd: Decimal,
    units_per_native: int = UNITS_PER_NATIVE,
) -> int:
    """Price of one asset token in the smallest native unit.

    Example: asset at $9.18 and native token at $200 gives
    9.18 / 200 * 1e9 = 45,900,000 units.
    """
    if asset_usd <= 0 or native_usd <= 0:
        raise ValueError("USD prices must be positive")
    units = (asset_usd / native_usd * units_per_native).to_integral_value(rounding=ROUND_FLOOR)
    return int(units)


def relative_drift(current: int, candidate: int) -> Decimal:
    """|candidate - current| / current. ``current`` must be positive."""
    return abs(Decimal(candidate) - Decimal(current)) / Decimal(current)


class PriceDriftReconciler:
    """Keeps the on-chain price in line with an off-chain computed rate."""

    def __init__(
        self,
        config: ReconcilerConfig,
        rpc: LedgerRpc,
        state_address: str,
    ) -> None:
        self._config = config
        self._rpc = rpc
        self._state_address = state_address
        self._reader = OnChainStateReader(rpc, state_address)

    def reconcile(self, candidate: int) -> PriceSyncReport:
        if candidate <= 0:
            return PriceSyncReport(
                PriceSyncStatus.REFUSED, f"Candidate price must be positive, got {candidate}",
                new_price=candidate, error_kind="invalid_price",
            )

        try:
            snapshot = self._reader.read()
        except ReconciliationError as exc:
            logger.error("Could not read on-chain price: %s", exc)
            return PriceSyncReport(
                PriceSyncStatus.FAILED, str(exc), new_price=candidate, error_kind=exc.kind,
            )

        current = snapshot.price_units
        drift: Optional[Decimal] = None
        if current > 0:
            drift = relative_drift(current, candidate)
            if drift < self._config.price_drift_threshold:
                message = f"Price drift {_pct(drift)} below threshold, skipping update"
                logger.info(message)
                return PriceSyncReport(
                    PriceSyncStatus.SKIPPED, message,
                    old_price=current, new_price=candidate, drift=str(drift),
                )
            if drift > self._config.price_max_step:
                message = (
                    f"Price change {_pct(drift)} exceeds the {_pct(self._config.price_max_step)} "
                    f"per-update limit ({current} -> {candidate}); refusing"
                )
                logger.warning(message)
                return PriceSyncReport(
                    PriceSyncStatus.REFUSED, message,
                    old_price=current, new_price=candidate, drift=str(drift),
                    error_kind="price_step_exceeded",
                )
            logger.info("Price drift %s (%d -> %d)", _pct(drift), current, candidate)

        try:
            tx_id = self._rpc.submit(instructions.set_price(candidate, self._state_address))
            self._rpc.confirm(tx_id, self._config.confirmation_timeout_seconds)
        except TransactionError as exc:
            logger.error("Price update failed: %s", exc)
            return PriceSyncReport(
                PriceSyncStatus.FAILED, str(exc),
                old_price=current, new_price=candidate,
                drift=str(drift) if drift is not None else None,
                tx_id=exc.tx_id, error_kind=exc.kind,
            )

        logger.info("On-chain price updated: %d -> %d (tx: %s)", current, candidate, tx_id)
        return PriceSyncReport(
            PriceSyncStatus.PUBLISHED, f"Price updated {current} -> {candidate}",
            old_price=current, new_price=candidate,
            drift=str(drift) if drift is not None else None, tx_id=tx_id,
        )


def _pct(value: Decimal) -> str:
    return f"{(value * 100):.2f}%"
