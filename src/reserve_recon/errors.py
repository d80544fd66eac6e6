"""Error taxonomy for reserve reconciliation.

Component code raises these; the pipeline orchestrator and the price
reconciler are the only places that catch them and turn them into a
structured report. Each class carries a stable ``kind`` used in reports.
"""

from __future__ import annotations

from typing import Optional


class ReconciliationError(Exception):
    """Base class for every failure surfaced by this package."""

    kind = "error"


class ConfigError(ReconciliationError):
    """Invalid or incomplete configuration."""

    kind = "config_error"


class DataSourceError(ReconciliationError):
    """Off-chain store read or write failed. Safe to retry."""

    kind = "data_source_error"


class AccountNotFound(ReconciliationError):
    """The protocol state account does not exist (pre-initialization)."""

    kind = "account_not_found"

    def __init__(self, address: str) -> None:
        super().__init__(f"Protocol state account not found: {address}")
        self.address = address


class LayoutError(ReconciliationError):
    """Account bytes do not match the expected schema version."""

    kind = "layout_error"


class LedgerUnavailable(ReconciliationError):
    """The ledger RPC could not be reached or failed on a read."""

    kind = "ledger_unavailable"


class EmptyCommitmentError(ReconciliationError):
    """A commitment was requested over an empty serial set."""

    kind = "empty_commitment"


class InvariantViolation(ReconciliationError):
    """The invariant guard refused a transition.

    Carries both sides of the comparison so callers can present an
    actionable message.
    """

    kind = "invariant_violation"

    def __init__(
        self,
        reason: str,
        proposed: int,
        supply: Optional[int] = None,
        reserves: Optional[int] = None,
        message: str = "",
    ) -> None:
        super().__init__(message or f"Invariant violation ({reason}): proposed={proposed}")
        self.reason = reason
        self.proposed = proposed
        self.supply = supply
        self.reserves = reserves

    def to_dict(self) -> dict[str, object]:
        return {
            "reason": self.reason,
            "proposed": self.proposed,
            "supply": self.supply,
            "reserves": self.reserves,
        }


class TransactionError(ReconciliationError):
    """A single on-chain step failed. Prior steps are not rolled back."""

    kind = "transaction_error"

    def __init__(self, step: str, message: str, tx_id: Optional[str] = None) -> None:
        super().__init__(f"{step} failed: {message}")
        self.step = step
        self.tx_id = tx_id


class RunTimeout(ReconciliationError):
    """The caller-specified deadline elapsed before the run finished."""

    kind = "timeout"


class TriggerError(ReconciliationError):
    """A trigger payload could not be resolved into a request."""

    kind = "trigger_error"
