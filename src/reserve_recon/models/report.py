"""Structured run reports.

Reconciliation is usually driven by unattended triggers, so the report
is the operational signal: it is returned for every outcome, including
refusals and failures, instead of an exception.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class RunStatus(str, enum.Enum):
    VERIFIED = "verified"
    NOTHING_TO_VERIFY = "nothing_to_verify"
    REFUSED = "refused"
    PARTIAL = "partial"
    FAILED = "failed"


class StepName(str, enum.Enum):
    PUBLISH_COMMITMENT = "publish_commitment"
    RECORD_PROOF = "record_proof"
    MINT = "mint"
    SET_PRICE = "set_price"


class StepStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StepOutcome:
    """Result of one on-chain step."""
    step: StepName
    status: StepStatus
    tx_id: Optional[str] = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "status": self.status.value,
            "tx_id": self.tx_id,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Outcome of one reserve reconciliation run."""
    success: bool
    status: RunStatus
    message: str
    logs: list[str] = field(default_factory=list)
    root_hex: Optional[str] = None
    leaf_count: int = 0
    steps: list[StepOutcome] = field(default_factory=list)
    pre_state: Optional[dict[str, Any]] = None
    post_state: Optional[dict[str, Any]] = None
    trigger_source: Optional[str] = None
    error_kind: Optional[str] = None
    error_detail: dict[str, Any] = field(default_factory=dict)
    elapsed_ms: int = 0

    def tx_id(self, step: StepName) -> Optional[str]:
        for outcome in self.steps:
            if outcome.step == step:
                return outcome.tx_id
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "logs": list(self.logs),
            "root": self.root_hex,
            "leaf_count": self.leaf_count,
            "steps": [s.to_dict() for s in self.steps],
            "pre_state": self.pre_state,
            "post_state": self.post_state,
            "trigger_source": self.trigger_source,
            "error_kind": self.error_kind,
            "error_detail": self.error_detail,
            "elapsed_ms": self.elapsed_ms,
        }


class PriceSyncStatus(str, enum.Enum):
    PUBLISHED = "published"
    SKIPPED = "skipped"
    REFUSED = "refused"
    FAILED = "failed"


@dataclass(frozen=True)
class PriceSyncReport:
    """Outcome of one price drift reconciliation."""
    status: PriceSyncStatus
    message: str
    old_price: Optional[int] = None
    new_price: Optional[int] = None
    drift: Optional[str] = None
    tx_id: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (PriceSyncStatus.PUBLISHED, PriceSyncStatus.SKIPPED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "old_price": self.old_price,
            "new_price": self.new_price,
            "drift": self.drift,
            "tx_id": self.tx_id,
            "error_kind": self.error_kind,
        }
