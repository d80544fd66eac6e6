"""Data models: commitments, protocol state snapshots, triggers, reports."""

from reserve_recon.models.commitment import (
    AuditStatus,
    Commitment,
    CommitmentAuditEntry,
    SerialRecord,
)
from reserve_recon.models.protocol_state import ProtocolStateSnapshot, SolvencyStatus, solvency_status
from reserve_recon.models.report import (
    PriceSyncReport,
    PriceSyncStatus,
    ReconciliationReport,
    RunStatus,
    StepName,
    StepOutcome,
    StepStatus,
)
from reserve_recon.models.trigger import (
    ManualTrigger,
    ReconciliationRequest,
    TriggerInput,
    TriggerSource,
    WebhookTrigger,
)

__all__ = [
    "AuditStatus",
    "Commitment",
    "CommitmentAuditEntry",
    "ManualTrigger",
    "PriceSyncReport",
    "PriceSyncStatus",
    "ProtocolStateSnapshot",
    "ReconciliationReport",
    "ReconciliationRequest",
    "RunStatus",
    "SerialRecord",
    "SolvencyStatus",
    "StepName",
    "StepOutcome",
    "StepStatus",
    "TriggerInput",
    "TriggerSource",
    "WebhookTrigger",
    "solvency_status",
]
