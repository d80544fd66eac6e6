"""Trigger inputs and the normalized reconciliation request.

Callers reach the pipeline through a webhook (a batch-insert
notification from the off-chain store) or a manual operator action.
Both are resolved once at the boundary into a ReconciliationRequest;
nothing downstream looks at raw payloads.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from reserve_recon.errors import TriggerError


class TriggerSource(str, enum.Enum):
    WEBHOOK = "webhook"
    MANUAL = "manual"
    SCHEDULED = "scheduled"


@dataclass(frozen=True)
class WebhookTrigger:
    """Batch-insert notification from the off-chain store."""
    event_type: str
    table: str = ""
    triggered_at: Optional[str] = None
    record: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ManualTrigger:
    """Operator-initiated run. Authentication happens before this point."""
    requested_by: str = "operator"
    allow_insolvent_update: Optional[bool] = None
    auto_mint_enabled: Optional[bool] = None


TriggerInput = Union[WebhookTrigger, ManualTrigger]


@dataclass(frozen=True)
class ReconciliationRequest:
    """Normalized input to one reconciliation run.

    Override fields left as None fall back to the reconciler config.
    """
    source: TriggerSource
    debounce: bool = False
    requested_by: Optional[str] = None
    allow_insolvent_update: Optional[bool] = None
    auto_mint_enabled: Optional[bool] = None
    timeout_seconds: Optional[float] = None
    context: dict[str, Any] = field(default_factory=dict)


def parse_trigger(payload: Mapping[str, Any] | None) -> TriggerInput:
    """Classify a raw payload as a webhook or a manual trigger.

    A payload with ``type == "INSERT"`` or a ``record`` key is a webhook.
    Everything else (including an empty body) is a manual trigger.
    """
    if payload is None:
        return ManualTrigger()
    if not isinstance(payload, Mapping):
        raise TriggerError("Trigger payload must be a JSON object")

    if payload.get("type") == "INSERT" or payload.get("record"):
        record = payload.get("record")
        if record is not None and not isinstance(record, Mapping):
            raise TriggerError("Webhook 'record' must be an object")
        return WebhookTrigger(
            event_type=str(payload.get("type") or "INSERT"),
            table=str(payload.get("table") or ""),
            triggered_at=payload.get("triggered_at"),
            record=dict(record) if record is not None else None,
        )

    return ManualTrigger(
        requested_by=str(payload.get("requested_by") or payload.get("wallet") or "operator"),
        allow_insolvent_update=_optional_bool(payload, "allow_insolvent_update"),
        auto_mint_enabled=_optional_bool(payload, "auto_mint_enabled"),
    )


def to_request(trigger: TriggerInput, timeout_seconds: Optional[float] = None) -> ReconciliationRequest:
    """Normalize a trigger into a request."""
    if isinstance(trigger, WebhookTrigger):
        return ReconciliationRequest(
            source=TriggerSource.WEBHOOK,
            debounce=True,
            timeout_seconds=timeout_seconds,
            context={"table": trigger.table, "triggered_at": trigger.triggered_at},
        )
    return ReconciliationRequest(
        source=TriggerSource.MANUAL,
        requested_by=trigger.requested_by,
        allow_insolvent_update=trigger.allow_insolvent_update,
        auto_mint_enabled=trigger.auto_mint_enabled,
        timeout_seconds=timeout_seconds,
    )


def _optional_bool(payload: Mapping[str, Any], key: str) -> Optional[bool]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise TriggerError(f"'{key}' must be a boolean")
    return value
