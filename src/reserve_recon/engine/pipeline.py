"""Reserve reconciliation pipeline: the orchestrator for one run.

Flow:
    ledger read → commitment build → on-chain state read → invariant
    guard (may refuse) → transaction sequence → audit record → post read

Each run is sequential: later steps depend on the on-chain effects of
earlier ones. Independent runs (scheduler, webhook, operator) may overlap;
safety then rests on the program's per-account serialization and on
keyed, idempotent off-chain writes, not on a lock.

Webhook triggers wait a short debounce before reading the ledger so a
batch insert can settle. That is a heuristic, not a guarantee: a batch
that lands later is picked up by the next run.

Every failure is turned into a ReconciliationReport. Unattended callers
have nobody to read a stack trace, so the report is the signal.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from reserve_recon.chain.reader import OnChainStateReader
from reserve_recon.chain.rpc import LedgerRpc
from reserve_recon.config import ReconcilerConfig
from reserve_recon.crypto.commitment_builder import build_commitment
from reserve_recon.engine.audit import AuditRecorder
from reserve_recon.engine.guard import InvariantGuard
from reserve_recon.engine.ledger_reader import LedgerReader
from reserve_recon.engine.run_context import Deadline, RunLog
from reserve_recon.engine.sequencer import SequenceResult, TransactionSequencer
from reserve_recon.errors import (
    AccountNotFound,
    InvariantViolation,
    LedgerUnavailable,
    ReconciliationError,
)
from reserve_recon.models.commitment import AuditStatus, Commitment
from reserve_recon.models.protocol_state import ProtocolStateSnapshot
from reserve_recon.models.report import ReconciliationReport, RunStatus, StepOutcome
from reserve_recon.models.trigger import ReconciliationRequest, TriggerSource
from reserve_recon.persistence.ledger_store import LedgerStore


logger = logging.getLogger(__name__)


class ReconciliationPipeline:
    """Drives one reconciliation run per call to ``run``.

    Usage:
        pipeline = ReconciliationPipeline(config, store, rpc, state_address)
        report = pipeline.run(ReconciliationRequest(source=TriggerSource.MANUAL))

    The instance holds no per-run state and may serve concurrent runs.
    """

    def __init__(
        self,
        config: ReconcilerConfig,
        store: LedgerStore,
        rpc: LedgerRpc,
        state_address: str,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._reader = LedgerReader(store)
        self._state_reader = OnChainStateReader(rpc, state_address)
        self._guard = InvariantGuard()
        self._sequencer = TransactionSequencer(
            rpc, state_address, config.confirmation_timeout_seconds,
        )
        self._audit = AuditRecorder(store)
        self._sleep = sleep
        self._clock = clock

    def run(self, request: Optional[ReconciliationRequest] = None) -> ReconciliationReport:
        request = request or ReconciliationRequest(source=TriggerSource.MANUAL)
        timeout = request.timeout_seconds
        if timeout is None:
            timeout = self._config.run_timeout_seconds or None
        deadline = Deadline(timeout, self._clock)
        log = RunLog(logger, "[reconcile] ")
        log.info(f"Trigger source: {request.source.value}")

        state = _RunState()
        try:
            return self._run(request, deadline, log, state)
        except InvariantViolation as exc:
            log.error(str(exc))
            return state.report(
                RunStatus.REFUSED, str(exc), log, deadline, request,
                error_kind=exc.kind, error_detail=exc.to_dict(),
            )
        except ReconciliationError as exc:
            log.error(f"{exc.kind}: {exc}")
            status = RunStatus.PARTIAL if state.sequence and state.sequence.published else RunStatus.FAILED
            return state.report(status, str(exc), log, deadline, request, error_kind=exc.kind)
        except Exception as exc:
            logger.exception("Unexpected failure in reconciliation run")
            log.error(f"Unexpected error: {exc}")
            return state.report(RunStatus.FAILED, str(exc), log, deadline, request, error_kind="unexpected")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run(
        self,
        request: ReconciliationRequest,
        deadline: Deadline,
        log: RunLog,
        state: _RunState,
    ) -> ReconciliationReport:
        if request.debounce and self._config.debounce_seconds > 0:
            wait = deadline.bound(self._config.debounce_seconds)
            log.info(f"Webhook trigger: waiting {wait:.1f}s for bulk inserts to settle")
            self._sleep(wait)

        deadline.check("ledger read")
        serials = self._reader.read()
        if not serials:
            log.info("No serials found in ledger. Nothing to verify.")
            return state.report(RunStatus.NOTHING_TO_VERIFY, "Nothing to verify", log, deadline, request)
        log.info(f"Found {len(serials)} serials in ledger")

        commitment = build_commitment(serials)
        state.commitment = commitment
        log.info(f"Commitment root: {commitment.root_hex}")
        log.info(f"Total leaves: {commitment.leaf_count}")

        deadline.check("state read")
        state.pre_state = self._read_baseline(log)

        allow_override = _pick(request.allow_insolvent_update, self._config.allow_insolvent_update)
        decision = self._guard.check(commitment.leaf_count, state.pre_state, allow_override)
        if decision.overridden:
            log.warning(f"Invariant guard OVERRIDDEN by operator flag: {decision.note}")
        else:
            log.info(
                f"Invariant guard approved: proposed={decision.proposed}, "
                f"supply={decision.supply}, reserves={decision.reserves}"
            )

        mint_enabled = _pick(request.auto_mint_enabled, self._config.auto_mint_enabled)
        state.sequence = self._sequencer.run(
            commitment, state.pre_state, mint_enabled, deadline, log,
        )
        sequence = state.sequence
        if not sequence.published and sequence.failure is not None:
            raise sequence.failure
        audit_status = AuditStatus.CONFIRMED if sequence.complete else AuditStatus.PARTIAL
        self._audit.record(commitment, serials, sequence.publish_tx, audit_status, log)

        state.post_state = self._read_post_state(log)

        if sequence.complete:
            message = f"Verified {commitment.leaf_count} serials on-chain"
            return state.report(RunStatus.VERIFIED, message, log, deadline, request)

        error_kind = "timeout" if sequence.timed_out else getattr(sequence.failure, "kind", None)
        message = (
            f"Commitment published for {commitment.leaf_count} serials; "
            "remaining steps incomplete and will be retried by the next run"
        )
        return state.report(RunStatus.PARTIAL, message, log, deadline, request, error_kind=error_kind)

    def _read_baseline(self, log: RunLog) -> Optional[ProtocolStateSnapshot]:
        """Pre-sequence snapshot, or None when no baseline is available.

        LayoutError is not caught: a schema mismatch aborts the run.
        """
        try:
            snapshot = self._state_reader.read()
        except AccountNotFound:
            log.warning("Protocol state account not found; no safety baseline")
            return None
        except LedgerUnavailable as exc:
            log.warning(f"Could not read protocol state: {exc}")
            return None
        log.info(f"Pre-state: supply={snapshot.total_supply}, reserves={snapshot.proven_reserves}")
        return snapshot

    def _read_post_state(self, log: RunLog) -> Optional[ProtocolStateSnapshot]:
        try:
            snapshot = self._state_reader.read()
        except ReconciliationError as exc:
            log.warning(f"Could not read post-state: {exc}")
            return None
        log.info(f"Final state: supply={snapshot.total_supply}, reserves={snapshot.proven_reserves}")
        if snapshot.total_supply > snapshot.proven_reserves:
            log.error(
                f"INSOLVENT after run: supply={snapshot.total_supply} "
                f"exceeds reserves={snapshot.proven_reserves}"
            )
        return snapshot


class _RunState:
    """What one run has produced so far, for building the report."""

    def __init__(self) -> None:
        self.commitment: Optional[Commitment] = None
        self.pre_state: Optional[ProtocolStateSnapshot] = None
        self.post_state: Optional[ProtocolStateSnapshot] = None
        self.sequence: Optional[SequenceResult] = None

    def report(
        self,
        status: RunStatus,
        message: str,
        log: RunLog,
        deadline: Deadline,
        request: ReconciliationRequest,
        error_kind: Optional[str] = None,
        error_detail: Optional[dict] = None,
    ) -> ReconciliationReport:
        steps: list[StepOutcome] = list(self.sequence.steps) if self.sequence else []
        elapsed_ms = int(deadline.elapsed() * 1000)
        log.info(f"Complete in {elapsed_ms}ms ({status.value})")
        return ReconciliationReport(
            success=status in (RunStatus.VERIFIED, RunStatus.NOTHING_TO_VERIFY),
            status=status,
            message=message,
            logs=log.lines,
            root_hex=self.commitment.root_hex if self.commitment else None,
            leaf_count=self.commitment.leaf_count if self.commitment else 0,
            steps=steps,
            pre_state=self.pre_state.summary() if self.pre_state else None,
            post_state=self.post_state.summary() if self.post_state else None,
            trigger_source=request.source.value,
            error_kind=error_kind,
            error_detail=error_detail or {},
            elapsed_ms=elapsed_ms,
        )


def _pick(override: Optional[bool], default: bool) -> bool:
    return default if override is None else override
