"""Reserve reconciliation service: unified facade.

This is the primary interface for programmatic access. It wires the
off-chain store, the ledger RPC and the engines from one injected
ReconcilerConfig, and exposes:

- Reserve reconciliation (webhook, manual or scheduled triggers)
- Price drift reconciliation
- Protocol status with solvency and audit consistency
- Serial ingestion and per-serial inclusion proofs

Reconciliation and price sync return their own structured reports;
the remaining operations return a ServiceResult.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from reserve_recon.chain.reader import OnChainStateReader
from reserve_recon.chain.rpc import LedgerRpc, Web3LedgerRpc, derive_state_address
from reserve_recon.config import ReconcilerConfig
from reserve_recon.crypto.commitment_builder import CommitmentBuilder, verify_inclusion
from reserve_recon.engine.pipeline import ReconciliationPipeline
from reserve_recon.engine.price import PriceDriftReconciler, compute_price_units
from reserve_recon.errors import ReconciliationError
from reserve_recon.models.protocol_state import solvency_status
from reserve_recon.models.report import PriceSyncReport, ReconciliationReport
from reserve_recon.models.trigger import (
    ReconciliationRequest,
    TriggerSource,
    parse_trigger,
    to_request,
)
from reserve_recon.persistence.ledger_store import SQLiteLedgerStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class ReserveService:
    """Facade over the reconciliation engines.

    Usage:
        config = ReconcilerConfig.from_env(Path(".env"))
        service = ReserveService(config)

        report = service.handle_trigger({"type": "INSERT", "table": "serials"})
        report = service.reconcile()
        price = service.sync_price(Decimal("9.18"), Decimal("200"))
        status = service.status()

    Tests inject a store and an rpc double instead of the real backends.
    """

    def __init__(
        self,
        config: ReconcilerConfig,
        store: Optional[SQLiteLedgerStore] = None,
        rpc: Optional[LedgerRpc] = None,
        state_address: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._store = store or SQLiteLedgerStore(config.store_path)
        if rpc is None:
            config.require_chain()
            rpc = Web3LedgerRpc(
                config.rpc_url,
                config.operator_private_key,
                config.program_address,
                chain_id=config.chain_id,
            )
        self._rpc = rpc
        if state_address is None:
            config.require_chain()
            state_address = derive_state_address(config.program_address, config.state_seed)
        self._state_address = state_address

        self._pipeline = ReconciliationPipeline(config, self._store, rpc, state_address, sleep=sleep)
        self._price = PriceDriftReconciler(config, rpc, state_address)
        self._state_reader = OnChainStateReader(rpc, state_address)

    @property
    def config(self) -> ReconcilerConfig:
        return self._config

    @property
    def store(self) -> SQLiteLedgerStore:
        return self._store

    @property
    def state_address(self) -> str:
        return self._state_address

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, request: Optional[ReconciliationRequest] = None) -> ReconciliationReport:
        """Run one reserve reconciliation. Never raises; see the report."""
        return self._pipeline.run(request or ReconciliationRequest(source=TriggerSource.MANUAL))

    def handle_trigger(
        self,
        payload: Optional[Mapping[str, Any]],
        timeout_seconds: Optional[float] = None,
    ) -> ReconciliationReport:
        """Resolve a raw trigger payload and run it.

        Raises TriggerError for a malformed payload (before any work).
        """
        request = to_request(parse_trigger(payload), timeout_seconds)
        return self.reconcile(request)

    def sync_price(self, asset_usd: Decimal, native_usd: Decimal) -> PriceSyncReport:
        """Publish the computed price if it drifted beyond the threshold."""
        candidate = compute_price_units(asset_usd, native_usd)
        return self._price.reconcile(candidate)

    def sync_price_units(self, candidate: int) -> PriceSyncReport:
        return self._price.reconcile(candidate)

    # ------------------------------------------------------------------
    # Status and ledger operations
    # ------------------------------------------------------------------

    def status(self, history: int = 0) -> ServiceResult:
        """On-chain state, solvency and the off-chain audit trail."""
        try:
            snapshot = self._state_reader.read()
            latest = self._store.latest_audit_entry()
            batches = self._store.batch_count()
            audit_history = self._store.audit_history(history) if history > 0 else []
        except ReconciliationError as exc:
            return ServiceResult(success=False, errors=[f"{exc.kind}: {exc}"])

        status, ratio = solvency_status(snapshot)
        errors: list[str] = []
        in_sync: Optional[bool] = None
        if latest is not None:
            in_sync = (
                latest.root_hash == snapshot.root_hex
                and latest.total_serials == snapshot.proven_reserves
            )
            if not in_sync:
                errors.append(
                    f"On-chain reserves {snapshot.proven_reserves} / root {snapshot.root_hex} "
                    f"do not match latest audit entry {latest.total_serials} / {latest.root_hash}"
                )

        data: dict[str, Any] = {
            "state_address": self._state_address,
            "on_chain": snapshot.summary(),
            "solvency": {"status": status.value, "ratio": ratio},
            "off_chain": {
                "latest_audit": latest.to_dict() if latest else None,
                "total_batches": batches,
                "audit_in_sync": in_sync,
            },
            "fetched_utc": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        if history > 0:
            data["off_chain"]["audit_history"] = [e.to_dict() for e in audit_history]
        return ServiceResult(success=not errors, errors=errors, data=data)

    def ingest(self, batch_id: str, serials: list[str]) -> ServiceResult:
        """Add a batch of serials to the off-chain ledger."""
        if not batch_id:
            return ServiceResult(success=False, errors=["batch_id is required"])
        try:
            inserted = self._store.add_serials(batch_id, serials)
        except (ReconciliationError, ValueError) as exc:
            return ServiceResult(success=False, errors=[str(exc)])
        logger.info("Ingested %d/%d serials for batch %s", inserted, len(serials), batch_id)
        return ServiceResult(
            success=True,
            data={"batch_id": batch_id, "submitted": len(serials), "inserted": inserted},
        )

    def prove_serial(self, serial: str) -> ServiceResult:
        """Inclusion proof for ``serial`` against the current ledger commitment.

        ``valid`` checks the proof against the root published on-chain and is
        None when that root cannot be read. ``self_check`` checks it against
        the locally rebuilt root.
        """
        try:
            serials = self._store.list_serials()
        except ReconciliationError as exc:
            return ServiceResult(success=False, errors=[str(exc)])
        if serial not in serials:
            return ServiceResult(success=False, errors=[f"Serial not in ledger: {serial}"])

        builder = CommitmentBuilder()
        builder.add_serials(serials)
        commitment = builder.build()
        proof = builder.inclusion_proof(serial)
        if proof is None:
            return ServiceResult(success=False, errors=[f"No proof for serial: {serial}"])

        on_chain_root: Optional[bytes] = None
        try:
            on_chain_root = self._state_reader.read().current_commitment_root
        except ReconciliationError as exc:
            logger.warning("Could not read on-chain root: %s", exc)

        valid: Optional[bool] = None
        published: Optional[bool] = None
        if on_chain_root is not None:
            valid = verify_inclusion(serial, proof, on_chain_root)
            published = on_chain_root == commitment.root

        return ServiceResult(
            success=True,
            data={
                "serial": serial,
                "proof": proof.to_dict(),
                "root": commitment.root_hex,
                "on_chain_root": "0x" + on_chain_root.hex() if on_chain_root is not None else None,
                "valid": valid,
                "self_check": verify_inclusion(serial, proof, commitment.root),
                "published": published,
            },
        )
