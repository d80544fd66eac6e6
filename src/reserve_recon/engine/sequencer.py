"""Transaction sequencer: the ordered, non-atomic on-chain update.

Steps, each a separate submit-and-confirm round-trip:

1. publish_commitment(root, count): sets proven reserves and the root.
2. record_proof(hash, count): attests the root; the program rejects it
   unless count equals the just-published reserves.
3. mint(delta): only when the pre-sequence supply is below count and
   minting is enabled.

A later failure never rolls back an earlier step. The root stays correct
on-chain and the next run recomputes the same root and a fresh delta, so
retrying is safe. Minting never precedes publishing: supply and proven
reserves would diverge if the publish then failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from reserve_recon.chain import instructions
from reserve_recon.chain.rpc import LedgerRpc
from reserve_recon.crypto.commitment_builder import proof_hash
from reserve_recon.engine.run_context import Deadline, RunLog
from reserve_recon.errors import RunTimeout, TransactionError
from reserve_recon.models.commitment import Commitment
from reserve_recon.models.protocol_state import ProtocolStateSnapshot
from reserve_recon.models.report import StepName, StepOutcome, StepStatus


logger = logging.getLogger(__name__)


@dataclass
class SequenceResult:
    """What the sequencer managed to land."""
    steps: list[StepOutcome] = field(default_factory=list)
    published: bool = False
    timed_out: bool = False
    failure: Optional[TransactionError] = None

    @property
    def complete(self) -> bool:
        return self.published and not self.timed_out and self.failure is None

    @property
    def publish_tx(self) -> Optional[str]:
        for step in self.steps:
            if step.step == StepName.PUBLISH_COMMITMENT:
                return step.tx_id
        return None


class TransactionSequencer:
    """Runs publish → proof → mint against a LedgerRpc."""

    def __init__(
        self,
        rpc: LedgerRpc,
        state_address: str,
        confirmation_timeout: float = 60.0,
    ) -> None:
        self._rpc = rpc
        self._state_address = state_address
        self._confirmation_timeout = confirmation_timeout

    def run(
        self,
        commitment: Commitment,
        pre_state: Optional[ProtocolStateSnapshot],
        mint_enabled: bool,
        deadline: Deadline,
        log: RunLog,
    ) -> SequenceResult:
        """Execute the sequence.

        Step failures are reported in the result, never raised. When step 1
        fails ``published`` is False and nothing else was attempted.
        """
        result = SequenceResult()
        count = commitment.leaf_count

        deadline.check("publish_commitment")
        log.info(f"Publishing commitment {commitment.root_hex} with count={count}")
        try:
            tx = self._execute(
                StepName.PUBLISH_COMMITMENT,
                instructions.publish_commitment(commitment.root, count, self._state_address),
                deadline,
            )
        except TransactionError as exc:
            result.steps.append(
                StepOutcome(StepName.PUBLISH_COMMITMENT, StepStatus.FAILED, exc.tx_id, str(exc))
            )
            log.error(f"Commitment publish failed: {exc}")
            result.failure = exc
            return result
        result.published = True
        result.steps.append(StepOutcome(StepName.PUBLISH_COMMITMENT, StepStatus.CONFIRMED, tx))
        log.info(f"Commitment published. Tx: {tx}")

        # From here on the root is live; fail fast, never abandon silently.
        try:
            deadline.check("record_proof")
            log.info(f"Recording proof for count={count}")
            tx = self._execute(
                StepName.RECORD_PROOF,
                instructions.record_proof(proof_hash(commitment), count, self._state_address),
                deadline,
            )
            result.steps.append(StepOutcome(StepName.RECORD_PROOF, StepStatus.CONFIRMED, tx))
            log.info(f"Proof recorded. Tx: {tx}")

            deadline.check("mint")
            result.steps.append(self._mint(count, pre_state, mint_enabled, deadline, log))
        except TransactionError as exc:
            failed = StepName.RECORD_PROOF if len(result.steps) == 1 else StepName.MINT
            result.steps.append(StepOutcome(failed, StepStatus.FAILED, exc.tx_id, str(exc)))
            if failed == StepName.RECORD_PROOF:
                result.steps.append(
                    StepOutcome(StepName.MINT, StepStatus.SKIPPED, detail="record_proof failed")
                )
            log.error(f"{failed.value} failed after publish; root remains published: {exc}")
            result.failure = exc
        except RunTimeout as exc:
            done = {s.step for s in result.steps}
            for name in (StepName.RECORD_PROOF, StepName.MINT):
                if name not in done:
                    result.steps.append(StepOutcome(name, StepStatus.SKIPPED, detail=str(exc)))
            log.error(f"{exc}; remaining steps will be retried by the next run")
            result.timed_out = True

        return result

    def _mint(
        self,
        count: int,
        pre_state: Optional[ProtocolStateSnapshot],
        mint_enabled: bool,
        deadline: Deadline,
        log: RunLog,
    ) -> StepOutcome:
        if not mint_enabled:
            log.info("Auto-mint disabled")
            return StepOutcome(StepName.MINT, StepStatus.SKIPPED, detail="auto-mint disabled")
        if pre_state is None:
            log.warning("No pre-sequence state; mint and treasury unknown, skipping mint")
            return StepOutcome(StepName.MINT, StepStatus.SKIPPED, detail="no pre-sequence state")

        delta = count - pre_state.total_supply
        if delta <= 0:
            log.info(f"No minting needed (supply {pre_state.total_supply} >= reserves {count})")
            return StepOutcome(StepName.MINT, StepStatus.SKIPPED, detail="no delta")

        log.info(f"Minting {delta} to treasury {pre_state.treasury_address}")
        tx = self._execute(
            StepName.MINT,
            instructions.mint(
                delta, self._state_address,
                pre_state.mint_address, pre_state.treasury_address,
            ),
            deadline,
        )
        log.info(f"Minted {delta}. Tx: {tx}")
        return StepOutcome(StepName.MINT, StepStatus.CONFIRMED, tx, detail=f"amount={delta}")

    def _execute(
        self,
        step: StepName,
        instruction: instructions.Instruction,
        deadline: Deadline,
    ) -> str:
        tx_id = self._rpc.submit(instruction)
        logger.debug("Waiting for %s confirmation: %s", step.value, tx_id)
        try:
            self._rpc.confirm(tx_id, deadline.bound(self._confirmation_timeout))
        except TransactionError as exc:
            raise TransactionError(step.value, str(exc), tx_id) from exc
        return tx_id
