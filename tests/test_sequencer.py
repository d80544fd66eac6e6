"""Tests for the ordered publish → proof → mint sequence."""

import logging

from conftest import STATE_ADDRESS, FakeClock, FakeLedgerRpc, make_snapshot
from reserve_recon.chain.instructions import InstructionKind
from reserve_recon.crypto.commitment_builder import build_commitment, proof_hash
from reserve_recon.engine.run_context import Deadline, RunLog
from reserve_recon.engine.sequencer import TransactionSequencer
from reserve_recon.models.report import StepName, StepStatus


def _run(rpc, pre_state, mint_enabled=True, deadline=None):
    sequencer = TransactionSequencer(rpc, STATE_ADDRESS, confirmation_timeout=30.0)
    commitment = build_commitment(["GB-1", "GB-2", "GB-3"])
    result = sequencer.run(
        commitment, pre_state, mint_enabled,
        deadline or Deadline(None), RunLog(logging.getLogger("test")),
    )
    return commitment, result


class TestTransactionSequencer:
    def test_full_sequence_order(self) -> None:
        pre = make_snapshot(supply=2, reserves=2)
        rpc = FakeLedgerRpc(pre)
        commitment, result = _run(rpc, pre)

        assert rpc.kinds == [
            InstructionKind.PUBLISH_COMMITMENT,
            InstructionKind.RECORD_PROOF,
            InstructionKind.MINT,
        ]
        assert rpc.args(InstructionKind.PUBLISH_COMMITMENT) == {"root": commitment.root, "count": 3}
        assert rpc.args(InstructionKind.RECORD_PROOF) == {
            "proof_hash": proof_hash(commitment), "claimed_count": 3,
        }
        assert rpc.args(InstructionKind.MINT) == {"amount": 1}
        assert result.complete
        assert [s.status for s in result.steps] == [StepStatus.CONFIRMED] * 3
        assert rpc.state.total_supply == 3
        assert rpc.state.proven_reserves == 3

    def test_no_mint_without_delta(self) -> None:
        pre = make_snapshot(supply=3, reserves=3)
        rpc = FakeLedgerRpc(pre)
        _, result = _run(rpc, pre)
        assert InstructionKind.MINT not in rpc.kinds
        assert result.steps[-1].status == StepStatus.SKIPPED
        assert result.complete

    def test_mint_disabled(self) -> None:
        pre = make_snapshot(supply=0, reserves=0)
        rpc = FakeLedgerRpc(pre)
        _, result = _run(rpc, pre, mint_enabled=False)
        assert InstructionKind.MINT not in rpc.kinds
        assert result.steps[-1].detail == "auto-mint disabled"
        assert rpc.state.total_supply == 0

    def test_publish_failure_stops_sequence(self) -> None:
        pre = make_snapshot(supply=2, reserves=2)
        rpc = FakeLedgerRpc(pre)
        rpc.fail_submit.add(InstructionKind.PUBLISH_COMMITMENT)
        _, result = _run(rpc, pre)

        assert not result.published
        assert rpc.kinds == [InstructionKind.PUBLISH_COMMITMENT]
        assert result.failure is not None
        assert result.steps[0].status == StepStatus.FAILED

    def test_proof_failure_skips_mint_and_keeps_root(self) -> None:
        pre = make_snapshot(supply=2, reserves=2)
        rpc = FakeLedgerRpc(pre)
        rpc.revert_on.add(InstructionKind.RECORD_PROOF)
        commitment, result = _run(rpc, pre)

        assert result.published
        assert not result.complete
        assert InstructionKind.MINT not in rpc.kinds
        statuses = {s.step: s.status for s in result.steps}
        assert statuses == {
            StepName.PUBLISH_COMMITMENT: StepStatus.CONFIRMED,
            StepName.RECORD_PROOF: StepStatus.FAILED,
            StepName.MINT: StepStatus.SKIPPED,
        }
        assert result.failure.step == "record_proof"
        assert result.failure.tx_id is not None
        assert rpc.state.current_commitment_root == commitment.root

    def test_mint_failure_reported(self) -> None:
        pre = make_snapshot(supply=2, reserves=2)
        rpc = FakeLedgerRpc(pre)
        rpc.revert_on.add(InstructionKind.MINT)
        _, result = _run(rpc, pre)

        assert result.steps[-1].step == StepName.MINT
        assert result.steps[-1].status == StepStatus.FAILED
        assert result.publish_tx == result.steps[0].tx_id
        assert rpc.state.total_supply == 2

    def test_timeout_after_publish_skips_remaining(self) -> None:
        pre = make_snapshot(supply=2, reserves=2)
        rpc = FakeLedgerRpc(pre)
        clock = FakeClock()
        rpc.on_confirm = lambda ix: clock.advance(20)
        _, result = _run(rpc, pre, deadline=Deadline(10, clock))

        assert result.published
        assert result.timed_out
        assert rpc.kinds == [InstructionKind.PUBLISH_COMMITMENT]
        assert [s.status for s in result.steps[1:]] == [StepStatus.SKIPPED, StepStatus.SKIPPED]

    def test_confirmation_timeout_bounded_by_deadline(self) -> None:
        pre = make_snapshot(supply=3, reserves=3)
        rpc = FakeLedgerRpc(pre)
        _run(rpc, pre, deadline=Deadline(12, FakeClock()))
        assert rpc.confirm_timeouts[0] == 12
