"""Shared fixtures: a fake ledger program, a clock and a temp ledger store."""

from __future__ import annotations

import dataclasses
import threading
from pathlib import Path
from typing import Callable, Optional

import pytest

from reserve_recon.chain.instructions import Instruction, InstructionKind, decode_args
from reserve_recon.chain.layout import ProtocolStateLayoutV2
from reserve_recon.config import ReconcilerConfig
from reserve_recon.errors import LedgerUnavailable, TransactionError
from reserve_recon.models.protocol_state import ProtocolStateSnapshot
from reserve_recon.persistence.ledger_store import SQLiteLedgerStore


STATE_ADDRESS = "0x" + "ab" * 20
MINT_ADDRESS = "0x" + "22" * 32
TREASURY_ADDRESS = "0x" + "33" * 32


def make_snapshot(
    supply: int = 0,
    reserves: int = 0,
    price: int = 0,
    paused: bool = False,
    root: bytes = bytes(32),
) -> ProtocolStateSnapshot:
    return ProtocolStateSnapshot(
        schema_version=2,
        authority="0x" + "11" * 32,
        operator="0x" + "44" * 32,
        mint_address=MINT_ADDRESS,
        treasury_address=TREASURY_ADDRESS,
        total_supply=supply,
        total_burned=0,
        current_commitment_root=root,
        proven_reserves=reserves,
        last_update_timestamp=0,
        last_proof_timestamp=0,
        price_units=price,
        is_paused=paused,
        bump=254,
    )


class FakeLedgerRpc:
    """In-memory ledger program over real V2 account bytes.

    Each instruction applies atomically, as the program serializes writes
    to one account. Applies the program's rules on confirm: proof count
    must equal proven reserves, supply may never exceed reserves, a price
    change is capped at 20%, and a paused protocol rejects every
    instruction.
    """

    def __init__(self, snapshot: Optional[ProtocolStateSnapshot] = None) -> None:
        self.layout = ProtocolStateLayoutV2()
        self.account: Optional[bytes] = self.layout.encode(snapshot) if snapshot else None
        self.submitted: list[Instruction] = []
        self.confirm_timeouts: list[float] = []
        self.fail_submit: set[InstructionKind] = set()
        self.revert_on: set[InstructionKind] = set()
        self.unavailable = False
        self.reads = 0
        self.on_confirm: Optional[Callable[[Instruction], None]] = None
        self.now = 1_700_000_000
        self._pending: dict[str, Instruction] = {}
        self._lock = threading.Lock()

    @property
    def kinds(self) -> list[InstructionKind]:
        return [i.kind for i in self.submitted]

    @property
    def state(self) -> ProtocolStateSnapshot:
        assert self.account is not None
        return self.layout.decode(self.account)

    def args(self, kind: InstructionKind) -> dict[str, object]:
        for instruction in self.submitted:
            if instruction.kind == kind:
                return decode_args(instruction)
        raise KeyError(kind)

    # LedgerRpc

    def get_account_data(self, address: str) -> Optional[bytes]:
        self.reads += 1
        if self.unavailable:
            raise LedgerUnavailable("connection refused")
        return self.account

    def submit(self, instruction: Instruction) -> str:
        with self._lock:
            self.submitted.append(instruction)
            if instruction.kind in self.fail_submit:
                raise TransactionError(instruction.kind.value, "blockhash not found")
            tx_id = f"0x{len(self.submitted):064x}"
            self._pending[tx_id] = instruction
            return tx_id

    def confirm(self, tx_id: str, timeout: float) -> None:
        with self._lock:
            self.confirm_timeouts.append(timeout)
            instruction = self._pending.pop(tx_id)
        if self.on_confirm is not None:
            self.on_confirm(instruction)
        if instruction.kind in self.revert_on:
            raise TransactionError("confirm", "reverted", tx_id)
        with self._lock:
            error = self._apply(instruction)
        if error:
            raise TransactionError("confirm", error, tx_id)

    # Program rules

    def _apply(self, instruction: Instruction) -> Optional[str]:
        if self.account is None:
            return "AccountNotInitialized"
        state = self.state
        if state.is_paused:
            return "ProtocolPaused"
        args = decode_args(instruction)
        self.now += 1

        if instruction.kind == InstructionKind.PUBLISH_COMMITMENT:
            state = dataclasses.replace(
                state,
                current_commitment_root=args["root"],
                proven_reserves=args["count"],
                last_update_timestamp=self.now,
            )
        elif instruction.kind == InstructionKind.RECORD_PROOF:
            if args["claimed_count"] != state.proven_reserves:
                return "ProofCountMismatch"
            state = dataclasses.replace(state, last_proof_timestamp=self.now)
        elif instruction.kind == InstructionKind.MINT:
            supply = state.total_supply + args["amount"]
            if supply > state.proven_reserves:
                return "InsufficientReserves"
            state = dataclasses.replace(state, total_supply=supply)
        else:
            new_price = args["price_units"]
            old = state.price_units
            if old > 0 and abs(new_price - old) * 5 > old:
                return "PriceChangeTooLarge"
            state = dataclasses.replace(state, price_units=new_price)

        self.account = self.layout.encode(state)
        return None


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class SleepRecorder:

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def store(tmp_path: Path) -> SQLiteLedgerStore:
    s = SQLiteLedgerStore(tmp_path / "ledger.sqlite3")
    yield s
    s.close()


@pytest.fixture
def config() -> ReconcilerConfig:
    return ReconcilerConfig()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
