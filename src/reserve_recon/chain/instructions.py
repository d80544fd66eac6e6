"""Instruction encoding for the ledger program.

Each instruction is an 8-byte discriminator (``sha256("global:<name>")[:8]``)
followed by its little-endian arguments. Fixed arrays are written raw;
byte vectors carry a u32 length prefix.
"""

from __future__ import annotations

import enum
import hashlib
import struct
from dataclasses import dataclass

from reserve_recon.models.commitment import ROOT_SIZE


U64_MAX = 2**64 - 1


class InstructionKind(str, enum.Enum):
    PUBLISH_COMMITMENT = "update_merkle_root"
    RECORD_PROOF = "submit_proof"
    MINT = "mint_w3b"
    SET_PRICE = "set_w3b_price"


def discriminator(kind: InstructionKind) -> bytes:
    return hashlib.sha256(f"global:{kind.value}".encode("utf-8")).digest()[:8]


@dataclass(frozen=True)
class Instruction:
    """An encoded instruction ready to be signed and submitted."""
    kind: InstructionKind
    data: bytes
    accounts: tuple[str, ...] = ()


def publish_commitment(root: bytes, count: int, state_address: str) -> Instruction:
    """Set the commitment root and proven reserves to ``count``."""
    if len(root) != ROOT_SIZE:
        raise ValueError(f"root must be {ROOT_SIZE} bytes")
    data = discriminator(InstructionKind.PUBLISH_COMMITMENT) + root + _u64(count)
    return Instruction(InstructionKind.PUBLISH_COMMITMENT, data, (state_address,))


def record_proof(proof_hash: bytes, claimed_count: int, state_address: str) -> Instruction:
    """Attest the published root. ``claimed_count`` must equal proven reserves."""
    data = (
        discriminator(InstructionKind.RECORD_PROOF)
        + struct.pack("<I", len(proof_hash))
        + proof_hash
        + _u64(claimed_count)
    )
    return Instruction(InstructionKind.RECORD_PROOF, data, (state_address,))


def mint(amount: int, state_address: str, mint_address: str, treasury_address: str) -> Instruction:
    """Mint ``amount`` to the treasury. The program bounds supply by reserves."""
    if amount <= 0:
        raise ValueError("mint amount must be positive")
    data = discriminator(InstructionKind.MINT) + _u64(amount)
    return Instruction(
        InstructionKind.MINT, data, (state_address, mint_address, treasury_address),
    )


def set_price(price_units: int, state_address: str) -> Instruction:
    if price_units <= 0:
        raise ValueError("price must be positive")
    data = discriminator(InstructionKind.SET_PRICE) + _u64(price_units)
    return Instruction(InstructionKind.SET_PRICE, data, (state_address,))


def decode_args(instruction: Instruction) -> dict[str, object]:
    """Decode an instruction's arguments. Used by tooling and test doubles."""
    body = instruction.data[8:]
    if instruction.kind == InstructionKind.PUBLISH_COMMITMENT:
        return {"root": body[:ROOT_SIZE], "count": struct.unpack_from("<Q", body, ROOT_SIZE)[0]}
    if instruction.kind == InstructionKind.RECORD_PROOF:
        (length,) = struct.unpack_from("<I", body, 0)
        return {
            "proof_hash": body[4:4 + length],
            "claimed_count": struct.unpack_from("<Q", body, 4 + length)[0],
        }
    if instruction.kind == InstructionKind.MINT:
        return {"amount": struct.unpack_from("<Q", body, 0)[0]}
    return {"price_units": struct.unpack_from("<Q", body, 0)[0]}


def _u64(value: int) -> bytes:
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"value out of u64 range: {value}")
    return struct.pack("<Q", value)
