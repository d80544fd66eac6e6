"""Commitment builder: derives the reserve commitment over a serial set.

Each serial is hashed with SHA-256 to form a leaf; the leaves are folded
into a sorted-pair Merkle tree. The builder is deterministic: the same
serial set yields the same root regardless of insertion order. It is
pure and never touches the network.
"""

from __future__ import annotations

import hashlib
from typing import Iterable

from reserve_recon.crypto.merkle import MerkleProof, MerkleTree, hash_serial, verify_proof
from reserve_recon.errors import EmptyCommitmentError
from reserve_recon.models.commitment import ROOT_SIZE, Commitment


class CommitmentBuilder:
    """Builds a Commitment from serial identifiers.

    Usage:
        builder = CommitmentBuilder()
        builder.add_serials(["GB-1", "GB-2", "GB-3"])
        commitment = builder.build()
        proof = builder.inclusion_proof("GB-2")
    """

    def __init__(self) -> None:
        self._tree = MerkleTree()
        self._serials: set[str] = set()
        self._built = False

    def add_serial(self, serial: str) -> None:
        """Add one serial. Duplicates are rejected."""
        if self._built:
            raise RuntimeError("Commitment already built. Create a new builder.")
        if serial in self._serials:
            raise ValueError(f"Duplicate serial: {serial}")
        self._serials.add(serial)
        self._tree.add_leaf(hash_serial(serial))

    def add_serials(self, serials: Iterable[str]) -> None:
        for serial in serials:
            self.add_serial(serial)

    def build(self) -> Commitment:
        """Compute the commitment.

        Raises EmptyCommitmentError if no serials were added.
        """
        if not self._serials:
            raise EmptyCommitmentError("Cannot build a commitment over an empty serial set")
        root = self._tree.compute_root()
        self._built = True
        return Commitment(root=pad_root(root), leaf_count=self._tree.leaf_count)

    def inclusion_proof(self, serial: str) -> MerkleProof | None:
        """Proof that ``serial`` is folded into the built root."""
        if not self._built:
            raise RuntimeError("Must call build before generating proofs")
        return self._tree.inclusion_proof(hash_serial(serial))


def build_commitment(serials: Iterable[str]) -> Commitment:
    """Convenience wrapper: build a commitment over ``serials`` in one call."""
    builder = CommitmentBuilder()
    builder.add_serials(serials)
    return builder.build()


def verify_inclusion(serial: str, proof: MerkleProof, root: bytes) -> bool:
    """Check that ``serial`` is the proof's leaf and the proof folds to ``root``."""
    if proof.leaf != hash_serial(serial):
        return False
    return verify_proof(proof, pad_root(root))


def proof_hash(commitment: Commitment) -> bytes:
    """Attestation digest for the record-proof step.

    SHA-256 over the root bytes followed by the ASCII leaf count.
    """
    return hashlib.sha256(
        commitment.root + str(commitment.leaf_count).encode("ascii")
    ).digest()


def pad_root(root: bytes) -> bytes:
    """Right-pad a root with zero bytes to the on-chain root size."""
    if len(root) > ROOT_SIZE:
        raise ValueError(f"Root longer than {ROOT_SIZE} bytes: {len(root)}")
    return root + b"\x00" * (ROOT_SIZE - len(root))
