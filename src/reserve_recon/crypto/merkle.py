"""Merkle tree over serial digests.

Uses SHA-256 as the hash function. Two ordering rules make the root
independent of input order:

1. Leaves are sorted by byte value before the tree is built.
2. Each sibling pair is sorted by byte value before concatenation.

An unpaired trailing node is promoted unchanged to the next level
(it is not duplicated). Because pairs are sorted, an inclusion proof is
just the list of sibling digests; no left/right markers are needed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


# Root of a tree with no leaves: SHA-256 of the empty string.
EMPTY_ROOT = hashlib.sha256(b"").digest()


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf: bytes
    siblings: tuple[bytes, ...]
    root: bytes

    def to_dict(self) -> dict[str, object]:
        return {
            "leaf": self.leaf.hex(),
            "siblings": [s.hex() for s in self.siblings],
            "root": self.root.hex(),
        }


class MerkleTree:
    """A deterministic Merkle tree using SHA-256 with sorted pairs.

    Usage:
        tree = MerkleTree()
        tree.add_leaf(hash_serial("GB-1"))
        tree.add_leaf(hash_serial("GB-2"))
        root = tree.compute_root()
        proof = tree.inclusion_proof(hash_serial("GB-1"))
    """

    def __init__(self) -> None:
        self._leaves: list[bytes] = []
        self._levels: list[list[bytes]] = []
        self._computed = False

    def add_leaf(self, leaf: bytes) -> None:
        """Add a 32-byte leaf digest. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        if len(leaf) != 32:
            raise ValueError(f"Leaf must be a 32-byte digest, got {len(leaf)} bytes")
        self._leaves.append(leaf)

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def compute_root(self) -> bytes:
        """Compute the Merkle root.

        If there are no leaves, returns EMPTY_ROOT.
        """
        if not self._leaves:
            self._computed = True
            return EMPTY_ROOT

        current_level = sorted(self._leaves)
        self._levels = [current_level]

        while len(current_level) > 1:
            next_level: list[bytes] = []
            for i in range(0, len(current_level), 2):
                if i + 1 < len(current_level):
                    next_level.append(hash_pair(current_level[i], current_level[i + 1]))
                else:
                    next_level.append(current_level[i])  # promoted
            self._levels.append(next_level)
            current_level = next_level

        self._computed = True
        return current_level[0]

    def inclusion_proof(self, leaf: bytes) -> MerkleProof | None:
        """Generate an inclusion proof for a leaf.

        Returns None if the leaf is not in the tree.
        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        if not self._levels or leaf not in self._levels[0]:
            return None

        idx = self._levels[0].index(leaf)
        siblings: list[bytes] = []
        for level in self._levels[:-1]:
            sibling_idx = idx + 1 if idx % 2 == 0 else idx - 1
            if sibling_idx < len(level):
                siblings.append(level[sibling_idx])
            idx //= 2

        return MerkleProof(leaf=leaf, siblings=tuple(siblings), root=self._levels[-1][0])


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash_serial(serial: str) -> bytes:
    """Leaf digest of one serial identifier (SHA-256 of its UTF-8 bytes)."""
    return sha256(serial.encode("utf-8"))


def hash_pair(left: bytes, right: bytes) -> bytes:
    """Hash two nodes together after sorting them by byte value."""
    first, second = sorted((left, right))
    return sha256(first + second)


def verify_proof(proof: MerkleProof, root: bytes) -> bool:
    """Fold a proof's siblings into its leaf and compare with ``root``."""
    node = proof.leaf
    for sibling in proof.siblings:
        node = hash_pair(node, sibling)
    return node == root
