"""Cryptographic primitives: Merkle tree and commitment building."""

from reserve_recon.crypto.merkle import MerkleProof, MerkleTree, hash_serial
from reserve_recon.crypto.commitment_builder import CommitmentBuilder, build_commitment

__all__ = ["MerkleProof", "MerkleTree", "CommitmentBuilder", "build_commitment", "hash_serial"]
