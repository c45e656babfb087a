"""
Merkle inclusion proofs over claim event hashes.

Domain separation:
    Leaf hash:     SHA-256(0x00 + event_hash_hex)
    Internal hash: SHA-256(0x01 + left + right)

Odd layers duplicate their last node. A proof lets an auditor who holds
only the published root confirm that a given claim event was recorded.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any

_LEAF_PREFIX = b"\x00"
_INTERNAL_PREFIX = b"\x01"


def _hash_leaf(data: bytes) -> bytes:
    return hashlib.sha256(_LEAF_PREFIX + data).digest()


def _hash_internal(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(_INTERNAL_PREFIX + left + right).digest()


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for one event.

    Attributes:
        leaf: The event hash (hex, ASCII-encoded) that was proven.
        leaf_index: Sequence number of the event.
        siblings: (hash_bytes, direction) pairs from leaf to root;
            direction is 'left' if the sibling sits on the left.
        root: The 32-byte Merkle root over all events at proof time.
    """

    leaf: bytes
    leaf_index: int
    siblings: list[tuple[bytes, str]]
    root: bytes

    @property
    def root_hex(self) -> str:
        return self.root.hex()

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_hash": self.leaf.decode("ascii"),
            "sequence": self.leaf_index,
            "merkle_root": self.root_hex,
            "siblings": [
                {"hash": h.hex(), "direction": d} for h, d in self.siblings
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MerkleProof:
        return cls(
            leaf=data["event_hash"].encode("ascii"),
            leaf_index=int(data["sequence"]),
            siblings=[
                (bytes.fromhex(s["hash"]), s["direction"]) for s in data["siblings"]
            ],
            root=bytes.fromhex(data["merkle_root"]),
        )


def verify_proof(proof: MerkleProof) -> bool:
    """Recompute the root from a proof. Fail-closed: False on any error."""
    try:
        current = _hash_leaf(proof.leaf)
        for sibling, direction in proof.siblings:
            if direction == "left":
                current = _hash_internal(sibling, current)
            elif direction == "right":
                current = _hash_internal(current, sibling)
            else:
                return False
        return hmac.compare_digest(current, proof.root)
    except Exception:
        return False


class MerkleTree:
    """Merkle tree over event hashes.

    Usage:
        tree = MerkleTree.from_event_hashes([e.event_hash for e in log.entries])
        proof = tree.get_proof(3)
        assert verify_proof(proof)
    """

    def __init__(self, leaves: list[bytes], layers: list[list[bytes]]) -> None:
        self._leaves = leaves
        self._layers = layers

    @classmethod
    def from_leaves(cls, leaf_data: list[bytes]) -> MerkleTree:
        """Build a tree from raw leaf data. Raises ValueError if empty."""
        if not leaf_data:
            raise ValueError("Cannot build Merkle tree from empty leaf list")

        leaves = list(leaf_data)
        layer = [_hash_leaf(d) for d in leaves]
        layers = [layer]
        while len(layer) > 1:
            if len(layer) % 2 == 1:
                layer = layer + [layer[-1]]
            layer = [
                _hash_internal(layer[i], layer[i + 1])
                for i in range(0, len(layer), 2)
            ]
            layers.append(layer)
        return cls(leaves, layers)

    @classmethod
    def from_event_hashes(cls, event_hashes: list[str]) -> MerkleTree:
        for h in event_hashes:
            if len(h) != 64:
                raise ValueError(f"Invalid event hash length: {len(h)} (expected 64)")
        return cls.from_leaves([h.encode("ascii") for h in event_hashes])

    @property
    def root(self) -> bytes:
        return self._layers[-1][0]

    @property
    def root_hex(self) -> str:
        return self.root.hex()

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def get_proof(self, index: int) -> MerkleProof:
        """Inclusion proof for the leaf at index. Raises IndexError if out of range."""
        if index < 0 or index >= len(self._leaves):
            raise IndexError(
                f"Leaf index {index} out of range [0, {len(self._leaves)})"
            )

        siblings: list[tuple[bytes, str]] = []
        idx = index
        for layer in self._layers[:-1]:
            padded = layer + [layer[-1]] if len(layer) % 2 == 1 else layer
            if idx % 2 == 0:
                siblings.append((padded[idx + 1], "right"))
            else:
                siblings.append((padded[idx - 1], "left"))
            idx //= 2

        return MerkleProof(
            leaf=self._leaves[index],
            leaf_index=index,
            siblings=siblings,
            root=self.root,
        )
