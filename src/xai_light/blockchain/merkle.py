"""Simple Merkle tree over byte slices (RFC 6962 domain separation).

Leaves hash as H(0x00 || leaf) and inner nodes as H(0x01 || left || right).
A list of n > 1 items splits at the largest power of two strictly below n.
Used to bind headers to their fields and validator sets to their members.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from xai_light.core.crypto_utils import Hasher, Sha256Hasher

LEAF_PREFIX = b"\x00"
INNER_PREFIX = b"\x01"


def _split_point(length: int) -> int:
    if length < 1:
        raise ValueError("Cannot split an empty list.")
    k = 1 << (length.bit_length() - 1)
    if k == length:
        k >>= 1
    return k


def leaf_hash(leaf: bytes, hasher: Hasher) -> bytes:
    return hasher.hash(LEAF_PREFIX + leaf)


def inner_hash(left: bytes, right: bytes, hasher: Hasher) -> bytes:
    return hasher.hash(INNER_PREFIX + left + right)


def simple_hash_from_byte_slices(items: Sequence[bytes], hasher: Optional[Hasher] = None) -> bytes:
    hasher = hasher or Sha256Hasher()
    if len(items) == 0:
        return hasher.hash(b"")
    if len(items) == 1:
        return leaf_hash(items[0], hasher)
    k = _split_point(len(items))
    left = simple_hash_from_byte_slices(items[:k], hasher)
    right = simple_hash_from_byte_slices(items[k:], hasher)
    return inner_hash(left, right, hasher)


@dataclass(frozen=True)
class SimpleProof:
    """Inclusion proof for one leaf: sibling hashes ordered from leaf to root."""

    total: int
    index: int
    leaf_hash: bytes
    aunts: List[bytes] = field(default_factory=list)

    def compute_root(self, hasher: Optional[Hasher] = None) -> Optional[bytes]:
        hasher = hasher or Sha256Hasher()
        return _root_from_aunts(self.index, self.total, self.leaf_hash, list(self.aunts), hasher)

    def verify(self, root: bytes, leaf: bytes, hasher: Optional[Hasher] = None) -> bool:
        hasher = hasher or Sha256Hasher()
        if self.total <= 0 or not 0 <= self.index < self.total:
            return False
        if leaf_hash(leaf, hasher) != self.leaf_hash:
            return False
        return self.compute_root(hasher) == root


def simple_proofs_from_byte_slices(
    items: Sequence[bytes], hasher: Optional[Hasher] = None
) -> tuple[bytes, List[SimpleProof]]:
    """Return the root and one proof per item."""
    hasher = hasher or Sha256Hasher()
    if not items:
        raise ValueError("Merkle proofs require at least one item.")
    trails = _build_trails(list(items), hasher)
    proofs = [
        SimpleProof(total=len(items), index=i, leaf_hash=leaf_hash(item, hasher), aunts=aunts)
        for i, (item, aunts) in enumerate(zip(items, trails))
    ]
    return simple_hash_from_byte_slices(items, hasher), proofs


def _build_trails(items: List[bytes], hasher: Hasher) -> List[List[bytes]]:
    if len(items) == 1:
        return [[]]
    k = _split_point(len(items))
    left_items, right_items = items[:k], items[k:]
    left_root = simple_hash_from_byte_slices(left_items, hasher)
    right_root = simple_hash_from_byte_slices(right_items, hasher)
    left_trails = [trail + [right_root] for trail in _build_trails(left_items, hasher)]
    right_trails = [trail + [left_root] for trail in _build_trails(right_items, hasher)]
    return left_trails + right_trails


def _root_from_aunts(
    index: int, total: int, leaf: bytes, aunts: List[bytes], hasher: Hasher
) -> Optional[bytes]:
    if index >= total or index < 0 or total <= 0:
        return None
    if total == 1:
        return leaf if not aunts else None
    if not aunts:
        return None
    k = _split_point(total)
    if index < k:
        left = _root_from_aunts(index, k, leaf, aunts[:-1], hasher)
        if left is None:
            return None
        return inner_hash(left, aunts[-1], hasher)
    right = _root_from_aunts(index - k, total - k, leaf, aunts[:-1], hasher)
    if right is None:
        return None
    return inner_hash(aunts[-1], right, hasher)
