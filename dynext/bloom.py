"""Bloom filter with process-wide default parameters."""

from __future__ import annotations

import hashlib
import math
from typing import Hashable

BF_FPR = 0.01
BF_HASH_FUNCS = 7

_MASK64 = (1 << 64) - 1


def set_bf_fpr(fpr: float) -> None:
    """Set the default false-positive rate; must lie in (0, 1)."""
    global BF_FPR
    if not 0.0 < fpr < 1.0:
        raise ValueError(f"false-positive rate must be in (0, 1), got {fpr}")
    BF_FPR = fpr


def set_bf_hash_funcs(count: int) -> None:
    """Set the default number of hash functions; must be positive."""
    global BF_HASH_FUNCS
    if count <= 0:
        raise ValueError(f"hash function count must be positive, got {count}")
    BF_HASH_FUNCS = count


class BloomFilter:
    """A probabilistic set membership filter sized for a given capacity."""

    def __init__(
        self,
        capacity: int,
        fpr: float | None = None,
        hash_funcs: int | None = None,
    ) -> None:
        self.fpr = BF_FPR if fpr is None else fpr
        self.hash_funcs = BF_HASH_FUNCS if hash_funcs is None else hash_funcs
        if not 0.0 < self.fpr < 1.0:
            raise ValueError(f"false-positive rate must be in (0, 1), got {self.fpr}")
        if self.hash_funcs <= 0:
            raise ValueError("hash function count must be positive")
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        bits = math.ceil(-capacity * math.log(self.fpr) / (math.log(2) ** 2))
        self.bit_count = max(8, bits)
        self._bits = bytearray((self.bit_count + 7) // 8)

    @property
    def memory_usage(self) -> int:
        """Bytes used by the bit array."""
        return len(self._bits)

    def _positions(self, item: Hashable):
        seed = (hash(item) & _MASK64).to_bytes(8, "little")
        digest = hashlib.blake2b(seed, digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "little")
        h2 = int.from_bytes(digest[8:], "little") | 1
        for i in range(self.hash_funcs):
            yield (h1 + i * h2) % self.bit_count

    def insert(self, item: Hashable) -> None:
        """Record ``item`` in the filter."""
        for pos in self._positions(item):
            self._bits[pos >> 3] |= 1 << (pos & 7)

    def lookup(self, item: Hashable) -> bool:
        """Return False if ``item`` was certainly never inserted."""
        return all(self._bits[pos >> 3] & (1 << (pos & 7)) for pos in self._positions(item))

    def clear(self) -> None:
        """Remove every item."""
        self._bits = bytearray(len(self._bits))

    def __contains__(self, item: Hashable) -> bool:
        return self.lookup(item)