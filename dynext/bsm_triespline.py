"""A static sorted-array index answering range-count queries."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Iterable

Record = tuple

# Below this many records, lookups scan the array directly.
_LINEAR_SCAN_LIMIT = 50


@dataclass
class RangeQueryParameters:
    """Inclusive key bounds of a range-count query."""

    lower_bound: int
    upper_bound: int


class BSMTrieSpline:
    """An immutable, key-sorted array of (key, value) records.

    Results of ``query`` are one-element lists of ``(count, 0)`` so that they
    can be combined with ``query_merge``.
    """

    def __init__(self, records: list) -> None:
        self._data = records
        self._keys = [rec[0] for rec in records]

    @staticmethod
    def build(records: Iterable[Record]) -> "BSMTrieSpline | None":
        """Sort ``records`` and build an index over them; None if there are none."""
        data = sorted(records)
        if not data:
            return None
        return BSMTrieSpline(data)

    @staticmethod
    def build_presorted(records: Iterable[Record]) -> "BSMTrieSpline | None":
        """Build over records already sorted by key; None if there are none."""
        data = list(records)
        if not data:
            return None
        return BSMTrieSpline(data)

    def unbuild(self) -> list:
        """Hand back the records, leaving the index empty."""
        data, self._data, self._keys = self._data, [], []
        return data

    @property
    def record_count(self) -> int:
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def query(self, parms: RangeQueryParameters | None) -> list:
        """Count records whose key lies within the bounds, starting at ``lower_bound``."""
        if parms is None:
            return [(0, 0)]
        idx = self.lower_bound(parms.lower_bound)
        stop = bisect_right(self._keys, parms.upper_bound, lo=min(idx, len(self._keys)))
        return [(max(0, stop - idx), 0)]

    def query_merge(self, rsa: list, rsb: list, parms: object = None) -> list:
        """Add the count in ``rsb`` to the count in ``rsa`` and return ``rsa``."""
        if not rsa:
            rsa.append((0, 0))
        count, value = rsa[0]
        rsa[0] = (count + rsb[0][0], value)
        return rsa

    def lower_bound(self, key: int) -> int:
        """Return the search start index for ``key``.

        Small arrays give the first index whose key is at least ``key``. Larger
        arrays step back to the predecessor when ``key`` itself is absent.
        """
        n = len(self._data)
        if n == 0:
            return 1
        if n < _LINEAR_SCAN_LIMIT:
            return next((i for i, k in enumerate(self._keys) if k >= key), n)

        idx = bisect_left(self._keys, key)
        if idx == n:
            return n
        if self._keys[idx] > key and idx > 0 and self._keys[idx - 1] <= key:
            return idx - 1
        return idx