"""A static vantage-point tree answering k-nearest-neighbour queries."""

from __future__ import annotations

import heapq
import itertools
import random
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass
class KNNQueryParms:
    """A query for the ``k`` records nearest to ``point``."""

    point: Any
    k: int


@dataclass
class _VPPtr:
    rec: Any
    dist: float = 0.0


@dataclass
class _VPNode:
    start: int
    stop: int = 0
    leaf: bool = False
    radius: float = 0.0
    inside: "_VPNode | None" = None
    outside: "_VPNode | None" = None


class _MaxDistQueue:
    """Records keyed by distance to a fixed point, farthest first."""

    def __init__(self, point: Any) -> None:
        self._point = point
        self._heap: list = []
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def push(self, rec: Any) -> None:
        d = self._point.calc_distance(rec)
        heapq.heappush(self._heap, (-d, next(self._seq), rec))

    def peek(self) -> Any:
        return self._heap[0][2]

    def peek_distance(self) -> float:
        return -self._heap[0][0]

    def pop(self) -> Any:
        return heapq.heappop(self._heap)[2]

    def drain(self) -> list:
        out = []
        while self._heap:
            out.append(self.pop())
        return out


class BSMVPTree:
    """A vantage-point tree over records that provide ``calc_distance``.

    Query results list the neighbours from farthest to nearest.
    """

    LEAF_SIZE = 100

    def __init__(self, records: Iterable[Any], rng: random.Random | None = None) -> None:
        self._data = list(records)
        self._ptrs = [_VPPtr(rec) for rec in self._data]
        self.node_count = 0
        self._rng = rng if rng is not None else random.Random(0)
        self._root = self._build_subtree(0, len(self._ptrs) - 1) if self._ptrs else None

    @staticmethod
    def build(records: Iterable[Any], rng: random.Random | None = None) -> "BSMVPTree":
        return BSMVPTree(records, rng)

    @staticmethod
    def build_presorted(records: Iterable[Any], rng: random.Random | None = None) -> "BSMVPTree":
        return BSMVPTree(records, rng)

    def unbuild(self) -> list:
        """Hand back the records, leaving the tree empty."""
        data = self._data
        self._data, self._ptrs, self._root = [], [], None
        return data

    @property
    def record_count(self) -> int:
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def query(self, parms: KNNQueryParms | None) -> list:
        """Return the ``parms.k`` records nearest ``parms.point``, farthest first."""
        if parms is None or parms.k <= 0:
            return []
        pq = _MaxDistQueue(parms.point)
        if parms.k >= len(self._data):
            for ptr in self._ptrs:
                pq.push(ptr.rec)
        else:
            self._search(parms.point, parms.k, pq)
        return pq.drain()

    def query_merge(self, rsa: list, rsb: list, parms: KNNQueryParms) -> list:
        """Keep the ``parms.k`` records of both result sets nearest ``parms.point``."""
        point, k = parms.point, parms.k
        pq = _MaxDistQueue(point)
        for rec in itertools.chain(rsa, rsb):
            if len(pq) < k:
                pq.push(rec)
            elif k > 0 and rec.calc_distance(point) < pq.peek().calc_distance(point):
                pq.pop()
                pq.push(rec)
        return pq.drain()

    def _build_subtree(self, start: int, stop: int) -> _VPNode | None:
        if start > stop:
            return None

        if stop - start <= self.LEAF_SIZE:
            self.node_count += 1
            return _VPNode(start, stop, leaf=True)

        self._swap(start, start + self._rng.randrange(stop - start + 1))

        vantage = self._ptrs[start].rec
        for ptr in self._ptrs[start + 1 : stop + 1]:
            ptr.dist = vantage.calc_distance(ptr.rec)

        mid = (start + 1 + stop) // 2
        self._quickselect(start + 1, stop, mid)

        node = _VPNode(start)
        node.radius = vantage.calc_distance(self._ptrs[mid].rec)
        self._ptrs[start].dist = node.radius
        node.inside = self._build_subtree(start + 1, mid - 1)
        node.outside = self._build_subtree(mid, stop)

        self.node_count += 1
        return node

    def _quickselect(self, start: int, stop: int, k: int) -> None:
        while start != stop:
            pivot = self._partition(start, stop)
            if k < pivot:
                stop = pivot - 1
            elif k > pivot:
                start = pivot + 1
            else:
                return

    def _partition(self, start: int, stop: int) -> int:
        self._swap(start + self._rng.randrange(stop - start), stop)
        pivot_dist = self._ptrs[stop].dist
        j = start
        for i in range(start, stop):
            if self._ptrs[i].dist < pivot_dist:
                self._swap(j, i)
                j += 1
        self._swap(j, stop)
        return j

    def _swap(self, a: int, b: int) -> None:
        self._ptrs[a], self._ptrs[b] = self._ptrs[b], self._ptrs[a]

    def _search(self, point: Any, k: int, pq: _MaxDistQueue) -> None:
        farthest = float("inf")

        def offer(rec: Any, d: float) -> None:
            nonlocal farthest
            if d < farthest:
                if len(pq) == k:
                    pq.pop()
                pq.push(rec)
                if len(pq) == k:
                    farthest = point.calc_distance(pq.peek())

        def visit(node: _VPNode | None) -> None:
            if node is None:
                return
            if node.leaf:
                for ptr in self._ptrs[node.start : node.stop + 1]:
                    offer(ptr.rec, point.calc_distance(ptr.rec))
                return

            vantage = self._ptrs[node.start].rec
            d = point.calc_distance(vantage)
            offer(vantage, d)

            if d < node.radius:
                if d - farthest <= node.radius:
                    visit(node.inside)
                if d + farthest >= node.radius:
                    visit(node.outside)
            else:
                if d + farthest >= node.radius:
                    visit(node.outside)
                if d - farthest <= node.radius:
                    visit(node.inside)

        visit(self._root)