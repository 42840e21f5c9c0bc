"""Sorted-array construction from buffers and shards, with tombstone cancellation."""

from __future__ import annotations

import heapq
from dataclasses import dataclass, replace
from typing import Any, Sequence

from dynext.bloom import BloomFilter
from dynext.buffer import BufferView, Wrapped
from dynext.cursor import Cursor

# Header bits kept on records copied out of the buffer: tombstone and delete.
_BUFFER_HEADER_MASK = 3


@dataclass
class MergeInfo:
    """Counts of records and tombstones written by a merge."""

    record_count: int = 0
    tombstone_count: int = 0


def build_cursor_vec(shards: Sequence[Any]) -> tuple[list[Cursor], int, int]:
    """Build one cursor per shard, in order, with upper bounds on the counts.

    Each shard exposes ``data``, ``record_count`` and ``tombstone_count``; a
    None shard gets an empty cursor. Returns the cursors, the total record
    count and the total tombstone count.
    """
    cursors: list[Cursor] = []
    reccnt = 0
    tscnt = 0
    for shard in shards:
        if shard is None:
            cursors.append(Cursor())
            continue
        cursors.append(Cursor(shard.data, 0, shard.record_count))
        reccnt += shard.record_count
        tscnt += shard.tombstone_count
    return cursors, reccnt, tscnt


def sorted_array_from_bufferview(
    view: BufferView, bloom: BloomFilter | None = None
) -> tuple[list[Wrapped], MergeInfo]:
    """Copy and sort the records of ``view``, cancelling records against tombstones.

    Tagged-deleted records are dropped; tombstones kept are added to ``bloom``.
    The view itself is not altered.
    """
    records = sorted(view.records())
    out: list[Wrapped] = []
    info = MergeInfo()

    i = 0
    while i < len(records):
        rec = records[i]
        if (
            not rec.is_tombstone()
            and i + 1 < len(records)
            and rec.rec == records[i + 1].rec
            and records[i + 1].is_tombstone()
        ):
            i += 2
            continue
        if rec.is_deleted():
            i += 1
            continue

        rec.header &= _BUFFER_HEADER_MASK
        out.append(rec)
        if rec.is_tombstone():
            info.tombstone_count += 1
            if bloom is not None:
                bloom.insert(rec.rec)
        i += 1

    info.record_count = len(out)
    return out, info


class _HeapEntry:
    __slots__ = ("record", "index")

    def __init__(self, record: Wrapped, index: int) -> None:
        self.record = record
        self.index = index

    def __lt__(self, other: "_HeapEntry") -> bool:
        if self.record < other.record:
            return True
        if other.record < self.record:
            return False
        return self.index < other.index


def sorted_array_merge(
    cursors: Sequence[Cursor], bloom: BloomFilter | None = None
) -> tuple[list[Wrapped], MergeInfo]:
    """Merge the sorted records under ``cursors`` into one sorted list.

    A record immediately followed by its own tombstone is dropped together
    with the tombstone, tagged-deleted records are skipped, and kept
    tombstones are added to ``bloom``. The cursors are consumed.
    """
    heap = [_HeapEntry(c.current(), i) for i, c in enumerate(cursors) if not c.exhausted()]
    heapq.heapify(heap)

    out: list[Wrapped] = []
    info = MergeInfo()

    def push_next(entry: _HeapEntry) -> None:
        cursor = cursors[entry.index]
        if cursor.advance():
            heapq.heappush(heap, _HeapEntry(cursor.current(), entry.index))

    while heap:
        now = heapq.heappop(heap)
        nxt = heap[0] if heap else None

        if (
            not now.record.is_tombstone()
            and nxt is not None
            and now.record.rec == nxt.record.rec
            and nxt.record.is_tombstone()
        ):
            heapq.heappop(heap)
            push_next(now)
            push_next(nxt)
            continue

        rec = now.record
        if not rec.is_deleted():
            out.append(replace(rec))
            if rec.is_tombstone():
                info.tombstone_count += 1
                if bloom is not None:
                    bloom.insert(rec.rec)
        push_next(now)

    info.record_count = len(out)
    return out, info