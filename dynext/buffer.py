"""Wrapped records, the mutable insertion buffer and read-only views on it."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Callable, Iterator

from dynext.bloom import BloomFilter

_TOMBSTONE = 1
_DELETED = 2
_VISIBLE = 4
_FLAG_MASK = 7
_TS_SHIFT = 3


@dataclass
class Wrapped:
    """A record together with its header of flags and timestamp."""

    rec: Any
    header: int = 0

    def set_tombstone(self) -> None:
        self.header |= _TOMBSTONE

    def is_tombstone(self) -> bool:
        return bool(self.header & _TOMBSTONE)

    def set_delete(self) -> None:
        self.header |= _DELETED

    def is_deleted(self) -> bool:
        return bool(self.header & _DELETED)

    def set_visible(self) -> None:
        self.header |= _VISIBLE

    def is_visible(self) -> bool:
        return bool(self.header & _VISIBLE)

    def set_timestamp(self, ts: int) -> None:
        self.header = (self.header & _FLAG_MASK) | (ts << _TS_SHIFT)

    @property
    def timestamp(self) -> int:
        return self.header >> _TS_SHIFT

    def __lt__(self, other: "Wrapped") -> bool:
        # A record sorts immediately before its own tombstone.
        if self.rec != other.rec:
            return self.rec < other.rec
        return self.is_tombstone() < other.is_tombstone()


class BufferView:
    """A read window over a range of the mutable buffer's ring storage.

    The view holds a reference on its head; release it (or use it as a
    context manager) so the buffer can advance past it.
    """

    def __init__(
        self,
        data: list[Wrapped],
        capacity: int,
        head: int,
        tail: int,
        tombstone_count: int,
        tombstone_filter: BloomFilter | None,
        release: Callable[[], None],
    ) -> None:
        self._data = data
        self.capacity = capacity
        self.head = head
        self.tail = tail
        self.tombstone_count = tombstone_count
        self._start = head % capacity
        self._filter = tombstone_filter
        self._release = release
        self._active = True

    def __len__(self) -> int:
        return self.tail - self.head

    @property
    def record_count(self) -> int:
        return len(self)

    def __iter__(self) -> Iterator[Wrapped]:
        return (self._data[(self._start + i) % self.capacity] for i in range(len(self)))

    def get(self, i: int) -> Wrapped:
        """Return the live wrapped record at logical position ``i``."""
        if not 0 <= i < len(self):
            raise IndexError(f"index {i} outside view of {len(self)} records")
        return self._data[(self._start + i) % self.capacity]

    def records(self) -> list[Wrapped]:
        """Return copies of the wrapped records in insertion order."""
        return [replace(w) for w in self]

    def check_tombstone(self, rec: Any) -> bool:
        """Return True if the view holds a tombstone for ``rec``."""
        if self._filter is not None and not self._filter.lookup(rec):
            return False
        return any(w.rec == rec and w.is_tombstone() for w in self)

    def delete_record(self, rec: Any) -> bool:
        """Tag the first record equal to ``rec`` as deleted."""
        for w in self:
            if w.rec == rec:
                w.set_delete()
                return True
        return False

    def release(self) -> None:
        """Drop this view's head reference; safe to call more than once."""
        if self._active:
            self._active = False
            self._release()

    def __enter__(self) -> "BufferView":
        return self

    def __exit__(self, *args) -> None:
        self.release()

    def __del__(self) -> None:
        if getattr(self, "_active", False):
            self.release()


@dataclass
class _Head:
    head_idx: int
    refcnt: int


class MutableBuffer:
    """A bounded, ring-stored insertion buffer with low and high watermarks."""

    def __init__(self, low_watermark: int, high_watermark: int, capacity: int = 0) -> None:
        cap = 2 * high_watermark if capacity == 0 else capacity
        if cap <= high_watermark:
            raise ValueError("capacity must exceed the high watermark")
        if high_watermark < low_watermark:
            raise ValueError("high watermark must not be below the low watermark")
        self._lwm = low_watermark
        self._hwm = high_watermark
        self._cap = cap
        self._tail = 0
        self._head = _Head(0, 0)
        self._old_head = _Head(high_watermark, 0)
        self._data = [Wrapped(None) for _ in range(cap)]
        self._filter = BloomFilter(high_watermark)
        self._tscnt = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._cap

    @property
    def tail(self) -> int:
        return self._tail

    @property
    def record_count(self) -> int:
        return self._tail - self._head.head_idx

    @property
    def tombstone_count(self) -> int:
        return self._tscnt

    @property
    def aux_memory_usage(self) -> int:
        return self._filter.memory_usage

    @property
    def low_watermark(self) -> int:
        return self._lwm

    @low_watermark.setter
    def low_watermark(self, lwm: int) -> None:
        if lwm >= self._hwm:
            raise ValueError("low watermark must be below the high watermark")
        self._lwm = lwm

    @property
    def high_watermark(self) -> int:
        return self._hwm

    @high_watermark.setter
    def high_watermark(self, hwm: int) -> None:
        if hwm <= self._lwm:
            raise ValueError("high watermark must exceed the low watermark")
        if hwm >= self._cap:
            raise ValueError("high watermark must be below the capacity")
        self._hwm = hwm

    def append(self, rec: Any, tombstone: bool = False) -> bool:
        """Insert ``rec``; return False if the buffer has reached its high watermark."""
        with self._lock:
            if self._tail - self._head.head_idx >= self._hwm:
                return False
            tail = self._tail
            self._tail += 1

            pos = tail % self._cap
            wrec = Wrapped(rec)
            if tombstone:
                wrec.set_tombstone()
            wrec.set_timestamp(pos)
            self._data[pos] = wrec
            if tombstone:
                self._tscnt += 1
                self._filter.insert(rec)
            wrec.set_visible()
        return True

    def truncate(self) -> bool:
        """Reset the tail and tombstone tracking."""
        with self._lock:
            self._tscnt = 0
            self._tail = 0
            self._filter.clear()
        return True

    def is_full(self) -> bool:
        return self.record_count >= self._hwm

    def is_at_low_watermark(self) -> bool:
        return self.record_count >= self._lwm

    def delete_record(self, rec: Any) -> bool:
        """Tag the first record equal to ``rec`` in the active region as deleted."""
        with self.get_buffer_view() as view:
            return view.delete_record(rec)

    def check_tombstone(self, rec: Any) -> bool:
        """Return True if the active region holds a tombstone for ``rec``."""
        with self.get_buffer_view() as view:
            return view.check_tombstone(rec)

    def get_buffer_view(self, target_head: int | None = None) -> BufferView:
        """Return a view starting at ``target_head`` (default: the current head)."""
        if target_head is None:
            target_head = self._head.head_idx
        head = self._acquire_head(target_head)
        return BufferView(
            self._data,
            self._cap,
            head,
            self._tail,
            self._tscnt,
            self._filter,
            partial(self._release_head_reference, head),
        )

    def advance_head(self, new_head: int) -> bool:
        """Move the head to ``new_head``; refuse while the old head is referenced."""
        if new_head <= self._head.head_idx:
            raise ValueError("new head must be beyond the current head")
        if new_head > self._tail:
            raise ValueError("new head must not pass the tail")
        with self._lock:
            if self._old_head.refcnt > 0:
                return False
            self._old_head = self._head
            self._head = _Head(new_head, 0)
        return True

    def available_capacity(self) -> int:
        """Physical slots free, counting an unreferenced old head as free."""
        if self._old_head.refcnt == 0:
            return self._cap - (self._tail - self._head.head_idx)
        return self._cap - (self._tail - self._old_head.head_idx)

    def _acquire_head(self, target_head: int) -> int:
        with self._lock:
            if self._old_head.head_idx == target_head:
                self._old_head.refcnt += 1
            elif self._head.head_idx == target_head:
                self._head.refcnt += 1
            else:
                raise ValueError(f"head {target_head} is neither the current nor the old head")
        return target_head

    def _release_head_reference(self, head: int) -> None:
        with self._lock:
            target = self._old_head if self._old_head.head_idx == head else self._head
            if target.refcnt == 0:
                raise RuntimeError(f"no outstanding reference on head {head}")
            target.refcnt -= 1