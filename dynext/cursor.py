"""Cursors over sorted record arrays, used when merging shards."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from dynext.buffer import Wrapped


@dataclass(eq=False)
class Cursor:
    """A position within a sorted sequence of wrapped records.

    ``count`` limits how many records of ``records`` the cursor covers;
    by default it covers them all. A cursor over no records stands for a
    missing shard.
    """

    records: Sequence[Wrapped] = ()
    position: int = 0
    count: int | None = None

    def __post_init__(self) -> None:
        if self.count is None:
            self.count = len(self.records)

    @property
    def end(self) -> int:
        """Index one past the last record the cursor may visit."""
        return min(self.count, len(self.records))

    def advance(self) -> bool:
        """Step to the next record; return False once the cursor runs off its end."""
        self.position += 1
        return self.position < self.end

    def current(self) -> Wrapped:
        """Return the record under the cursor."""
        if self.exhausted():
            raise IndexError("cursor is exhausted")
        return self.records[self.position]

    def exhausted(self) -> bool:
        """Return True when no record remains under the cursor."""
        return self.position >= self.end


def get_next(cursors: Sequence[Cursor], current: Cursor | None = None) -> Cursor | None:
    """Return the cursor whose head record is smallest, without advancing any.

    For ``current`` the record after its head is considered instead, which
    allows peeking at what follows once the current head is consumed.
    Returns None if every cursor is empty or exhausted.
    """
    best: Cursor | None = None
    best_rec: Wrapped | None = None
    for cursor in cursors:
        if not cursor.records:
            continue
        pos = cursor.position + 1 if cursor is current else cursor.position
        if pos >= cursor.end:
            continue
        rec = cursor.records[pos]
        if best_rec is None or rec < best_rec:
            best, best_rec = cursor, rec
    return best