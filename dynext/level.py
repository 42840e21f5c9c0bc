"""A level of the extension structure: a fixed number of shard slots."""

from __future__ import annotations

import math
from typing import Any, Callable, Sequence

from dynext.buffer import BufferView
from dynext.types import ShardID


class InternalLevel:
    """Holds up to ``shard_cap`` shards built by ``shard_type``.

    ``shard_type`` is called with either a BufferView or a list of shards
    (entries may be None) and returns a new shard. Shards expose
    ``record_count``, ``tombstone_count``, ``memory_usage``,
    ``aux_memory_usage`` and ``point_lookup(rec, filter=False)``.
    """

    def __init__(self, level_no: int, shard_cap: int, shard_type: Callable[[Any], Any]) -> None:
        self.level_no = level_no
        self.shard_type = shard_type
        self._shards: list[Any] = [None] * shard_cap
        self._shard_cnt = 0
        self._pending_shard: Any = None

    @staticmethod
    def reconstruction(base_level: "InternalLevel", new_level: "InternalLevel") -> "InternalLevel":
        """Return a new one-shard level merging the first shards of both levels."""
        if not (
            base_level.level_no > new_level.level_no
            or (base_level.level_no == 0 and new_level.level_no == 0)
        ):
            raise ValueError("base level must lie below the incoming level")
        res = InternalLevel(base_level.level_no, 1, base_level.shard_type)
        res._shards[0] = base_level.shard_type([base_level._shards[0], new_level._shards[0]])
        res._shard_cnt = 1
        return res

    @staticmethod
    def reconstruction_from_levels(
        levels: Sequence["InternalLevel"], level_idx: int
    ) -> "InternalLevel":
        """Return a new one-shard level at ``level_idx`` merging every shard of ``levels``."""
        if not levels:
            raise ValueError("at least one level is required")
        shard_type = levels[0].shard_type
        shards = [s for level in levels for s in level._shards if s is not None]
        res = InternalLevel(level_idx, 1, shard_type)
        res._shards[0] = shard_type(shards)
        res._shard_cnt = 1
        return res

    def append_level(self, level: "InternalLevel") -> None:
        """Merge all shards of ``level`` into one new shard and append it here.

        If this level is full, the new shard is held pending until finalize().
        """
        if level.shard_count == 0:
            return
        shards = [s for s in level._shards if s is not None]
        if self._shard_cnt == len(self._shards):
            self._pending_shard = self.shard_type(shards)
            return
        self._shards[self._shard_cnt] = self.shard_type(shards)
        self._shard_cnt += 1

    def append_buffer(self, buffer: BufferView) -> None:
        """Build a shard from ``buffer`` and append it, or hold it pending if full."""
        if self._shard_cnt == len(self._shards):
            if self._pending_shard is not None:
                raise RuntimeError("level already holds a pending shard")
            self._pending_shard = self.shard_type(buffer)
            return
        self._shards[self._shard_cnt] = self.shard_type(buffer)
        self._shard_cnt += 1

    def finalize(self) -> None:
        """Replace every shard with the pending shard, if one exists."""
        if self._pending_shard is not None:
            self._shards = [None] * len(self._shards)
            self._shards[0] = self._pending_shard
            self._pending_shard = None
            self._shard_cnt = 1

    def get_combined_shard(self) -> Any:
        """Return a new shard combining every shard here, or None if empty."""
        if self._shard_cnt == 0:
            return None
        return self.shard_type([s for s in self._shards if s is not None])

    def get_local_queries(self, query_type: Any, parms: Any) -> list[tuple[ShardID, Any, Any]]:
        """Preprocess ``parms`` for each shard via ``query_type.local_preproc``.

        Returns (shard id, shard, local query) triples in shard order.
        """
        out = []
        for i, shard in enumerate(self._shards[: self._shard_cnt]):
            if shard is not None:
                local = query_type.local_preproc(shard, parms)
                out.append((ShardID(self.level_no, i), shard, local))
        return out

    def check_tombstone(self, shard_stop: int, rec: Any) -> bool:
        """Return True if a shard at index ``shard_stop`` or above holds a tombstone for ``rec``."""
        if self._shard_cnt == 0:
            return False
        for i in range(self._shard_cnt - 1, shard_stop - 1, -1):
            shard = self._shards[i]
            if shard is not None:
                res = shard.point_lookup(rec, True)
                if res is not None and res.is_tombstone():
                    return True
        return False

    def delete_record(self, rec: Any) -> bool:
        """Tag the first record equal to ``rec`` as deleted."""
        if self._shard_cnt == 0:
            return False
        for shard in self._shards:
            if shard is not None:
                res = shard.point_lookup(rec)
                if res is not None:
                    res.set_delete()
                    return True
        return False

    def get_shard(self, idx: int) -> Any:
        """Return the shard at ``idx``, or None if there is none."""
        if idx >= self._shard_cnt:
            return None
        return self._shards[idx]

    def _live_shards(self):
        return (s for s in self._shards[: self._shard_cnt] if s is not None)

    @property
    def shard_capacity(self) -> int:
        return len(self._shards)

    @property
    def shard_count(self) -> int:
        return self._shard_cnt

    @property
    def record_count(self) -> int:
        return sum(s.record_count for s in self._live_shards())

    @property
    def tombstone_count(self) -> int:
        return sum(s.tombstone_count for s in self._live_shards())

    @property
    def memory_usage(self) -> int:
        return sum(s.memory_usage for s in self._live_shards())

    @property
    def aux_memory_usage(self) -> int:
        return sum(s.aux_memory_usage for s in self._live_shards())

    @property
    def tombstone_prop(self) -> float:
        """Tombstones over tombstones plus records; NaN for an empty level."""
        tscnt = self.tombstone_count
        reccnt = self.record_count
        if tscnt + reccnt == 0:
            return math.nan
        return tscnt / (tscnt + reccnt)

    def clone(self) -> "InternalLevel":
        """Return a level sharing this level's shards in its own slot list."""
        new_level = InternalLevel(self.level_no, len(self._shards), self.shard_type)
        new_level._shards[: self._shard_cnt] = self._shards[: self._shard_cnt]
        new_level._shard_cnt = self._shard_cnt
        return new_level