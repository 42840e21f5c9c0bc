"""The leveled collection of shards behind a dynamized index."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Sequence

from dynext.buffer import BufferView
from dynext.level import InternalLevel
from dynext.types import ReconstructionTask, ReconstructionVector, ShardID


class LayoutPolicy(Enum):
    """How records are arranged across the levels of the structure."""

    LEVELING = "leveling"
    TIERING = "tiering"
    BSM = "bsm"


@dataclass
class LevelState:
    """Record and shard counts of one level, with their capacities."""

    reccnt: int
    reccap: int
    shardcnt: int
    shardcap: int


class ExtensionStructure:
    """A sequence of levels of shards, reorganised by reconstructions.

    ``shard_type`` builds a shard from a BufferView or from a list of shards.
    Level ``i`` may hold ``buffer_size * scale_factor ** (i + 1)`` records.
    """

    def __init__(
        self,
        buffer_size: int,
        scale_factor: int,
        max_delete_prop: float,
        shard_type: Callable[[Any], Any],
        layout: LayoutPolicy = LayoutPolicy.TIERING,
    ) -> None:
        self.buffer_size = buffer_size
        self.scale_factor = scale_factor
        self.max_delete_prop = max_delete_prop
        self.shard_type = shard_type
        self.layout = layout
        self._levels: list[InternalLevel] = []
        self._state: list[LevelState] = []
        self._refcnt = 0
        self._ref_lock = threading.Lock()

    # ------------------------------------------------------------------
    # inspection

    @property
    def levels(self) -> list[InternalLevel]:
        """The live list of levels, top (0) first."""
        return self._levels

    @property
    def state(self) -> list[LevelState]:
        """A copy of the per-level state vector."""
        return [replace(s) for s in self._state]

    @property
    def height(self) -> int:
        return len(self._levels)

    @property
    def record_count(self) -> int:
        return sum(level.record_count for level in self._levels)

    @property
    def tombstone_count(self) -> int:
        return sum(level.tombstone_count for level in self._levels)

    @property
    def memory_usage(self) -> int:
        return sum(level.memory_usage for level in self._levels)

    @property
    def aux_memory_usage(self) -> int:
        return sum(level.aux_memory_usage for level in self._levels)

    @property
    def reference_count(self) -> int:
        return self._refcnt

    # ------------------------------------------------------------------
    # copying, deletes, references

    def copy(self) -> "ExtensionStructure":
        """Return a structure sharing this one's shards but owning its own levels.

        The copy starts with a reference count of zero.
        """
        new_struct = ExtensionStructure(
            self.buffer_size,
            self.scale_factor,
            self.max_delete_prop,
            self.shard_type,
            self.layout,
        )
        new_struct._levels = [level.clone() for level in self._levels]
        new_struct._state = self.state
        return new_struct

    def tagged_delete(self, rec: Any) -> bool:
        """Tag the first record equal to ``rec`` as deleted; False if none is found."""
        return any(level.delete_record(rec) for level in self._levels)

    def take_reference(self) -> bool:
        with self._ref_lock:
            self._refcnt += 1
        return True

    def release_reference(self) -> bool:
        with self._ref_lock:
            if self._refcnt <= 0:
                raise RuntimeError("no outstanding reference to release")
            self._refcnt -= 1
        return True

    # ------------------------------------------------------------------
    # buffer flushes

    def flush_buffer(self, buffer: BufferView) -> bool:
        """Build a shard from ``buffer`` and place it in level 0.

        Level 0 must have room; plan reconstructions first otherwise.
        The view is released afterwards.
        """
        with buffer:
            scratch = self.state
            if not scratch:
                self._grow(scratch)
            if not self._can_reconstruct_with(0, len(buffer), scratch):
                raise ValueError("level 0 cannot absorb the buffer; reconstruct first")
            self._flush_buffer_into_l0(buffer)
        return True

    def _flush_buffer_into_l0(self, buffer: BufferView) -> None:
        shard_capacity = self._shard_capacity()
        if not self._levels:
            self._levels.append(InternalLevel(0, shard_capacity, self.shard_type))
            self._state.append(
                LevelState(0, self._calc_level_record_capacity(0), 0, shard_capacity)
            )

        if self.layout is LayoutPolicy.LEVELING:
            old_level = self._levels[0]
            temp_level = InternalLevel(0, 1, self.shard_type)
            temp_level.append_buffer(buffer)
            if old_level.shard_count > 0:
                self._levels[0] = InternalLevel.reconstruction(old_level, temp_level)
            else:
                self._levels[0] = temp_level
        else:
            self._levels[0].append_buffer(buffer)

        self._state[0].reccnt = self._levels[0].record_count
        self._state[0].shardcnt = self._levels[0].shard_count

    # ------------------------------------------------------------------
    # tombstone invariant and planning

    def validate_tombstone_proportion(self, level: int | None = None) -> bool:
        """Check that no level (or the given level) exceeds the tombstone proportion."""
        if level is None:
            return all(self._level_within_delete_bound(i) for i in range(len(self._levels)))
        return self._level_within_delete_bound(level)

    def _level_within_delete_bound(self, idx: int) -> bool:
        prop = self._levels[idx].tombstone_count / self._calc_level_record_capacity(idx)
        return prop <= self.max_delete_prop

    def get_compaction_tasks(self) -> ReconstructionVector:
        """Plan reconstructions that push tombstones down past the first violating level."""
        tasks = ReconstructionVector()
        scratch = self.state

        if self.validate_tombstone_proportion():
            return tasks

        violation_idx = next(
            i for i in range(len(self._levels)) if not self.validate_tombstone_proportion(i)
        )

        base_level = self._find_reconstruction_target(violation_idx, scratch)
        if base_level == -1:
            base_level = self._grow(scratch)

        for i in range(base_level, 0, -1):
            reccnt = self._levels[i - 1].record_count
            if self.layout is LayoutPolicy.LEVELING:
                if self._can_reconstruct_with(i, reccnt, scratch):
                    reccnt += self._level_record_count(i)
            tasks.add_reconstruction(i - 1, i, reccnt)

        return tasks

    def get_reconstruction_tasks(
        self, buffer_reccnt: int, scratch_state: Sequence[LevelState] | None = None
    ) -> ReconstructionVector:
        """Plan the reconstructions needed before a buffer of ``buffer_reccnt`` records can flush.

        ``scratch_state`` defaults to the current state; it is not modified.
        """
        if scratch_state:
            scratch = [replace(s) for s in scratch_state]
        else:
            scratch = self.state

        reconstructions = ReconstructionVector()
        if not self._can_reconstruct_with(0, buffer_reccnt, scratch):
            reconstructions = self.get_reconstruction_tasks_from_level(0, scratch)

        # Simulate the flush itself.
        scratch[0].reccnt += buffer_reccnt
        if self.layout is LayoutPolicy.TIERING or scratch[0].shardcnt == 0:
            scratch[0].shardcnt += 1

        return reconstructions

    def get_reconstruction_tasks_from_level(
        self, source_level: int, scratch_state: list[LevelState]
    ) -> ReconstructionVector:
        """Plan the reconstructions that free ``source_level``, updating ``scratch_state``."""
        reconstructions = ReconstructionVector()

        base_level = self._find_reconstruction_target(source_level, scratch_state)
        if base_level == -1:
            base_level = self._grow(scratch_state)

        if self.layout is LayoutPolicy.BSM:
            if base_level == 0:
                return reconstructions

            task = ReconstructionTask(target=base_level)
            base_reccnt = 0
            for i in range(base_level, source_level, -1):
                recon_reccnt = scratch_state[i - 1].reccnt
                base_reccnt += recon_reccnt
                scratch_state[i - 1].reccnt = 0
                scratch_state[i - 1].shardcnt = 0
                task.add_source(i - 1, recon_reccnt)

            reconstructions.add_task(task)
            scratch_state[base_level].reccnt = base_reccnt
            scratch_state[base_level].shardcnt = 1
            return reconstructions

        for i in range(base_level, source_level, -1):
            recon_reccnt = scratch_state[i - 1].reccnt
            base_reccnt = recon_reccnt

            if self.layout is LayoutPolicy.LEVELING:
                if self._can_reconstruct_with(i, base_reccnt, scratch_state):
                    recon_reccnt += scratch_state[i].reccnt
            reconstructions.add_reconstruction(i - 1, i, recon_reccnt)

            scratch_state[i - 1].reccnt = 0
            scratch_state[i - 1].shardcnt = 0

            scratch_state[i].reccnt += base_reccnt
            if self.layout is LayoutPolicy.TIERING or scratch_state[i].shardcnt == 0:
                scratch_state[i].shardcnt += 1

        return reconstructions

    # ------------------------------------------------------------------
    # reconstructions

    def reconstruct_task(self, task: ReconstructionTask) -> None:
        """Flatten every source level of ``task`` into one shard on its target (BSM only)."""
        if self.layout is not LayoutPolicy.BSM:
            raise ValueError("multi-source reconstruction requires the BSM layout")

        sources = [self._levels[s] for s in task.sources]
        new_level = InternalLevel.reconstruction_from_levels(sources, task.target)
        new_state = LevelState(
            new_level.record_count, self._calc_level_record_capacity(task.target), 1, 1
        )
        if task.target >= len(self._levels):
            self._state.append(new_state)
            self._levels.append(new_level)
        else:
            self._state[task.target] = new_state
            self._levels[task.target] = new_level

        for s in task.sources:
            self._levels[s] = InternalLevel(s, 1, self.shard_type)
            self._state[s] = LevelState(0, self._calc_level_record_capacity(task.target), 0, 1)

    def reconstruction(self, base_level: int, incoming_level: int) -> None:
        """Merge ``incoming_level`` into ``base_level`` and leave ``incoming_level`` empty.

        The two levels should be adjacent so that tombstone ordering holds.
        """
        shard_capacity = self._shard_capacity()

        if base_level >= len(self._levels):
            self._levels.append(InternalLevel(base_level, shard_capacity, self.shard_type))
            self._state.append(
                LevelState(0, self._calc_level_record_capacity(base_level), 0, shard_capacity)
            )

        if self.layout is LayoutPolicy.LEVELING:
            if self._levels[base_level].shard_count > 0:
                self._levels[base_level] = InternalLevel.reconstruction(
                    self._levels[base_level], self._levels[incoming_level]
                )
            else:
                moved = self._levels[incoming_level].clone()
                moved.level_no = base_level
                self._levels[base_level] = moved
        else:
            self._levels[base_level].append_level(self._levels[incoming_level])
            self._levels[base_level].finalize()

        self._levels[incoming_level] = InternalLevel(
            incoming_level, shard_capacity, self.shard_type
        )

        self._state[base_level] = LevelState(
            self._levels[base_level].record_count,
            self._calc_level_record_capacity(base_level),
            self._levels[base_level].shard_count,
            shard_capacity,
        )
        self._state[incoming_level] = LevelState(
            0, self._calc_level_record_capacity(incoming_level), 0, shard_capacity
        )

    # ------------------------------------------------------------------
    # queries

    def get_local_queries(self, query_type: Any, parms: Any) -> list[tuple[ShardID, Any, Any]]:
        """Preprocess ``parms`` for every shard, level by level."""
        return [
            entry
            for level in self._levels
            for entry in level.get_local_queries(query_type, parms)
        ]

    # ------------------------------------------------------------------
    # helpers

    def _shard_capacity(self) -> int:
        return 1 if self.layout is LayoutPolicy.LEVELING else self.scale_factor

    def _grow(self, scratch_state: list[LevelState]) -> int:
        """Add a level to ``scratch_state`` only; return its index."""
        new_idx = len(self._levels)
        scratch_state.append(
            LevelState(0, self._calc_level_record_capacity(new_idx), 0, self._shard_capacity())
        )
        return new_idx

    def _find_reconstruction_target(self, idx: int, state: list[LevelState]) -> int:
        if idx == 0 and not state:
            return -1
        incoming = state[idx].reccnt
        for i in range(idx + 1, len(state)):
            if self._can_reconstruct_with(i, incoming, state):
                return i
        return -1

    def _calc_level_record_capacity(self, idx: int) -> int:
        return int(self.buffer_size * self.scale_factor ** (idx + 1))

    def _level_record_count(self, idx: int) -> int:
        if 0 <= idx < len(self._levels):
            return self._levels[idx].record_count
        return 0

    def _can_reconstruct_with(self, idx: int, incoming: int, state: Sequence[LevelState]) -> bool:
        if idx >= len(state):
            return False
        if self.layout is LayoutPolicy.LEVELING:
            return state[idx].reccnt + incoming <= state[idx].reccap
        if self.layout is LayoutPolicy.BSM:
            return state[idx].reccnt == 0
        return state[idx].shardcnt < state[idx].shardcap