"""Shared identifiers and reconstruction bookkeeping types."""

from __future__ import annotations

from dataclasses import dataclass, field

TIMESTAMP_MIN = 0
TIMESTAMP_MAX = 2**32 - 1

INVALID_PNUM = 0
INVALID_FRID = -1


@dataclass(frozen=True)
class ShardID:
    """Location of a shard: its level index and its index within the level."""

    level_idx: int
    shard_idx: int


# Also used to denote the mutable buffer.
INVALID_SHID = ShardID(-1, -1)


@dataclass
class ReconstructionTask:
    """A reconstruction merging one or more source levels into a target."""

    sources: list[int] = field(default_factory=list)
    target: int = 0
    reccnt: int = 0

    def add_source(self, source: int, count: int) -> None:
        """Add a source level contributing ``count`` records."""
        self.sources.append(source)
        self.reccnt += count


class ReconstructionVector:
    """An ordered collection of reconstruction tasks with a running record total."""

    def __init__(self) -> None:
        self._tasks: list[ReconstructionTask] = []
        self.total_reccnt = 0

    def __getitem__(self, idx: int) -> ReconstructionTask:
        task = self._tasks[idx]
        return ReconstructionTask(list(task.sources), task.target, task.reccnt)

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self):
        return (self[i] for i in range(len(self._tasks)))

    def add_reconstruction(self, source: int, target: int, reccnt: int) -> None:
        """Append a single-source task and add its records to the total."""
        self._tasks.append(ReconstructionTask([source], target, reccnt))
        self.total_reccnt += reccnt

    def add_task(self, task: ReconstructionTask) -> None:
        """Append a prepared task without adding to the running total."""
        self._tasks.append(task)

    def remove_reconstruction(self, idx: int) -> ReconstructionTask:
        """Remove and return the task at ``idx``."""
        if not 0 <= idx < len(self._tasks):
            raise IndexError(f"no reconstruction at index {idx}")
        task = self._tasks.pop(idx)
        self.total_reccnt -= task.reccnt
        return task

    def remove_smallest_reconstruction(self) -> ReconstructionTask:
        """Remove and return the first task with the fewest records."""
        if not self._tasks:
            raise IndexError("no reconstructions to remove")
        idx = min(range(len(self._tasks)), key=lambda i: self._tasks[i].reccnt)
        return self.remove_reconstruction(idx)