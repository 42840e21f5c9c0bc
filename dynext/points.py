"""Point and key-value record types used by the metric and ordered indexes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

W2V_SIZE = 300
ANN_SIZE = 128


@dataclass(frozen=True, order=True)
class EuclidPoint:
    """A point in Euclidean space; ordered lexicographically by its coordinates."""

    data: tuple

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", tuple(self.data))

    @classmethod
    def of(cls, coords: Sequence[float]) -> "EuclidPoint":
        """Build a point from any sequence of coordinates."""
        return cls(tuple(coords))

    @property
    def dimensions(self) -> int:
        return len(self.data)

    def calc_distance(self, other: "EuclidPoint") -> float:
        """Return the Euclidean distance to ``other``."""
        return euclidean_distance(self, other)


def euclidean_distance(first: EuclidPoint, second: EuclidPoint) -> float:
    """Return the Euclidean distance between two points of equal dimension."""
    if len(first.data) != len(second.data):
        raise ValueError(
            f"dimension mismatch: {len(first.data)} and {len(second.data)}"
        )
    return math.dist([float(x) for x in first.data], [float(x) for x in second.data])


@dataclass(frozen=True, order=True)
class BTreeRecord:
    """A key-value record ordered by key, then by value."""

    key: int
    value: int