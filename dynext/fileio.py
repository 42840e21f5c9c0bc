"""Readers for the query and data files used to drive the indexes."""

from __future__ import annotations

import random
import re
import struct
from dataclasses import dataclass
from os import PathLike
from typing import Any, BinaryIO, Iterator, Sequence, Union

from dynext.points import BTreeRecord, EuclidPoint

PathType = Union[str, PathLike]

_LOOKUP_TOLERANCE = 0.1
_RANGE_TOLERANCE = 0.00001
_DEFAULT_STRING_COUNT = 10_000_000

_HEADER = struct.Struct("<II")
_U64 = struct.Struct("<Q")

_FLOAT_PREFIX = re.compile(
    r"\s*[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class LookupQuery:
    """A point lookup for a single key."""

    key: Any


@dataclass(frozen=True)
class RangeQuery:
    """A query over the inclusive key range [lower_bound, upper_bound]."""

    lower_bound: int
    upper_bound: int


@dataclass(frozen=True)
class KNNQuery:
    """A query for the ``k`` records nearest to ``point``."""

    point: EuclidPoint
    k: int


def _atof(text: str) -> float:
    """Parse the longest leading float of ``text``; 0.0 if there is none."""
    match = _FLOAT_PREFIX.match(text)
    return float(match.group()) if match else 0.0


def _read_exact(file: BinaryIO, size: int) -> bytes:
    data = file.read(size)
    if len(data) != size:
        raise ValueError(f"unexpected end of file: wanted {size} bytes, got {len(data)}")
    return data


def _read_u64(file: BinaryIO) -> int:
    return _U64.unpack(_read_exact(file, _U64.size))[0]


def _read_header(file: BinaryIO) -> tuple[int, int]:
    """Return (count, dimensions) from a binary vector file header."""
    return _HEADER.unpack(_read_exact(file, _HEADER.size))


def _query_triples(path: PathType) -> Iterator[tuple[int, int, float]]:
    """Yield (start, stop, selectivity) triples from a whitespace-separated file."""
    with open(path, "r") as file:
        tokens = file.read().split()
    for i in range(0, len(tokens) - len(tokens) % 3, 3):
        start, stop, sel = tokens[i : i + 3]
        try:
            yield int(start), int(stop), float(sel)
        except ValueError as exc:
            raise ValueError(f"malformed query line in {path}: {start} {stop} {sel}") from exc


def read_lookup_queries(path: PathType, selectivity: float) -> list[LookupQuery]:
    """Read point lookups from a range-query file.

    Each (start, stop, selectivity) entry with start < stop whose selectivity
    lies within 0.1 of ``selectivity`` yields a lookup for ``start``.
    """
    return [
        LookupQuery(start)
        for start, stop, sel in _query_triples(path)
        if start < stop and abs(sel - selectivity) < _LOOKUP_TOLERANCE
    ]


def generate_string_lookup_queries(
    strings: Sequence[str], count: int, rng: random.Random
) -> list[LookupQuery]:
    """Draw ``count`` lookups for strings chosen uniformly at random."""
    if not strings:
        raise ValueError("cannot draw lookups from an empty string list")
    return [LookupQuery(strings[rng.randrange(len(strings))]) for _ in range(count)]


def read_range_queries(path: PathType, selectivity: float) -> list[RangeQuery]:
    """Read range queries whose selectivity matches ``selectivity`` to within 1e-5."""
    return [
        RangeQuery(start, stop)
        for start, stop, sel in _query_triples(path)
        if start < stop and abs(sel - selectivity) < _RANGE_TOLERANCE
    ]


def read_binary_knn_queries(path: PathType, k: int, n: int) -> list[KNNQuery]:
    """Read up to ``n`` query points from a binary vector file.

    The file starts with two little-endian uint32 values, the point count and
    the dimension, followed by the points as little-endian uint64 coordinates.
    """
    with open(path, "rb") as file:
        cnt, dim = _read_header(file)
        n = min(n, cnt)
        return [
            KNNQuery(EuclidPoint(tuple(_read_u64(file) for _ in range(dim))), k)
            for _ in range(n)
        ]


def read_knn_queries(path: PathType, k: int) -> list[KNNQuery]:
    """Read one query point per line, coordinates separated by spaces."""
    queries = []
    with open(path, "r") as file:
        for line in file:
            tokens = [t for t in line.rstrip("\r\n").split(" ") if t]
            if not tokens:
                continue
            queries.append(KNNQuery(EuclidPoint(tuple(_atof(t) for t in tokens)), k))
    return queries


def _read_keys(path: PathType, n: int) -> Iterator[int]:
    with open(path, "rb") as file:
        for _ in range(n):
            yield _read_u64(file)


def read_sosd_file(path: PathType, n: int) -> list[BTreeRecord]:
    """Read ``n`` uint64 keys; each record's value is its position in the file."""
    return [BTreeRecord(key, i) for i, key in enumerate(_read_keys(path, n))]


def read_sosd_file_pairs(path: PathType, n: int) -> list[tuple[int, int]]:
    """Read ``n`` uint64 keys as (key, position) pairs."""
    return [(key, i) for i, key in enumerate(_read_keys(path, n))]


def read_vector_file(path: PathType, n: int, dimensions: int) -> list[EuclidPoint]:
    """Read up to ``n`` points of ``dimensions`` coordinates, one per line.

    Coordinates are separated by single spaces; extra coordinates are ignored
    and missing ones are zero.
    """
    records = []
    with open(path, "r") as file:
        for line in file:
            if len(records) >= n:
                break
            fields = line.rstrip("\n").split(" ")[:dimensions]
            coords = [_atof(f) for f in fields]
            coords.extend([0.0] * (dimensions - len(coords)))
            records.append(EuclidPoint(tuple(coords)))
    return records


def read_binary_vector_file(path: PathType, n: int) -> list[EuclidPoint]:
    """Read up to ``n`` points from a binary vector file (see read_binary_knn_queries)."""
    with open(path, "rb") as file:
        cnt, dim = _read_header(file)
        n = min(n, cnt)
        return [EuclidPoint(tuple(_read_u64(file) for _ in range(dim))) for _ in range(n)]


def read_string_file(path: PathType, n: int = _DEFAULT_STRING_COUNT) -> list[str]:
    """Read up to ``n`` lines, without their line endings."""
    strings = []
    with open(path, "r") as file:
        for line in file:
            if len(strings) >= n:
                break
            strings.append(line.rstrip("\n"))
    return strings