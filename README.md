# dynext

`dynext` provides the pieces needed to make a static, build-once index
accept inserts and deletes. Records first go into a bounded mutable buffer.
The buffer's contents are turned into immutable shards, which are kept in
levels and rebuilt as the levels fill, under a tiering, leveling or
Bentley–Saxe (`BSM`) layout policy. Deletes are either tombstones, which
cancel against the records they match when shards are merged, or tags set on
the stored record.

The package is pure Python and has no runtime dependencies.

## Installation

```
pip install .
pip install ".[test]"   # with pytest
```

## Modules

- `dynext.buffer`
  - `Wrapped` holds a record and a header of tombstone, delete and visible
    flags plus a timestamp. Wrapped records sort by record, and a record
    sorts just before its own tombstone.
  - `MutableBuffer(low_watermark, high_watermark, capacity=0)` is a ring of
    wrapped records. The capacity defaults to twice the high watermark.
    `append(rec, tombstone)` returns `False` once the high watermark is
    reached. The buffer also offers `truncate`, `is_full`,
    `is_at_low_watermark`, `delete_record`, `check_tombstone`,
    `advance_head` and `available_capacity`. Tombstones are also recorded in
    a Bloom filter.
  - `get_buffer_view(target_head)` returns a `BufferView`: a window from a
    head to the current tail that holds a reference on that head. Pass `None`
    for the current head. Release it with `release()` or use it as a context
    manager. `advance_head` refuses to move while the previous head is still
    referenced.
- `dynext.bloom`: `BloomFilter(capacity, fpr=None, hash_funcs=None)` with
  `insert`, `lookup`, `clear` and `in`. `set_bf_fpr` and `set_bf_hash_funcs`
  change the defaults used by filters created afterwards.
- `dynext.cursor`: `Cursor` walks a sorted list of wrapped records
  (`advance`, `current`, `exhausted`). `get_next(cursors, current)` finds the
  cursor with the smallest head record.
- `dynext.merge`
  - `sorted_array_from_bufferview(view, bloom)` sorts a view's records. A
    record directly followed by its tombstone is dropped together with that
    tombstone, and tagged-deleted records are dropped too.
  - `sorted_array_merge(cursors, bloom)` merges several sorted runs with the
    same cancellation rules.
  - `build_cursor_vec(shards)` makes one cursor per shard.
  - Each of these reports its counts in a `MergeInfo`.
- `dynext.level`: `InternalLevel` holds a fixed number of shard slots. It can
  append a shard built from a buffer or from another level, hold a pending
  shard until `finalize()`, merge levels (`reconstruction`,
  `reconstruction_from_levels`), tag deletes, look for tombstones and clone
  itself.
- `dynext.structure`: `ExtensionStructure(buffer_size, scale_factor,
  max_delete_prop, shard_type, layout=LayoutPolicy.TIERING)`.
  - Level `i` may hold `buffer_size * scale_factor ** (i + 1)` records.
  - `flush_buffer` places a buffer view in level 0. It raises `ValueError` if
    level 0 has no room.
  - `get_reconstruction_tasks` and `get_compaction_tasks` plan work as a
    `ReconstructionVector` of `ReconstructionTask`s (see `dynext.types`).
    They work on a copy of the per-level `LevelState` list.
  - `reconstruction(base_level, incoming_level)` and, for the BSM layout,
    `reconstruct_task(task)` carry out that work.
  - `copy()` returns a structure that shares the shards but has its own
    levels. `take_reference` and `release_reference` count users of a
    structure.
- `dynext.types`: `ShardID`, `ReconstructionTask` and
  `ReconstructionVector`.
- `dynext.bsm_triespline`: `BSMTrieSpline` is a key-sorted array of
  `(key, value)` records. `query(RangeQueryParameters(lo, hi))` returns
  `[(count, 0)]`, and `query_merge` adds such counts together.
- `dynext.bsm_vptree`: `BSMVPTree` is a vantage-point tree over records that
  have `calc_distance`. `query(KNNQueryParms(point, k))` returns the `k`
  nearest records, farthest first. `query_merge` keeps the `k` nearest of
  two result lists.
- `dynext.points`: `EuclidPoint`, `euclidean_distance` and `BTreeRecord`.
- `dynext.fileio` has readers for:
  - range and lookup query files (`read_range_queries`,
    `read_lookup_queries`);
  - kNN query files, text (`read_knn_queries`) and binary
    (`read_binary_knn_queries`);
  - SOSD uint64 key files (`read_sosd_file`, `read_sosd_file_pairs`);
  - vector files, text (`read_vector_file`) and binary
    (`read_binary_vector_file`);
  - line-per-string files (`read_string_file`).

  `generate_string_lookup_queries` draws random lookups from a list of
  strings.

## Shard types

`InternalLevel` and `ExtensionStructure` do not build shards themselves. You
pass a `shard_type` callable that accepts either a `BufferView` or a list of
existing shards (entries may be `None`) and returns a new shard. A shard must
provide:

- `record_count`, `tombstone_count`, `memory_usage` and `aux_memory_usage`;
- `point_lookup(rec, filter=False)`, which returns the stored `Wrapped` record
  or `None`.

Code that builds a shard can use `dynext.merge` to get a sorted,
tombstone-cancelled list of records.

## Examples

```python
from dynext.buffer import MutableBuffer

buffer = MutableBuffer(512, 1024)
for key in range(100):
    buffer.append((key, key), False)
buffer.append((7, 7), True)

with buffer.get_buffer_view(None) as view:
    print(len(view), view.check_tombstone((7, 7)))   # 101 True
```

```python
from dynext.bsm_triespline import BSMTrieSpline, RangeQueryParameters

index = BSMTrieSpline.build([(k, k) for k in range(100)])
print(index.query(RangeQueryParameters(10, 19)))   # [(10, 0)]
```

## What the package does not do

- It has no single front-end object that inserts into a buffer, schedules
  flushes and reconstructions, and answers queries across the buffer and all
  levels. The caller puts `MutableBuffer`, `ExtensionStructure` and its own
  shard type together and runs the planned `ReconstructionTask`s.
- Apart from the two BSM shards, it includes no shard types and no query
  implementations for use with `ExtensionStructure`.
- Everything is kept in memory. Nothing is written to disk, and there is no
  command-line program.

## Running the tests

```
pytest
```