import math

import pytest

from dynext.buffer import BufferView, MutableBuffer
from dynext.level import InternalLevel
from dynext.merge import build_cursor_vec, sorted_array_from_bufferview, sorted_array_merge
from dynext.types import ShardID


class _ArrayShard:
    def __init__(self, source):
        if isinstance(source, BufferView):
            self.data, info = sorted_array_from_bufferview(source)
        else:
            cursors, _, _ = build_cursor_vec(source)
            self.data, info = sorted_array_merge(cursors)
        self.record_count = info.record_count
        self.tombstone_count = info.tombstone_count

    @property
    def memory_usage(self):
        return 16 * self.record_count

    @property
    def aux_memory_usage(self):
        return self.tombstone_count

    def point_lookup(self, rec, filter=False):
        for w in self.data:
            if w.rec == rec:
                return w
        return None


class _Query:
    @staticmethod
    def local_preproc(shard, parms):
        return (parms, shard.record_count)


def _buffer(keys, tombstone=False):
    buffer = MutableBuffer(1, max(2, len(keys) + 1))
    for k in keys:
        buffer.append((k, k), tombstone)
    return buffer


def _append(level, keys, tombstone=False):
    with _buffer(keys, tombstone).get_buffer_view() as view:
        level.append_buffer(view)


def _level(level_no, cap, *key_groups):
    level = InternalLevel(level_no, cap, _ArrayShard)
    for keys in key_groups:
        _append(level, keys)
    return level


def test_append_buffer_adds_shards():
    level = _level(0, 3, range(5), range(10, 14))
    assert level.shard_count == 2
    assert level.record_count == 9
    assert level.get_shard(0).record_count == 5


def test_get_shard_out_of_range():
    level = _level(0, 3, range(5))
    assert level.get_shard(1) is None


def test_append_buffer_when_full_goes_pending_then_finalizes():
    level = _level(0, 2, range(3), range(3, 6))
    _append(level, range(100, 104))
    assert level.shard_count == 2
    level.finalize()
    assert level.shard_count == 1
    assert level.record_count == 4
    assert level.get_shard(1) is None


def test_second_pending_buffer_raises():
    level = _level(0, 1, range(3))
    _append(level, range(3, 6))
    with pytest.raises(RuntimeError):
        _append(level, range(6, 9))


def test_append_level_merges_incoming_shards():
    incoming = _level(0, 3, range(4), range(4, 7))
    base = _level(1, 3, range(20, 22))
    base.append_level(incoming)
    assert base.shard_count == 2
    assert base.get_shard(1).record_count == incoming.record_count
    assert incoming.shard_count == 2


def test_append_empty_level_changes_nothing():
    base = _level(1, 3, range(20, 22))
    base.append_level(InternalLevel(0, 3, _ArrayShard))
    assert base.shard_count == 1


def test_append_level_when_full_then_finalize():
    incoming = _level(0, 2, range(3))
    base = _level(1, 2, range(10, 12), range(12, 14))
    base.append_level(incoming)
    assert base.shard_count == 2
    base.finalize()
    assert base.shard_count == 1
    assert base.record_count == incoming.record_count


def test_reconstruction_merges_first_shards():
    base = _level(1, 1, range(10))
    new = _level(0, 1, range(10, 15))
    res = InternalLevel.reconstruction(base, new)
    assert res.level_no == base.level_no
    assert res.shard_count == 1
    assert res.record_count == base.record_count + new.record_count
    keys = [w.rec for w in res.get_shard(0).data]
    assert keys == sorted(keys)


def test_reconstruction_rejects_inverted_levels():
    base = _level(0, 1, range(3))
    new = _level(2, 1, range(3))
    with pytest.raises(ValueError):
        InternalLevel.reconstruction(base, new)


def test_reconstruction_from_levels():
    levels = [_level(0, 2, range(3), range(3, 5)), _level(1, 2, range(10, 14))]
    res = InternalLevel.reconstruction_from_levels(levels, 2)
    assert res.level_no == 2
    assert res.shard_count == 1
    assert res.record_count == sum(lv.record_count for lv in levels)


def test_reconstruction_from_no_levels_raises():
    with pytest.raises(ValueError):
        InternalLevel.reconstruction_from_levels([], 0)


def test_combined_shard():
    assert InternalLevel(0, 2, _ArrayShard).get_combined_shard() is None
    level = _level(0, 2, range(4), range(4, 9))
    combined = level.get_combined_shard()
    assert combined.record_count == level.record_count
    assert level.shard_count == 2


def test_delete_record_tags_match():
    level = _level(0, 2, range(5))
    assert level.delete_record((3, 3))
    assert level.get_shard(0).point_lookup((3, 3)).is_deleted()
    assert not level.delete_record((99, 99))


def test_check_tombstone_respects_shard_stop():
    level = InternalLevel(0, 2, _ArrayShard)
    _append(level, [7], tombstone=True)
    _append(level, range(3))
    assert level.check_tombstone(0, (7, 7))
    assert not level.check_tombstone(1, (7, 7))
    assert not level.check_tombstone(0, (1, 1))


def test_local_queries():
    level = _level(4, 3, range(2), range(2, 7))
    queries = level.get_local_queries(_Query, "parms")
    assert [q[0] for q in queries] == [ShardID(4, 0), ShardID(4, 1)]
    assert queries[1][1] is level.get_shard(1)
    assert queries[1][2] == ("parms", level.get_shard(1).record_count)


def test_clone_shares_shards_but_not_slots():
    level = _level(0, 3, range(3))
    copy = level.clone()
    assert copy.get_shard(0) is level.get_shard(0)
    _append(copy, range(3, 6))
    assert copy.shard_count == 2
    assert level.shard_count == 1


def test_counts_and_memory_sum_over_shards():
    level = InternalLevel(0, 3, _ArrayShard)
    _append(level, range(4))
    _append(level, [20, 21], tombstone=True)
    shards = [level.get_shard(0), level.get_shard(1)]
    assert level.tombstone_count == sum(s.tombstone_count for s in shards)
    assert level.memory_usage == sum(s.memory_usage for s in shards)
    assert level.aux_memory_usage == sum(s.aux_memory_usage for s in shards)


def test_tombstone_prop():
    assert math.isnan(InternalLevel(0, 1, _ArrayShard).tombstone_prop)
    assert _level(0, 1, range(5)).tombstone_prop == 0.0