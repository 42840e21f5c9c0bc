import pytest

from dynext.buffer import BufferView, MutableBuffer, Wrapped


def test_wrapped_flags_and_timestamp():
    w = Wrapped((1, 2))
    assert not w.is_tombstone() and not w.is_deleted() and not w.is_visible()
    w.set_tombstone()
    w.set_timestamp(42)
    w.set_delete()
    w.set_visible()
    assert w.is_tombstone() and w.is_deleted() and w.is_visible()
    assert w.timestamp == 42
    w.set_timestamp(7)
    assert w.timestamp == 7
    assert w.is_tombstone()


def test_wrapped_record_sorts_before_its_tombstone():
    ts = Wrapped((5, 5))
    ts.set_tombstone()
    rec = Wrapped((5, 5))
    other = Wrapped((3, 3))
    ordered = sorted([ts, rec, other])
    assert [w.rec for w in ordered] == [(3, 3), (5, 5), (5, 5)]
    assert ordered[1].is_tombstone() is False
    assert ordered[2].is_tombstone() is True


def test_default_capacity_is_twice_high_watermark():
    buf = MutableBuffer(10, 20)
    assert buf.capacity == 40


@pytest.mark.parametrize("lwm,hwm,cap", [(10, 20, 20), (30, 20, 0), (1, 5, 3)])
def test_invalid_configuration(lwm, hwm, cap):
    with pytest.raises(ValueError):
        MutableBuffer(lwm, hwm, cap)


def test_append_until_high_watermark():
    buf = MutableBuffer(50, 100)
    for i in range(100):
        assert buf.append((i, i))
    assert buf.is_full()
    assert not buf.append((100, 100))
    assert buf.record_count == 100


def test_low_watermark():
    buf = MutableBuffer(3, 6)
    for i in range(2):
        buf.append((i, i))
    assert not buf.is_at_low_watermark()
    buf.append((2, 2))
    assert buf.is_at_low_watermark()


def test_view_records_in_insertion_order():
    buf = MutableBuffer(5, 10)
    recs = [(i, i * 10) for i in range(8)]
    for r in recs:
        buf.append(r)
    with buf.get_buffer_view() as view:
        assert len(view) == len(recs)
        assert [w.rec for w in view.records()] == recs
        assert all(w.is_visible() for w in view.records())
        assert view.get(3).rec == recs[3]


def test_view_get_out_of_range():
    buf = MutableBuffer(2, 4)
    buf.append((1, 1))
    with buf.get_buffer_view() as view:
        with pytest.raises(IndexError):
            view.get(1)


def test_records_are_copies():
    buf = MutableBuffer(2, 4)
    buf.append((1, 1))
    with buf.get_buffer_view() as view:
        copy = view.records()[0]
        copy.set_delete()
        assert not view.get(0).is_deleted()


def test_tombstones():
    buf = MutableBuffer(5, 10)
    buf.append((1, 1))
    buf.append((2, 2), tombstone=True)
    assert buf.tombstone_count == 1
    assert buf.check_tombstone((2, 2))
    assert not buf.check_tombstone((1, 1))
    assert not buf.check_tombstone((9, 9))


def test_delete_record_tags_first_match():
    buf = MutableBuffer(5, 10)
    buf.append((1, 1))
    buf.append((2, 2))
    assert buf.delete_record((2, 2))
    assert not buf.delete_record((3, 3))
    with buf.get_buffer_view() as view:
        assert [w.is_deleted() for w in view] == [False, True]


def test_truncate_resets():
    buf = MutableBuffer(5, 10)
    buf.append((1, 1), tombstone=True)
    buf.append((2, 2))
    assert buf.truncate()
    assert buf.record_count == 0
    assert buf.tombstone_count == 0
    assert not buf.check_tombstone((1, 1))


def test_advance_head_refused_while_old_head_referenced():
    buf = MutableBuffer(2, 4)
    for i in range(4):
        buf.append((i, i))
    view = buf.get_buffer_view()
    assert buf.advance_head(2)
    assert buf.record_count == 2
    assert not buf.advance_head(3)
    view.release()
    view.release()
    assert buf.advance_head(3)


def test_view_on_old_head_after_advance():
    buf = MutableBuffer(2, 4)
    for i in range(4):
        buf.append((i, i))
    assert buf.advance_head(2)
    with buf.get_buffer_view(0) as view:
        assert [w.rec for w in view] == [(i, i) for i in range(4)]
        assert not buf.advance_head(3)
    assert buf.advance_head(3)


def test_unknown_head_rejected():
    buf = MutableBuffer(2, 4)
    buf.append((0, 0))
    with pytest.raises(ValueError):
        buf.get_buffer_view(3)


def test_advance_head_bounds():
    buf = MutableBuffer(2, 4)
    buf.append((0, 0))
    with pytest.raises(ValueError):
        buf.advance_head(0)
    with pytest.raises(ValueError):
        buf.advance_head(2)


def test_view_wraps_around_ring():
    buf = MutableBuffer(2, 4, capacity=5)
    for i in range(4):
        buf.append((i, i))
    assert buf.advance_head(4)
    later = [(i, i) for i in range(4, 8)]
    for r in later:
        assert buf.append(r)
    with buf.get_buffer_view() as view:
        assert view.head == 4
        assert [w.rec for w in view] == later
        assert view.delete_record((5, 5))
        assert view.get(1).is_deleted()


def test_available_capacity():
    buf = MutableBuffer(2, 4)
    for i in range(3):
        buf.append((i, i))
    assert buf.available_capacity() == buf.capacity - 3
    view = buf.get_buffer_view()
    buf.advance_head(2)
    assert buf.available_capacity() == buf.capacity - 3
    view.release()
    assert buf.available_capacity() == buf.capacity - 1


def test_watermark_setters_validate():
    buf = MutableBuffer(2, 4)
    buf.low_watermark = 3
    assert buf.low_watermark == 3
    with pytest.raises(ValueError):
        buf.low_watermark = 4
    with pytest.raises(ValueError):
        buf.high_watermark = buf.capacity
    buf.high_watermark = 6
    assert buf.high_watermark == 6


def test_standalone_view_calls_release_once():
    calls = []
    data = [Wrapped((i, i)) for i in range(4)]
    view = BufferView(data, 4, 1, 3, 0, None, lambda: calls.append(1))
    assert [w.rec for w in view] == [(1, 1), (2, 2)]
    with view:
        pass
    view.release()
    assert calls == [1]