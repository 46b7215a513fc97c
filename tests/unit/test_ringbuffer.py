import numpy as np
import pytest

from raysplat.core.errors import BufferInvariantError, InvalidConfig
from raysplat.core.footprint import FootprintBatch, PointRecord
from raysplat.core.ringbuffer import PointRingBuffer


def _record(i: float) -> PointRecord:
    return PointRecord(position=[i, 0.0, 0.0], orientation=[0.0, 0.0, 0.0, 1.0], scale=[1.0, 0.5, 0.01])


def _batch(values) -> FootprintBatch:
    return FootprintBatch.from_records([_record(v) for v in values])


def _slot_ids(buf: PointRingBuffer) -> list:
    return [None if buf.record_at(s) is None else buf.record_at(s).position[0] for s in range(buf.capacity)]


def test_fifo_overwrite_layout() -> None:
    buf = PointRingBuffer(3)
    for i in range(1, 6):
        buf.ingest(_record(i))
    assert _slot_ids(buf) == [4.0, 5.0, 3.0]
    assert buf.active_count == 3
    assert buf.total_written == 5
    assert buf.cursor == 2


def test_partial_fill_reports_active_prefix() -> None:
    buf = PointRingBuffer(4)
    assert buf.ingest(_record(1)) == [(0, 1)]
    buf.ingest(_record(2))
    assert buf.active_count == 2
    assert _slot_ids(buf) == [1.0, 2.0, None, None]
    snap = buf.snapshot()
    np.testing.assert_allclose(snap.positions[:, 0], [1.0, 2.0])


def test_batch_ingest_matches_sequential_ingest() -> None:
    seq = PointRingBuffer(5)
    bat = PointRingBuffer(5)
    values = list(range(1, 13))
    for v in values:
        seq.ingest(_record(v))
    bat.ingest_batch(_batch(values[:3]))
    bat.ingest_batch(_batch(values[3:10]))
    bat.ingest_batch(_batch(values[10:]))
    assert _slot_ids(seq) == _slot_ids(bat)
    assert seq.cursor == bat.cursor
    assert seq.total_written == bat.total_written


def test_dirty_ranges_split_on_wrap() -> None:
    buf = PointRingBuffer(5)
    assert buf.ingest_batch(_batch([1, 2, 3])) == [(0, 3)]
    assert buf.ingest_batch(_batch([4, 5, 6, 7])) == [(3, 5), (0, 2)]
    assert buf.ingest_batch(_batch(range(8, 20))) == [(0, 5)]
    assert buf.ingest_batch(FootprintBatch.empty()) == []


def test_oversized_batch_keeps_most_recent_records() -> None:
    buf = PointRingBuffer(3)
    buf.ingest_batch(_batch([1, 2, 3, 4, 5]))
    assert _slot_ids(buf) == [4.0, 5.0, 3.0]


def test_invalid_capacity() -> None:
    with pytest.raises(InvalidConfig):
        PointRingBuffer(0)
    with pytest.raises(InvalidConfig):
        PointRingBuffer(2.5)


def test_corrupted_cursor_is_fatal() -> None:
    buf = PointRingBuffer(3)
    buf._cursor = 7
    with pytest.raises(BufferInvariantError):
        buf.ingest(_record(1))
    with pytest.raises(BufferInvariantError):
        buf.ingest_batch(_batch([1]))


def test_record_at_bounds() -> None:
    buf = PointRingBuffer(2)
    with pytest.raises(IndexError):
        buf.record_at(2)
    assert buf.record_at(1) is None


def test_instance_matrices_and_reset() -> None:
    buf = PointRingBuffer(4)
    buf.ingest_batch(_batch([1, 2, 3]))
    mats = buf.instance_matrices()
    assert mats.shape == (3, 4, 4)
    np.testing.assert_allclose(mats[:, :3, 3], [[1, 0, 0], [2, 0, 0], [3, 0, 0]])
    np.testing.assert_allclose(np.diagonal(mats[0, :3, :3]), [1.0, 0.5, 0.01])

    buf.reset()
    assert buf.active_count == 0
    assert buf.cursor == 0
    assert buf.record_at(0) is None
