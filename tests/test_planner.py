from pathlib import Path

import pytest

from bunkr_transfer.planner import chunk_count, make_unit, plan_chunks, plan_transfer
from bunkr_transfer.types import TransferUnit

MB = 1024 * 1024


def unit(size: int) -> TransferUnit:
    return TransferUnit(path=Path("/data/file.bin"), size=size)


@pytest.mark.parametrize(
    "size,chunk",
    [(1, 1), (10, 3), (11, 5), (12 * MB, 5 * MB), (100, 7), (99, 33), (1000, 999)],
)
def test_chunk_partition_invariants(size, chunk):
    chunks = plan_chunks(unit(size), chunk)

    assert len(chunks) == chunk_count(size, chunk) == -(-size // chunk)
    assert sum(c.length for c in chunks) == size
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert all(c.length == chunk for c in chunks[:-1])
    assert 0 < chunks[-1].length <= chunk
    assert [c.offset for c in chunks] == [i * chunk for i in range(len(chunks))]
    assert len({c.batch_id for c in chunks}) == 1


def test_size_equal_to_chunk_size_is_single_shot():
    plan = plan_transfer(unit(5 * MB), 5 * MB)
    assert plan.single_shot
    assert plan.batch_id is None


def test_one_byte_over_chunk_size_is_chunked():
    plan = plan_transfer(unit(5 * MB + 1), 5 * MB)
    assert not plan.single_shot
    assert [c.length for c in plan.chunks] == [5 * MB, 1]


def test_twelve_megabytes_in_five_megabyte_chunks():
    plan = plan_transfer(unit(12 * MB), 5 * MB)
    assert [c.length for c in plan.chunks] == [5 * MB, 5 * MB, 2 * MB]
    assert plan.batch_id == plan.chunks[0].batch_id


def test_each_file_gets_a_fresh_batch_id():
    first = plan_transfer(unit(20), 5)
    second = plan_transfer(unit(20), 5)
    assert first.batch_id != second.batch_id


def test_empty_file_is_single_shot():
    assert plan_transfer(unit(0), 5).single_shot


def test_non_positive_chunk_size_rejected():
    with pytest.raises(ValueError):
        chunk_count(10, 0)


def test_make_unit_reads_size(tmp_path):
    path = tmp_path / "a.bin"
    path.write_bytes(b"12345")
    assert make_unit(path) == TransferUnit(path=path, size=5)
