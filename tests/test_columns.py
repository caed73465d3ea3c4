import pytest

from shardkeep.columns import (
    Column,
    Database,
    WriteBatch,
    archive_data_merge,
    cell_merge,
)


def test_archive_merge_adds_prefix_to_new_value():
    prefix = b"PK"
    data = b"segment"
    assert archive_data_merge(None, [data], prefix) == prefix + data


def test_archive_merge_strips_operand_prefixes():
    prefix = b"PK"
    current = prefix + b"first"
    second = b"second"
    third = b"third"
    result = archive_data_merge(current, [prefix + second, third], prefix)
    assert result == current + second + third


def test_cell_merge_without_current_value():
    assert cell_merge(None, [b"\x01"]) is None


def test_cell_merge_replaces_marker_with_last_operand():
    current = b"\x01body"
    last = b"\x09rest"
    assert cell_merge(current, [b"\x05", last]) == last[:1] + current[1:]


def test_cell_merge_empty_last_operand_keeps_value():
    current = b"\x01body"
    assert cell_merge(current, [b"\x05", b""]) == current


def test_put_get_delete():
    db = Database()
    db.put(Column.NODE_STATES, "db_version", b"\x02\x00\x08")
    assert db.get(Column.NODE_STATES, b"db_version") == b"\x02\x00\x08"
    assert db.get(Column.KEY_BLOCKS, b"db_version") is None
    db.delete(Column.NODE_STATES, "db_version")
    assert db.get(Column.NODE_STATES, "db_version") is None


def test_column_name_accepted():
    db = Database()
    db.put("prev1", b"k", b"v")
    assert db.get(Column.PREV1, b"k") == b"v"
    with pytest.raises(ValueError):
        db.get("no_such_column", b"k")


def test_iterate_ordering():
    db = Database()
    keys = [(n).to_bytes(4, "big") for n in (5, 1, 300, 20)]
    for key in keys:
        db.put(Column.KEY_BLOCKS, key, key)
    forward = [key for key, _ in db.iterate(Column.KEY_BLOCKS)]
    assert forward == sorted(keys)
    backward = [key for key, _ in db.iterate(Column.KEY_BLOCKS, reverse=True)]
    assert backward == sorted(keys, reverse=True)


def test_iterate_with_start():
    db = Database()
    keys = [(n).to_bytes(4, "big") for n in (1, 5, 20, 300)]
    for key in keys:
        db.put(Column.KEY_BLOCKS, key, b"")
    start = (6).to_bytes(4, "big")
    assert [k for k, _ in db.iterate(Column.KEY_BLOCKS, start)] == keys[2:]
    assert [k for k, _ in db.iterate(Column.KEY_BLOCKS, start, reverse=True)] == keys[1::-1]


def test_iterate_is_a_snapshot():
    db = Database()
    db.put(Column.ARCHIVES, b"a", b"1")
    db.put(Column.ARCHIVES, b"b", b"2")
    items = db.iterate(Column.ARCHIVES)
    db.delete(Column.ARCHIVES, b"b")
    assert list(items) == [(b"a", b"1"), (b"b", b"2")]


def test_seek_for_prev_and_last():
    db = Database()
    assert db.is_empty(Column.KEY_BLOCKS)
    assert db.last(Column.KEY_BLOCKS) is None
    db.put(Column.KEY_BLOCKS, b"\x00\x00\x00\x0a", b"ten")
    db.put(Column.KEY_BLOCKS, b"\x00\x00\x00\x14", b"twenty")
    assert not db.is_empty(Column.KEY_BLOCKS)
    assert db.seek_for_prev(Column.KEY_BLOCKS, b"\x00\x00\x00\x13") == (
        b"\x00\x00\x00\x0a",
        b"ten",
    )
    assert db.seek_for_prev(Column.KEY_BLOCKS, b"\x00\x00\x00\x01") is None
    assert db.last(Column.KEY_BLOCKS) == (b"\x00\x00\x00\x14", b"twenty")


def test_archive_column_merge():
    prefix = b"PK"
    db = Database(archive_prefix=prefix)
    db.merge(Column.ARCHIVES, b"id", prefix + b"one")
    db.merge(Column.ARCHIVES, b"id", prefix + b"two")
    assert db.get(Column.ARCHIVES, b"id") == prefix + b"one" + b"two"


def test_merge_without_operator_fails():
    db = Database()
    with pytest.raises(ValueError):
        db.merge(Column.BLOCK_HANDLES, b"k", b"v")
    assert db.get(Column.BLOCK_HANDLES, b"k") is None


def test_batch_applies_in_order():
    db = Database()
    batch = WriteBatch()
    batch.put(Column.CELLS, b"c", b"\x01data")
    batch.merge(Column.CELLS, b"c", b"\x02")
    batch.put(Column.PREV2, b"x", b"1")
    batch.delete(Column.PREV2, b"x")
    assert len(batch) == 4
    db.write(batch)
    assert db.get(Column.CELLS, b"c") == b"\x02data"
    assert db.get(Column.PREV2, b"x") is None


def test_failed_batch_applies_nothing():
    db = Database()
    batch = WriteBatch()
    batch.put(Column.NEXT1, b"k", b"v")
    batch.merge(Column.CELLS, b"missing", b"\x01")
    with pytest.raises(ValueError):
        db.write(batch)
    assert db.get(Column.NEXT1, b"k") is None
    assert db.is_empty(Column.CELLS)