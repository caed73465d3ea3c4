import pytest

from shardkeep.block_connection_storage import (
    BlockConnection,
    BlockConnectionStorage,
    BlockConnectionStorageError,
)
from shardkeep.block_handle import BlockHandle
from shardkeep.block_id import BlockIdExt, ShardIdent
from shardkeep.block_meta import BlockMeta, BlockMetaData
from shardkeep.columns import Column, Database


def mc_id(seq_no, tag=1):
    return BlockIdExt(ShardIdent.masterchain(), seq_no, bytes([tag]) * 32, bytes([tag + 100]) * 32)


def shard_id(seq_no, tag=2):
    return BlockIdExt(ShardIdent(0, 1 << 63), seq_no, bytes([tag]) * 32, bytes([tag + 100]) * 32)


def make_handle(block_id, is_key_block=False):
    return BlockHandle(block_id, BlockMeta.with_data(BlockMetaData(is_key_block, 100)))


@pytest.fixture
def db():
    return Database()


@pytest.fixture
def storage(db):
    return BlockConnectionStorage(db)


@pytest.mark.parametrize("direction", list(BlockConnection))
def test_store_and_load(storage, direction):
    handle = make_handle(shard_id(5))
    connected = shard_id(4, 7)
    storage.store_connection(handle, direction, connected)
    assert storage.load_connection(handle.id, direction) == connected


def test_directions_are_independent(storage):
    handle = make_handle(shard_id(5))
    storage.store_connection(handle, BlockConnection.PREV1, shard_id(4, 7))
    with pytest.raises(BlockConnectionStorageError, match="Block connection not found"):
        storage.load_connection(handle.id, BlockConnection.NEXT1)


def test_stored_as_little_endian(storage, db):
    handle = make_handle(shard_id(5))
    connected = shard_id(6, 8)
    storage.store_connection(handle, BlockConnection.NEXT2, connected)
    assert db.get(Column.NEXT2, handle.id.root_hash) == connected.to_bytes_le()


def test_second_store_is_ignored(storage):
    handle = make_handle(shard_id(5))
    first = shard_id(4, 7)
    storage.store_connection(handle, BlockConnection.PREV1, first)
    storage.store_connection(handle, BlockConnection.PREV1, shard_id(3, 9))
    assert storage.load_connection(handle.id, BlockConnection.PREV1) == first


def test_meta_flag_updated_and_saved(storage, db):
    handle = make_handle(shard_id(5))
    storage.store_connection(handle, BlockConnection.PREV2, shard_id(4, 7))
    assert handle.meta.has_prev2()
    stored = BlockMeta.from_bytes(db.get(Column.BLOCK_HANDLES, handle.id.root_hash))
    assert stored.has_prev2()
    assert not stored.has_prev1()
    assert db.is_empty(Column.KEY_BLOCKS)


def test_key_block_indexed(storage, db):
    handle = make_handle(mc_id(10), is_key_block=True)
    storage.store_connection(handle, BlockConnection.NEXT1, mc_id(11, 3))
    assert db.get(Column.KEY_BLOCKS, (10).to_bytes(4, "big")) == handle.id.to_bytes()
    stored = BlockMeta.from_bytes(db.get(Column.BLOCK_HANDLES, handle.id.root_hash))
    assert stored.has_next1()
    assert stored.is_key_block()


def test_invalid_stored_id(storage, db):
    block_id = shard_id(5)
    db.put(Column.PREV1, block_id.root_hash, b"\x01\x02\x03")
    with pytest.raises(BlockConnectionStorageError, match="Invalid connection block id"):
        storage.load_connection(block_id, BlockConnection.PREV1)