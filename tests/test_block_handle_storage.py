import pytest

from shardkeep.block_handle import BlockHandleError
from shardkeep.block_handle_storage import (
    BlockHandleStorage,
    BlockHandleStorageError,
    HandleCreationStatus,
)
from shardkeep.block_id import BlockIdExt, ShardIdent
from shardkeep.block_meta import BlockMeta, BlockMetaData
from shardkeep.columns import Column, Database


def mc_id(seq_no, tag=1):
    return BlockIdExt(ShardIdent.masterchain(), seq_no, bytes([tag]) * 32, bytes([tag + 100]) * 32)


def shard_id(seq_no, tag=2):
    return BlockIdExt(ShardIdent(0, 1 << 63), seq_no, bytes([tag]) * 32, bytes([tag + 100]) * 32)


@pytest.fixture
def db():
    return Database()


@pytest.fixture
def storage(db):
    return BlockHandleStorage(db)


def key_meta(utime=100):
    return BlockMetaData(is_key_block=True, gen_utime=utime)


def plain_meta(utime=100):
    return BlockMetaData(is_key_block=False, gen_utime=utime)


def test_create_then_fetch_shares_handle(storage):
    block_id = shard_id(5)
    first, first_status = storage.create_or_load_handle(block_id, plain_meta())
    second, second_status = storage.create_or_load_handle(block_id, plain_meta())
    assert first_status == HandleCreationStatus.CREATED
    assert second_status == HandleCreationStatus.FETCHED
    assert second is first


def test_create_stores_meta(storage, db):
    block_id = shard_id(5)
    handle, _ = storage.create_or_load_handle(block_id, plain_meta(321))
    stored = BlockMeta.from_bytes(db.get(Column.BLOCK_HANDLES, block_id.root_hash))
    assert stored.gen_utime == 321
    assert handle.meta.gen_utime == 321
    assert db.is_empty(Column.KEY_BLOCKS)


def test_load_handle_missing(storage):
    assert storage.load_handle(shard_id(7)) is None


def test_load_handle_from_db_after_drop(storage):
    block_id = shard_id(5)
    handle, _ = storage.create_or_load_handle(block_id, plain_meta(55))
    handle.meta.set_has_data()
    storage.store_handle(handle)
    del handle
    loaded = storage.load_handle(block_id)
    assert loaded.id == block_id
    assert loaded.meta.has_data()
    assert loaded.meta.gen_utime == 55


def test_store_block_applied(storage, db):
    block_id = shard_id(5)
    handle, _ = storage.create_or_load_handle(block_id, plain_meta())
    assert storage.store_block_applied(handle) is True
    assert storage.store_block_applied(handle) is False
    stored = BlockMeta.from_bytes(db.get(Column.BLOCK_HANDLES, block_id.root_hash))
    assert stored.is_applied()


def test_assign_mc_ref_seq_no(storage, db):
    block_id = shard_id(5)
    handle, _ = storage.create_or_load_handle(block_id, plain_meta())
    storage.assign_mc_ref_seq_no(handle, 7)
    stored = BlockMeta.from_bytes(db.get(Column.BLOCK_HANDLES, block_id.root_hash))
    assert stored.masterchain_ref_seqno() == 7
    storage.assign_mc_ref_seq_no(handle, 7)
    assert handle.masterchain_ref_seqno() == 7
    with pytest.raises(BlockHandleError):
        storage.assign_mc_ref_seq_no(handle, 8)


def test_key_block_is_indexed(storage, db):
    block_id = mc_id(10)
    storage.create_or_load_handle(block_id, key_meta())
    assert db.get(Column.KEY_BLOCKS, (10).to_bytes(4, "big")) == block_id.to_bytes()


def test_load_key_block_handle(storage):
    block_id = mc_id(10)
    handle, _ = storage.create_or_load_handle(block_id, key_meta())
    assert storage.load_key_block_handle(10) is handle
    with pytest.raises(BlockHandleStorageError, match="Key block not found"):
        storage.load_key_block_handle(11)


def test_find_last_key_block(storage):
    with pytest.raises(BlockHandleStorageError, match="Key block not found"):
        storage.find_last_key_block()
    handles = [
        storage.create_or_load_handle(mc_id(seq, seq + 1), key_meta())[0]
        for seq in (0, 20, 10)
    ]
    assert storage.find_last_key_block() is handles[1]


def test_find_last_key_block_missing_handle(storage, db):
    block_id = mc_id(30, 9)
    db.put(Column.KEY_BLOCKS, (30).to_bytes(4, "big"), block_id.to_bytes())
    with pytest.raises(BlockHandleStorageError, match="Key block handle not found: 30"):
        storage.find_last_key_block()


def test_find_prev_key_block(storage):
    handles = {
        seq: storage.create_or_load_handle(mc_id(seq, seq + 1), key_meta())[0]
        for seq in (10, 20)
    }
    assert storage.find_prev_key_block(0) is None
    assert storage.find_prev_key_block(10) is None
    assert storage.find_prev_key_block(20) is handles[10]
    assert storage.find_prev_key_block(25) is handles[20]


def test_key_blocks_iterator(storage):
    ids = [mc_id(seq, seq + 1) for seq in (0, 10, 20)]
    held = [storage.create_or_load_handle(block_id, key_meta())[0] for block_id in ids]
    assert len(held) == 3
    assert list(storage.key_blocks_iterator()) == ids[::-1]
    assert list(storage.key_blocks_iterator(10)) == ids[1:]
    assert list(storage.key_blocks_iterator(21)) == []


def test_gc_handles_cache(storage):
    outdated = shard_id(5, 2)
    top = shard_id(6, 3)
    key = mc_id(10, 4)
    zero = mc_id(0, 5)
    handles = {
        outdated: storage.create_or_load_handle(outdated, plain_meta())[0],
        top: storage.create_or_load_handle(top, plain_meta())[0],
        key: storage.create_or_load_handle(key, key_meta())[0],
        zero: storage.create_or_load_handle(zero, plain_meta())[0],
    }
    for handle in handles.values():
        handle.meta.set_has_data()

    assert storage.gc_handles_cache({top}) == 1
    assert not handles[outdated].meta.has_data()
    assert handles[top].meta.has_data()
    assert storage.load_handle(top) is handles[top]
    assert storage.load_handle(key) is handles[key]
    reloaded = storage.load_handle(outdated)
    assert reloaded is not handles[outdated]
    assert reloaded.id == outdated