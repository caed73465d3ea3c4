"""Block handles: a weak cache in front of the stored block metas and key blocks."""

from __future__ import annotations

import threading
import weakref
from enum import Enum
from typing import Container, Iterator

from .block_handle import BlockHandle
from .block_id import BlockIdExt
from .block_meta import BlockMeta, BlockMetaData
from .columns import Column, Database


class BlockHandleStorageError(Exception):
    """Raised when a block handle or key block cannot be found or created."""


class HandleCreationStatus(Enum):
    CREATED = "created"
    FETCHED = "fetched"


def _seqno_key(seq_no: int) -> bytes:
    return seq_no.to_bytes(4, "big")


class BlockHandleStorage:
    """Creates, loads and stores block handles, sharing live ones through a cache."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = threading.RLock()
        self._cache: weakref.WeakValueDictionary[BlockIdExt, BlockHandle] = (
            weakref.WeakValueDictionary()
        )

    def store_block_applied(self, handle: BlockHandle) -> bool:
        """Mark the block as applied; True if the flag was newly set."""
        if handle.meta.set_is_applied():
            self.store_handle(handle)
            return True
        return False

    def assign_mc_ref_seq_no(self, handle: BlockHandle, mc_ref_seq_no: int) -> None:
        if handle.set_masterchain_ref_seqno(mc_ref_seq_no):
            self.store_handle(handle)

    def create_or_load_handle(
        self, block_id: BlockIdExt, meta_data: BlockMetaData
    ) -> tuple[BlockHandle, HandleCreationStatus]:
        handle = self.load_handle(block_id)
        if handle is not None:
            return handle, HandleCreationStatus.FETCHED

        handle = self._create_handle(block_id, BlockMeta.with_data(meta_data))
        if handle is not None:
            return handle, HandleCreationStatus.CREATED

        handle = self.load_handle(block_id)
        if handle is not None:
            return handle, HandleCreationStatus.FETCHED

        raise BlockHandleStorageError("Failed to create block handle")

    def load_handle(self, block_id: BlockIdExt) -> BlockHandle | None:
        while True:
            with self._lock:
                handle = self._cache.get(block_id)
            if handle is not None:
                return handle

            stored = self._db.get(Column.BLOCK_HANDLES, block_id.root_hash)
            if stored is None:
                return None
            handle = self._create_handle(block_id, BlockMeta.from_bytes(stored))
            if handle is not None:
                return handle

    def store_handle(self, handle: BlockHandle) -> None:
        block_id = handle.id
        self._db.put(Column.BLOCK_HANDLES, block_id.root_hash, handle.meta.to_bytes())
        if handle.is_key_block():
            self._db.put(Column.KEY_BLOCKS, _seqno_key(block_id.seq_no), block_id.to_bytes())

    def load_key_block_handle(self, seq_no: int) -> BlockHandle:
        stored = self._db.get(Column.KEY_BLOCKS, _seqno_key(seq_no))
        if stored is None:
            raise BlockHandleStorageError("Key block not found")
        return self._load_key_block(BlockIdExt.from_bytes(stored))

    def find_last_key_block(self) -> BlockHandle:
        entry = self._db.last(Column.KEY_BLOCKS)
        if entry is None:
            raise BlockHandleStorageError("Key block not found")
        return self._load_key_block(BlockIdExt.from_bytes(entry[1]))

    def find_prev_key_block(self, seq_no: int) -> BlockHandle | None:
        """The latest key block strictly before ``seq_no``, if any."""
        if seq_no == 0:
            return None
        entry = self._db.seek_for_prev(Column.KEY_BLOCKS, _seqno_key(seq_no - 1))
        if entry is None:
            return None
        return self._load_key_block(BlockIdExt.from_bytes(entry[1]))

    def key_blocks_iterator(self, forward_from: int | None = None) -> Iterator[BlockIdExt]:
        """Key block ids from ``forward_from`` upwards, or all of them backwards if None."""
        if forward_from is None:
            entries = self._db.iterate(Column.KEY_BLOCKS, reverse=True)
        else:
            entries = self._db.iterate(Column.KEY_BLOCKS, start=_seqno_key(forward_from))
        for _, value in entries:
            yield BlockIdExt.from_bytes(value)

    def gc_handles_cache(self, top_blocks: Container[BlockIdExt]) -> int:
        """Drop outdated handles from the cache and clear their data flags."""
        total_removed = 0
        with self._lock:
            for block_id, handle in list(self._cache.items()):
                if (
                    block_id.seq_no == 0
                    or (block_id.is_masterchain() and handle.is_key_block())
                    or block_id in top_blocks
                ):
                    continue
                total_removed += 1
                handle.meta.clear_data_and_proof()
                self._cache.pop(block_id, None)
        return total_removed

    def _load_key_block(self, block_id: BlockIdExt) -> BlockHandle:
        handle = self.load_handle(block_id)
        if handle is None:
            raise BlockHandleStorageError(f"Key block handle not found: {block_id.seq_no}")
        return handle

    def _create_handle(self, block_id: BlockIdExt, meta: BlockMeta) -> BlockHandle | None:
        with self._lock:
            if self._cache.get(block_id) is not None:
                return None
            handle = BlockHandle(block_id, meta)
            self._cache[block_id] = handle
        self.store_handle(handle)
        return handle