"""Links between neighbouring blocks: previous and next in each direction."""

from __future__ import annotations

from enum import Enum

from .block_handle import BlockHandle
from .block_id import BlockIdExt
from .columns import Column, Database, WriteBatch


class BlockConnectionStorageError(Exception):
    """Raised when a stored block connection is missing or invalid."""


class BlockConnection(Enum):
    PREV1 = Column.PREV1
    PREV2 = Column.PREV2
    NEXT1 = Column.NEXT1
    NEXT2 = Column.NEXT2

    @property
    def column(self) -> Column:
        return self.value

    @property
    def _flag_name(self) -> str:
        return self.name.lower()

    def is_stored(self, handle: BlockHandle) -> bool:
        return getattr(handle.meta, f"has_{self._flag_name}")()

    def mark_stored(self, handle: BlockHandle) -> bool:
        return getattr(handle.meta, f"set_has_{self._flag_name}")()


class BlockConnectionStorage:
    """Stores relations between blocks."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def store_connection(
        self,
        handle: BlockHandle,
        direction: BlockConnection,
        connected_block_id: BlockIdExt,
    ) -> None:
        if direction.is_stored(handle):
            return
        self._db.put(direction.column, handle.id.root_hash, connected_block_id.to_bytes_le())
        if not direction.mark_stored(handle):
            return

        block_id = handle.id
        if handle.is_key_block():
            batch = WriteBatch()
            batch.put(Column.BLOCK_HANDLES, block_id.root_hash, handle.meta.to_bytes())
            batch.put(Column.KEY_BLOCKS, block_id.seq_no.to_bytes(4, "big"), block_id.to_bytes())
            self._db.write(batch)
        else:
            self._db.put(Column.BLOCK_HANDLES, block_id.root_hash, handle.meta.to_bytes())

    def load_connection(self, block_id: BlockIdExt, direction: BlockConnection) -> BlockIdExt:
        stored = self._db.get(direction.column, block_id.root_hash)
        if stored is None:
            raise BlockConnectionStorageError("Block connection not found")
        try:
            return BlockIdExt.from_bytes_le(stored)
        except ValueError as e:
            raise BlockConnectionStorageError("Invalid connection block id") from e