"""A block handle: its id, its meta and the locks guarding its data."""

from __future__ import annotations

import threading

from .block_id import BlockIdExt
from .block_meta import BlockMeta


class BlockHandleError(Exception):
    """Raised when a block handle is updated inconsistently."""


class BlockHandle:
    """Shared handle of a single block."""

    def __init__(self, block_id: BlockIdExt, meta: BlockMeta) -> None:
        self.id = block_id
        self.meta = meta
        self.block_data_lock = threading.RLock()
        self.proof_data_lock = threading.RLock()

    def __repr__(self) -> str:
        return f"BlockHandle(id={self.id!r}, meta={self.meta!r})"

    def is_key_block(self) -> bool:
        return self.meta.is_key_block() or self.id.seq_no == 0

    def has_proof_or_link(self) -> tuple[bool, bool]:
        """Return ``(has_proof, is_link)``; shard blocks use proof links."""
        is_link = not self.id.is_masterchain()
        if is_link:
            return self.meta.has_proof_link(), True
        return self.meta.has_proof(), False

    def masterchain_ref_seqno(self) -> int:
        if self.id.is_masterchain():
            return self.id.seq_no
        return self.meta.masterchain_ref_seqno()

    def set_masterchain_ref_seqno(self, masterchain_ref_seqno: int) -> bool:
        """Assign the ref seqno; True if it was newly set, False if unchanged."""
        previous = self.meta.set_masterchain_ref_seqno(masterchain_ref_seqno)
        if previous == 0:
            return True
        if previous == masterchain_ref_seqno:
            return False
        raise BlockHandleError("Different masterchain ref seqno has already been set")