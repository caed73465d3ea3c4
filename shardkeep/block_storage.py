"""Archive bookkeeping: which archive a masterchain block belongs to."""

from __future__ import annotations

import logging
import threading

from sortedcontainers import SortedSet

from .block_handle import BlockHandle
from .columns import Column, Database, WriteBatch

ARCHIVE_PACKAGE_SIZE = 100
ARCHIVE_SLICE_SIZE = 20_000

_log = logging.getLogger(__name__)


class BlockStorageError(Exception):
    """Raised when stored archive data is inconsistent."""


def _archive_key(archive_id: int) -> bytes:
    return archive_id.to_bytes(4, "big")


class BlockStorage:
    """Tracks archive ids and removes outdated archives."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = threading.RLock()
        self._archive_ids: SortedSet = SortedSet()
        self._preload()

    def _preload(self) -> None:
        with self._lock:
            for key, _ in self._db.iterate(Column.ARCHIVES):
                if len(key) != 4:
                    raise BlockStorageError(f"Invalid archive key: {key.hex()}")
                self._archive_ids.add(int.from_bytes(key, "big"))
        _log.info("selfcheck complete")

    @property
    def archive_ids(self) -> list[int]:
        with self._lock:
            return list(self._archive_ids)

    def _prev_archive_id(self, mc_seq_no: int) -> int | None:
        with self._lock:
            return next(iter(self._archive_ids.irange(maximum=mc_seq_no, reverse=True)), None)

    def get_archive_id(self, mc_seq_no: int) -> int | None:
        """The archive holding ``mc_seq_no``, if one is close enough before it."""
        archive_id = self._prev_archive_id(mc_seq_no)
        if archive_id is not None and mc_seq_no < archive_id + ARCHIVE_PACKAGE_SIZE:
            return archive_id
        return None

    def compute_archive_id(self, handle: BlockHandle) -> int:
        """Pick the archive for a block, opening a new one when needed."""
        mc_seq_no = handle.masterchain_ref_seqno()

        if handle.meta.is_key_block():
            with self._lock:
                self._archive_ids.add(mc_seq_no)
            return mc_seq_no

        archive_id = mc_seq_no - mc_seq_no % ARCHIVE_SLICE_SIZE
        prev_id = self._prev_archive_id(mc_seq_no)
        if prev_id is not None and archive_id < prev_id:
            archive_id = prev_id

        if max(mc_seq_no - archive_id, 0) >= ARCHIVE_PACKAGE_SIZE:
            with self._lock:
                self._archive_ids.add(mc_seq_no)
            archive_id = mc_seq_no

        return archive_id

    def remove_outdated_archives(self, until_id: int) -> list[int]:
        """Remove archives older than the last one before ``until_id``; return their ids."""
        with self._lock:
            boundary = next(
                iter(self._archive_ids.irange(maximum=until_id, inclusive=(True, False), reverse=True)),
                None,
            )
            if boundary is None:
                _log.info("archives GC: nothing to remove")
                return []
            removed = list(self._archive_ids.irange(maximum=boundary, inclusive=(True, False)))
            if not removed:
                _log.info("archives GC: nothing to remove")
                return []
            _log.info(
                "archives GC: removing %d archives (%d..%d)",
                len(removed),
                removed[0],
                removed[-1],
            )
            for archive_id in removed:
                self._archive_ids.discard(archive_id)

        batch = WriteBatch()
        for archive_id in removed:
            batch.delete(Column.ARCHIVES, _archive_key(archive_id))
        self._db.write(batch)

        _log.info("archives GC: done")
        return removed