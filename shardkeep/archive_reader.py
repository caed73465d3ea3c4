"""Read access to stored archives: whole archives by id range, or byte slices."""

from __future__ import annotations

from typing import Iterator

from .columns import Column, Database


class ArchiveSliceError(Exception):
    """Raised when a requested slice starts outside of the archive."""


def _archive_key(archive_id: int) -> bytes:
    return archive_id.to_bytes(4, "big")


def _archive_id(key: bytes) -> int:
    # Keys of unexpected length are read as archive 0.
    return int.from_bytes(key, "big") if len(key) == 4 else 0


class ArchiveReader:
    """Reads archives from the archives column of a database."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get_archives(
        self, start: int | None = None, end: int | None = None
    ) -> Iterator[tuple[int, bytes]]:
        """Yield ``(archive_id, data)`` for ids in ``[start, end)`` in ascending order.

        ``None`` leaves the corresponding side of the range unbounded.
        """
        seek = None if start is None else _archive_key(start)
        for key, value in self._db.iterate(Column.ARCHIVES, start=seek):
            archive_id = _archive_id(key)
            if end is not None and archive_id >= end:
                return
            yield archive_id, value

    def get_archive_slice(self, archive_id: int, offset: int, limit: int) -> bytes | None:
        """Up to ``limit`` bytes of the archive from ``offset``; None if there is no archive."""
        data = self._db.get(Column.ARCHIVES, _archive_key(archive_id))
        if data is None:
            return None
        if offset < 0 or offset >= len(data):
            raise ArchiveSliceError("Offset is outside of the archive slice")
        end = min(offset + max(limit, 0), len(data))
        return data[offset:end]