"""Database schema versioning and the migrations between versions."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Tuple

from .block_id import BLOCK_ID_SIZE, HASH_SIZE, BlockIdExt
from .columns import Column, Database, WriteBatch

Semver = Tuple[int, int, int]
MigrationFn = Callable[[Database], None]
Migration = Callable[[Database], Semver]

CURRENT_VERSION: Semver = (2, 0, 8)
DB_VERSION_KEY = b"db_version"

# Workchain (4 bytes) and shard prefix (8 bytes)
_SHARD_IDENT_SIZE = 12
# Workchain, shard, seqno
_SHORT_ID_SIZE = _SHARD_IDENT_SIZE + 4
_ENTRIES_PER_BATCH = 10_000

_log = logging.getLogger(__name__)


class MigrationError(Exception):
    """Raised when the stored database version cannot be brought up to date."""


def _semver(version: Iterable[int]) -> Semver:
    parts = tuple(int(part) for part in version)
    if len(parts) != 3 or not all(0 <= part <= 0xFF for part in parts):
        raise MigrationError(f"Invalid version: {parts!r}")
    return parts  # type: ignore[return-value]


class Migrations:
    """Registry of migrations keyed by the version they start from."""

    def __init__(self) -> None:
        self._migrations: dict[Semver, Migration] = {}

    def __contains__(self, version: object) -> bool:
        return version in self._migrations

    def __len__(self) -> int:
        return len(self._migrations)

    def register(
        self, from_version: Iterable[int], to_version: Iterable[int], migration: MigrationFn
    ) -> None:
        source = _semver(from_version)
        target = _semver(to_version)
        if source in self._migrations:
            raise MigrationError(f"Duplicate migration: {list(source)}")

        def run(db: Database) -> Semver:
            migration(db)
            return target

        self._migrations[source] = run

    def get(self, version: Iterable[int]) -> Optional[Migration]:
        return self._migrations.get(tuple(version))  # type: ignore[arg-type]


def default_migrations() -> Migrations:
    migrations = Migrations()
    migrations.register((2, 0, 6), (2, 0, 7), migrate_v2_0_7)
    return migrations


def apply(db: Database, migrations: Migrations | None = None) -> None:
    """Bring the stored database version up to :data:`CURRENT_VERSION`."""
    if migrations is None:
        migrations = default_migrations()

    if db.is_empty(Column.NODE_STATES):
        _log.info("starting with empty db")
        db.put(Column.NODE_STATES, DB_VERSION_KEY, bytes(CURRENT_VERSION))
        return

    while True:
        stored = db.get(Column.NODE_STATES, DB_VERSION_KEY)
        if stored is None:
            raise MigrationError("Existing DB version not found")
        if len(stored) != 3:
            raise MigrationError("Invalid version")
        version: Semver = tuple(stored)  # type: ignore[assignment]

        if version == CURRENT_VERSION:
            _log.info("stored DB version is compatible")
            return
        if version > CURRENT_VERSION:
            raise MigrationError(
                f"Incompatible DB version: too new version found: {list(version)}. "
                f"Expected version: {list(CURRENT_VERSION)}"
            )

        migration = migrations.get(version)
        if migration is None:
            raise MigrationError(f"No suitable migration found for version {list(version)}")
        _log.info("applying migration from %s", list(version))

        new_version = migration(db)
        db.put(Column.NODE_STATES, DB_VERSION_KEY, bytes(new_version))


class _BatchWriter:
    """Accumulates writes and flushes them in fixed-size batches."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._batch = WriteBatch()
        self._entries = 0
        self.total = 0

    def replace(self, column: Column, old_key: bytes, new_key: bytes, value: bytes) -> None:
        self._batch.delete(column, old_key)
        self._batch.put(column, new_key, value)
        self.total += 1
        self._entries += 1
        if self._entries >= _ENTRIES_PER_BATCH:
            self.flush()

    def flush(self) -> None:
        if self._entries > 0:
            self._db.write(self._batch)
            self._batch = WriteBatch()
            self._entries = 0


def _update_package_entries(db: Database) -> None:
    # Old key: full block id + package type; new key: short id + package type
    new_key_len = _SHORT_ID_SIZE + 1
    writer = _BatchWriter(db)
    for old_key, value in db.iterate(Column.PACKAGE_ENTRIES):
        if len(old_key) <= new_key_len:
            continue
        if len(old_key) <= BLOCK_ID_SIZE:
            raise MigrationError(f"Invalid package entry key: {old_key.hex()}")
        new_key = old_key[:_SHORT_ID_SIZE] + old_key[BLOCK_ID_SIZE:BLOCK_ID_SIZE + 1]
        writer.replace(Column.PACKAGE_ENTRIES, old_key, new_key, value)
    writer.flush()
    _log.info("migrated package entries: %d", writer.total)


def _update_shard_states(db: Database) -> None:
    writer = _BatchWriter(db)
    for old_key, value in db.iterate(Column.SHARD_STATES):
        if len(old_key) <= _SHORT_ID_SIZE:
            continue
        try:
            block_id = BlockIdExt.from_bytes(old_key[:BLOCK_ID_SIZE])
        except ValueError as e:
            raise MigrationError("Invalid state key") from e
        if len(value) != HASH_SIZE:
            raise MigrationError(
                f"Invalid state value {block_id.shard.workchain}:"
                f"{block_id.shard.prefix:016x}:{block_id.seq_no}: {value.hex()}"
            )
        new_value = value + block_id.root_hash + block_id.file_hash
        writer.replace(Column.SHARD_STATES, old_key, old_key[:_SHORT_ID_SIZE], new_value)
    writer.flush()
    _log.info("migrated shard states: %d", writer.total)


def migrate_v2_0_7(db: Database) -> None:
    """Shorten package entry and shard state keys, moving block hashes into state values."""
    _update_package_entries(db)
    _update_shard_states(db)