# shardkeep

Storage layer for a blockchain indexer node. It keeps block metadata, the
links between blocks, a key-block index and packed block archives in an
ordered, in-memory key-value store with column families. It also reads and
writes the node's configuration and keys, and checks and upgrades the
database schema version.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `shardkeep.block_id`: `ShardIdent` and `BlockIdExt`. A `BlockIdExt` encodes to 80 bytes with `to_bytes()` (big-endian) and with `to_bytes_le()` (little-endian). `from_bytes` and `from_bytes_le` decode them.
- `shardkeep.node_keys`: `NodeKeys` holds the 32-byte DHT and overlay keys and writes them as hex in JSON. `NodeKeys.load(path, force_regenerate)` creates the file if it does not exist. If the keys in it cannot be read, it generates new ones and saves them.
- `shardkeep.config`: `NodeConfig` and its option sections: `SyncOptions`, `OldBlocksPolicy`, `BlocksGcOptions` (with `BlocksGcKind`), `StateGcOptions`, `ShardStateCacheOptions`, `ArchiveOptions` and `ArchivesGcInterval`.
  - Each section reads a dict with `from_dict` and writes one with `to_dict`.
  - `from_dict` rejects unknown fields.
  - `default_max_db_memory_usage()` returns a third of total system memory.
- `shardkeep.block_meta`: `BlockMeta` is a thread-safe set of 64-bit flags plus the generation time. It is stored as 12 bytes. `BlockMetaData` holds the initial values and `BriefBlockMeta` is a snapshot.
- `shardkeep.block_handle`: `BlockHandle`, a block id together with its meta and its data locks.
- `shardkeep.columns`: the `Column` families, the in-memory `Database`, atomic `WriteBatch` writes, and the `archive_data_merge` and `cell_merge` merge operators.
- `shardkeep.block_handle_storage`: `BlockHandleStorage`.
  - Creates and loads handles through a weak cache.
  - Stores metas and the key-block index.
  - Finds the last or previous key block and iterates key blocks.
  - Collects outdated handles from the cache.
- `shardkeep.block_connection_storage`: `BlockConnectionStorage` stores and loads prev/next links (`BlockConnection`).
- `shardkeep.block_storage`: `BlockStorage` assigns archive ids (`compute_archive_id`, `get_archive_id`) and removes outdated archives.
- `shardkeep.archive_reader`: `ArchiveReader` iterates archives by id range and reads byte slices of an archive.
- `shardkeep.migrations`: `apply(db, migrations)` checks the stored schema version and runs migrations up to version 2.0.8. `default_migrations()` registers the 2.0.6 → 2.0.7 migration (`migrate_v2_0_7`).

## Example

```python
from shardkeep.block_id import BlockIdExt, ShardIdent
from shardkeep.block_meta import BlockMetaData
from shardkeep.block_handle_storage import BlockHandleStorage
from shardkeep.columns import Database
from shardkeep.migrations import apply, default_migrations

db = Database()
apply(db, default_migrations())

zero_state = BlockIdExt(ShardIdent.masterchain(), 0, bytes(32), bytes(32))

storage = BlockHandleStorage(db)
handle, status = storage.create_or_load_handle(
    zero_state, BlockMetaData.zero_state(gen_utime=0)
)
print(status, handle.is_key_block())
```

## What it does not do

- The `Database` lives in memory only. Nothing is written to disk, so stored blocks, metas and archives are lost when the process exits.
- It does not read the network's global JSON config, such as static DHT nodes or the zero state. Block ids have to be built by the caller.
- It does not upload archives to object storage.
- It does not persist node parameters such as the last masterchain block id or the historical sync bounds.
- It does not store or load block data and proofs themselves. Only archive ids, archive removal and archive reading are covered.
- There is no migration from schema version 2.0.7. `apply` raises `MigrationError` for a database stored at that version.