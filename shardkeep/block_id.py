"""Shard and block identifiers with their binary encodings."""

from __future__ import annotations

import struct
from dataclasses import dataclass

MASTERCHAIN_ID = -1
HASH_SIZE = 32

_U32_MAX = (1 << 32) - 1
_U64_MASK = (1 << 64) - 1

_BE_LAYOUT = struct.Struct(">iQI32s32s")
_LE_LAYOUT = struct.Struct("<iQI32s32s")

BLOCK_ID_SIZE = _BE_LAYOUT.size


@dataclass(frozen=True)
class ShardIdent:
    """Workchain id and tagged shard prefix."""

    workchain: int
    prefix: int

    def __post_init__(self) -> None:
        if not -(1 << 31) <= self.workchain < (1 << 31):
            raise ValueError(f"Invalid workchain id: {self.workchain}")
        if not 0 < self.prefix <= _U64_MASK:
            raise ValueError(f"Invalid shard prefix: {self.prefix:#x}")

    @classmethod
    def with_tagged_prefix(cls, workchain: int, prefix: int) -> ShardIdent:
        """Build a shard ident, treating a signed prefix as its unsigned bits."""
        return cls(workchain, prefix & _U64_MASK)

    @classmethod
    def masterchain(cls) -> ShardIdent:
        return cls(MASTERCHAIN_ID, 1 << 63)

    def is_masterchain(self) -> bool:
        return self.workchain == MASTERCHAIN_ID


@dataclass(frozen=True)
class BlockIdExt:
    """Full block id: shard, sequence number, root and file hashes."""

    shard: ShardIdent
    seq_no: int
    root_hash: bytes
    file_hash: bytes

    def __post_init__(self) -> None:
        if not 0 <= self.seq_no <= _U32_MAX:
            raise ValueError(f"Invalid seqno: {self.seq_no}")
        for name in ("root_hash", "file_hash"):
            value = getattr(self, name)
            if not isinstance(value, bytes) or len(value) != HASH_SIZE:
                raise ValueError(f"{name} must be {HASH_SIZE} bytes")

    def is_masterchain(self) -> bool:
        return self.shard.is_masterchain()

    def _pack(self, layout: struct.Struct) -> bytes:
        return layout.pack(
            self.shard.workchain,
            self.shard.prefix,
            self.seq_no,
            self.root_hash,
            self.file_hash,
        )

    @classmethod
    def _unpack(cls, layout: struct.Struct, data: bytes) -> BlockIdExt:
        if len(data) != layout.size:
            raise ValueError(
                f"Invalid block id length: {len(data)}, expected {layout.size}"
            )
        workchain, prefix, seq_no, root_hash, file_hash = layout.unpack(bytes(data))
        return cls(ShardIdent(workchain, prefix), seq_no, root_hash, file_hash)

    def to_bytes(self) -> bytes:
        """Big-endian encoding used for stored values."""
        return self._pack(_BE_LAYOUT)

    @classmethod
    def from_bytes(cls, data: bytes) -> BlockIdExt:
        return cls._unpack(_BE_LAYOUT, data)

    def to_bytes_le(self) -> bytes:
        """Little-endian encoding used for connections and node state."""
        return self._pack(_LE_LAYOUT)

    @classmethod
    def from_bytes_le(cls, data: bytes) -> BlockIdExt:
        return cls._unpack(_LE_LAYOUT, data)