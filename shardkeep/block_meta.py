"""Block metadata: a packed set of flags plus the block generation time."""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass

_U32_MASK = (1 << 32) - 1
_U64_MASK = (1 << 64) - 1

FLAG_HAS_DATA = 1 << 32
FLAG_HAS_PROOF = 1 << (32 + 1)
FLAG_HAS_PROOF_LINK = 1 << (32 + 2)
# flag 3 is reserved for an external listener
FLAG_HAS_STATE = 1 << (32 + 4)
FLAG_HAS_PERSISTENT_STATE = 1 << (32 + 5)
FLAG_HAS_NEXT_1 = 1 << (32 + 6)
FLAG_HAS_NEXT_2 = 1 << (32 + 7)
FLAG_HAS_PREV_1 = 1 << (32 + 8)
FLAG_HAS_PREV_2 = 1 << (32 + 9)
FLAG_IS_APPLIED = 1 << (32 + 10)
FLAG_IS_KEY_BLOCK = 1 << (32 + 11)
FLAG_MOVING_TO_ARCHIVE = 1 << (32 + 12)
FLAG_MOVED_TO_ARCHIVE = 1 << (32 + 13)

CLEAR_DATA_MASK = ~(FLAG_HAS_DATA | FLAG_HAS_PROOF | FLAG_HAS_PROOF_LINK) & _U64_MASK
_STORED_FLAGS_MASK = 0x0000_FFFF_FFFF_FFFF

_LAYOUT = struct.Struct("<QI")

SIZE_HINT = _LAYOUT.size


@dataclass(frozen=True)
class BlockMetaData:
    """Initial values for a new block meta."""

    is_key_block: bool
    gen_utime: int
    mc_ref_seqno: int | None = None

    @classmethod
    def zero_state(cls, gen_utime: int) -> BlockMetaData:
        return cls(is_key_block=True, gen_utime=gen_utime, mc_ref_seqno=0)


@dataclass(frozen=True)
class BriefBlockMeta:
    """An immutable snapshot of a block meta."""

    flags: int = 0
    gen_utime: int = 0

    def masterchain_ref_seqno(self) -> int:
        return self.flags & _U32_MASK

    def is_key_block(self) -> bool:
        return self.flags & FLAG_IS_KEY_BLOCK == FLAG_IS_KEY_BLOCK


class BlockMeta:
    """Thread-safe block flags; the low 32 bits hold the masterchain ref seqno."""

    def __init__(self, flags: int = 0, gen_utime: int = 0) -> None:
        self._flags = flags & _U64_MASK
        self.gen_utime = gen_utime
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"BlockMeta(flags={self.flags:#x}, gen_utime={self.gen_utime})"

    @classmethod
    def with_data(cls, data: BlockMetaData) -> BlockMeta:
        flags = FLAG_IS_KEY_BLOCK if data.is_key_block else 0
        flags |= (data.mc_ref_seqno or 0) & _U32_MASK
        return cls(flags, data.gen_utime)

    @property
    def flags(self) -> int:
        with self._lock:
            return self._flags

    def _fetch_or(self, bits: int) -> int:
        with self._lock:
            previous = self._flags
            self._flags |= bits
            return previous

    def _test_flag(self, flag: int) -> bool:
        return self.flags & flag == flag

    def _set_flag(self, flag: int) -> bool:
        """Set a flag, returning True if it was not set before."""
        return self._fetch_or(flag) & flag != flag

    def brief(self) -> BriefBlockMeta:
        return BriefBlockMeta(self.flags, self.gen_utime)

    def masterchain_ref_seqno(self) -> int:
        return self.flags & _U32_MASK

    def set_masterchain_ref_seqno(self, seqno: int) -> int:
        """OR the seqno into the flags and return the previous seqno."""
        return self._fetch_or(seqno & _U32_MASK) & _U32_MASK

    def clear_data_and_proof(self) -> None:
        with self._lock:
            self._flags &= CLEAR_DATA_MASK

    def set_has_data(self) -> bool:
        return self._set_flag(FLAG_HAS_DATA)

    def has_data(self) -> bool:
        return self._test_flag(FLAG_HAS_DATA)

    def set_has_proof(self) -> bool:
        return self._set_flag(FLAG_HAS_PROOF)

    def has_proof(self) -> bool:
        return self._test_flag(FLAG_HAS_PROOF)

    def set_has_proof_link(self) -> bool:
        return self._set_flag(FLAG_HAS_PROOF_LINK)

    def has_proof_link(self) -> bool:
        return self._test_flag(FLAG_HAS_PROOF_LINK)

    def set_has_state(self) -> bool:
        return self._set_flag(FLAG_HAS_STATE)

    def has_state(self) -> bool:
        return self._test_flag(FLAG_HAS_STATE)

    def set_has_persistent_state(self) -> bool:
        return self._set_flag(FLAG_HAS_PERSISTENT_STATE)

    def has_persistent_state(self) -> bool:
        return self._test_flag(FLAG_HAS_PERSISTENT_STATE)

    def set_has_next1(self) -> bool:
        return self._set_flag(FLAG_HAS_NEXT_1)

    def has_next1(self) -> bool:
        return self._test_flag(FLAG_HAS_NEXT_1)

    def set_has_next2(self) -> bool:
        return self._set_flag(FLAG_HAS_NEXT_2)

    def has_next2(self) -> bool:
        return self._test_flag(FLAG_HAS_NEXT_2)

    def set_has_prev1(self) -> bool:
        return self._set_flag(FLAG_HAS_PREV_1)

    def has_prev1(self) -> bool:
        return self._test_flag(FLAG_HAS_PREV_1)

    def set_has_prev2(self) -> bool:
        return self._set_flag(FLAG_HAS_PREV_2)

    def has_prev2(self) -> bool:
        return self._test_flag(FLAG_HAS_PREV_2)

    def set_is_applied(self) -> bool:
        return self._set_flag(FLAG_IS_APPLIED)

    def is_applied(self) -> bool:
        return self._test_flag(FLAG_IS_APPLIED)

    def is_key_block(self) -> bool:
        return self._test_flag(FLAG_IS_KEY_BLOCK)

    def set_is_moving_to_archive(self) -> bool:
        return self._set_flag(FLAG_MOVING_TO_ARCHIVE)

    def set_is_archived(self) -> bool:
        return self._set_flag(FLAG_MOVED_TO_ARCHIVE)

    def is_archived(self) -> bool:
        return self._test_flag(FLAG_MOVED_TO_ARCHIVE)

    def to_bytes(self) -> bytes:
        """8 bytes of flags and 4 bytes of gen_utime, little-endian."""
        return _LAYOUT.pack(self.flags & _STORED_FLAGS_MASK, self.gen_utime & _U32_MASK)

    @classmethod
    def from_bytes(cls, data: bytes) -> BlockMeta:
        if len(data) < _LAYOUT.size:
            raise ValueError(
                f"Invalid block meta length: {len(data)}, expected {_LAYOUT.size}"
            )
        flags, gen_utime = _LAYOUT.unpack_from(bytes(data))
        return cls(flags, gen_utime)