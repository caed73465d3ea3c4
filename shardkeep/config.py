"""Node configuration with defaults and strict field checking."""

from __future__ import annotations

import ipaddress
import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

import psutil

from .node_keys import NodeKeys


def default_max_db_memory_usage() -> int:
    """A third of the total system memory, in bytes."""
    return psutil.virtual_memory().total // 3


def _mapping(data: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{name}: expected a mapping")
    return data


def _check_fields(data: Mapping[str, Any], allowed: set[str], name: str) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"{name}: unknown field `{sorted(unknown)[0]}`")


def _uint(value: Any, name: str, bits: int = 64) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < (1 << bits):
        raise ValueError(f"{name}: expected an unsigned {bits}-bit integer")
    return value


def _bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{name}: expected a boolean")
    return value


def _tag(data: Mapping[str, Any], name: str) -> str:
    if "type" not in data:
        raise ValueError(f"{name}: missing field `type`")
    return data["type"]


class BlocksGcKind(str, Enum):
    BEFORE_PREVIOUS_KEY_BLOCK = "before_previous_key_block"
    BEFORE_PREVIOUS_PERSISTENT_STATE = "before_previous_persistent_state"


@dataclass(frozen=True)
class ArchivesGcInterval:
    """Archives GC schedule; ``offset_sec`` of None means manual GC only."""

    offset_sec: int | None = 300

    @classmethod
    def manual(cls) -> ArchivesGcInterval:
        return cls(offset_sec=None)

    @property
    def is_manual(self) -> bool:
        return self.offset_sec is None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ArchivesGcInterval:
        data = _mapping(data, "gc_interval")
        tag = _tag(data, "gc_interval")
        if tag == "manual":
            _check_fields(data, {"type"}, "gc_interval")
            return cls.manual()
        if tag == "persistent_states":
            _check_fields(data, {"type", "offset_sec"}, "gc_interval")
            if "offset_sec" not in data:
                raise ValueError("gc_interval: missing field `offset_sec`")
            return cls(offset_sec=_uint(data["offset_sec"], "offset_sec"))
        raise ValueError(f"gc_interval: unknown variant `{tag}`")

    def to_dict(self) -> dict[str, Any]:
        if self.offset_sec is None:
            return {"type": "manual"}
        return {"type": "persistent_states", "offset_sec": self.offset_sec}


@dataclass
class ArchiveOptions:
    gc_interval: ArchivesGcInterval = field(default_factory=ArchivesGcInterval)
    uploader_options: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ArchiveOptions:
        data = _mapping(data, "archive_options")
        _check_fields(data, {"gc_interval", "uploader_options"}, "archive_options")
        if "gc_interval" not in data:
            raise ValueError("archive_options: missing field `gc_interval`")
        uploader = data.get("uploader_options")
        return cls(
            gc_interval=ArchivesGcInterval.from_dict(data["gc_interval"]),
            uploader_options=None
            if uploader is None
            else dict(_mapping(uploader, "uploader_options")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"gc_interval": self.gc_interval.to_dict()}
        if self.uploader_options is not None:
            result["uploader_options"] = dict(self.uploader_options)
        return result


@dataclass(frozen=True)
class OldBlocksPolicy:
    """Old blocks sync policy; ``from_seqno`` of None means ignore old blocks."""

    from_seqno: int | None = None

    @property
    def is_ignore(self) -> bool:
        return self.from_seqno is None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OldBlocksPolicy:
        data = _mapping(data, "old_blocks_policy")
        tag = _tag(data, "old_blocks_policy")
        if tag == "ignore":
            _check_fields(data, {"type"}, "old_blocks_policy")
            return cls()
        if tag == "sync":
            _check_fields(data, {"type", "from_seqno"}, "old_blocks_policy")
            if "from_seqno" not in data:
                raise ValueError("old_blocks_policy: missing field `from_seqno`")
            return cls(from_seqno=_uint(data["from_seqno"], "from_seqno", 32))
        raise ValueError(f"old_blocks_policy: unknown variant `{tag}`")

    def to_dict(self) -> dict[str, Any]:
        if self.from_seqno is None:
            return {"type": "ignore"}
        return {"type": "sync", "from_seqno": self.from_seqno}


@dataclass
class SyncOptions:
    old_blocks_policy: OldBlocksPolicy = field(default_factory=OldBlocksPolicy)
    parallel_archive_downloads: int = 16
    save_to_disk_threshold: int = 1024 * 1024 * 1024

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SyncOptions:
        data = _mapping(data, "sync_options")
        parsers: dict[str, Callable[[Any], Any]] = {
            "old_blocks_policy": OldBlocksPolicy.from_dict,
            "parallel_archive_downloads": lambda v: _uint(v, "parallel_archive_downloads"),
            "save_to_disk_threshold": lambda v: _uint(v, "save_to_disk_threshold"),
        }
        _check_fields(data, set(parsers), "sync_options")
        return cls(**{key: parsers[key](value) for key, value in data.items()})

    def to_dict(self) -> dict[str, Any]:
        return {
            "old_blocks_policy": self.old_blocks_policy.to_dict(),
            "parallel_archive_downloads": self.parallel_archive_downloads,
            "save_to_disk_threshold": self.save_to_disk_threshold,
        }


@dataclass
class StateGcOptions:
    offset_sec: int = field(default_factory=lambda: random.randrange(900))
    interval_sec: int = 900

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StateGcOptions:
        data = _mapping(data, "state_gc_options")
        _check_fields(data, {"offset_sec", "interval_sec"}, "state_gc_options")
        return cls(**{key: _uint(value, key) for key, value in data.items()})

    def to_dict(self) -> dict[str, Any]:
        return {"offset_sec": self.offset_sec, "interval_sec": self.interval_sec}


@dataclass
class BlocksGcOptions:
    kind: BlocksGcKind = BlocksGcKind.BEFORE_PREVIOUS_PERSISTENT_STATE
    enable_for_sync: bool = True
    max_blocks_per_batch: int | None = 100_000

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BlocksGcOptions:
        data = _mapping(data, "blocks_gc_options")
        parsers: dict[str, Callable[[Any], Any]] = {
            "kind": BlocksGcKind,
            "enable_for_sync": lambda v: _bool(v, "enable_for_sync"),
            "max_blocks_per_batch": lambda v: None
            if v is None
            else _uint(v, "max_blocks_per_batch"),
        }
        _check_fields(data, set(parsers), "blocks_gc_options")
        return cls(**{key: parsers[key](value) for key, value in data.items()})

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "enable_for_sync": self.enable_for_sync,
            "max_blocks_per_batch": self.max_blocks_per_batch,
        }


@dataclass
class ShardStateCacheOptions:
    ttl_sec: int = 120

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ShardStateCacheOptions:
        data = _mapping(data, "shard_state_cache_options")
        _check_fields(data, {"ttl_sec"}, "shard_state_cache_options")
        return cls(**{key: _uint(value, key) for key, value in data.items()})

    def to_dict(self) -> dict[str, Any]:
        return {"ttl_sec": self.ttl_sec}


def _socket_addr(value: Any) -> str:
    if not isinstance(value, str) or ":" not in value:
        raise ValueError("ip_address: expected `ip:port`")
    host, port = value.rsplit(":", 1)
    try:
        ip = ipaddress.IPv4Address(host)
        port_number = int(port)
    except ValueError as e:
        raise ValueError(f"ip_address: {e}") from e
    if not 0 <= port_number <= 0xFFFF:
        raise ValueError("ip_address: invalid port")
    return f"{ip}:{port_number}"


def _path(name: str) -> Callable[[Any], Path]:
    def parse(value: Any) -> Path:
        if not isinstance(value, str):
            raise ValueError(f"{name}: expected a path string")
        return Path(value)

    return parse


def _optional(parse: Callable[[Any], Any]) -> Callable[[Any], Any]:
    return lambda value: None if value is None else parse(value)


def _opaque(name: str) -> Callable[[Any], dict[str, Any]]:
    return lambda value: dict(_mapping(value, name))


_PASSTHROUGH = (
    "adnl_options",
    "rldp_options",
    "dht_options",
    "overlay_shard_options",
    "neighbours_options",
)


@dataclass
class NodeConfig:
    ip_address: str = "127.0.0.1:30303"
    adnl_keys: NodeKeys = field(default_factory=NodeKeys.generate)
    rocks_db_path: Path = Path("db/rocksdb")
    file_db_path: Path = Path("db/file")
    state_gc_options: StateGcOptions | None = None
    blocks_gc_options: BlocksGcOptions | None = None
    shard_state_cache_options: ShardStateCacheOptions | None = field(
        default_factory=ShardStateCacheOptions
    )
    max_db_memory_usage: int = field(default_factory=default_max_db_memory_usage)
    archive_options: ArchiveOptions | None = field(default_factory=ArchiveOptions)
    sync_options: SyncOptions = field(default_factory=SyncOptions)
    adnl_options: dict[str, Any] = field(default_factory=dict)
    rldp_options: dict[str, Any] = field(default_factory=dict)
    dht_options: dict[str, Any] = field(default_factory=dict)
    overlay_shard_options: dict[str, Any] = field(default_factory=dict)
    neighbours_options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.ip_address = _socket_addr(self.ip_address)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NodeConfig:
        data = _mapping(data, "indexer")
        parsers: dict[str, Callable[[Any], Any]] = {
            "ip_address": _socket_addr,
            "adnl_keys": NodeKeys.from_dict,
            "rocks_db_path": _path("rocks_db_path"),
            "file_db_path": _path("file_db_path"),
            "state_gc_options": _optional(StateGcOptions.from_dict),
            "blocks_gc_options": _optional(BlocksGcOptions.from_dict),
            "shard_state_cache_options": _optional(ShardStateCacheOptions.from_dict),
            "max_db_memory_usage": lambda v: _uint(v, "max_db_memory_usage"),
            "archive_options": _optional(ArchiveOptions.from_dict),
            "sync_options": SyncOptions.from_dict,
        }
        parsers.update({name: _opaque(name) for name in _PASSTHROUGH})
        _check_fields(data, set(parsers), "indexer")
        return cls(**{key: parsers[key](value) for key, value in data.items()})

    def to_dict(self) -> dict[str, Any]:
        def optional(value: Any) -> Any:
            return None if value is None else value.to_dict()

        result: dict[str, Any] = {
            "ip_address": self.ip_address,
            "adnl_keys": self.adnl_keys.to_dict(),
            "rocks_db_path": str(self.rocks_db_path),
            "file_db_path": str(self.file_db_path),
            "state_gc_options": optional(self.state_gc_options),
            "blocks_gc_options": optional(self.blocks_gc_options),
            "shard_state_cache_options": optional(self.shard_state_cache_options),
            "max_db_memory_usage": self.max_db_memory_usage,
            "archive_options": optional(self.archive_options),
            "sync_options": self.sync_options.to_dict(),
        }
        result.update({name: dict(getattr(self, name)) for name in _PASSTHROUGH})
        return result