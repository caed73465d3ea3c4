"""Node keys for DHT and overlay identities."""

from __future__ import annotations

import binascii
import json
import logging
import os
import secrets
from dataclasses import dataclass
from os import PathLike
from typing import IO, Any, Mapping

KEY_SIZE = 32

_log = logging.getLogger(__name__)


def _decode_key(value: Any) -> bytes:
    if not isinstance(value, str):
        raise ValueError("Invalid key")
    try:
        data = binascii.unhexlify(value)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid key: {e}") from e
    if len(data) != KEY_SIZE:
        raise ValueError("Invalid key")
    return data


@dataclass(frozen=True)
class NodeKeys:
    dht_key: bytes
    overlay_key: bytes

    def __post_init__(self) -> None:
        for key in (self.dht_key, self.overlay_key):
            if not isinstance(key, bytes) or len(key) != KEY_SIZE:
                raise ValueError("Invalid key")

    @classmethod
    def generate(cls) -> NodeKeys:
        return cls(
            dht_key=secrets.token_bytes(KEY_SIZE),
            overlay_key=secrets.token_bytes(KEY_SIZE),
        )

    @classmethod
    def load(cls, path: str | PathLike, force_regenerate: bool = False) -> NodeKeys:
        """Load keys from a file, generating and saving new ones if they cannot be read."""
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
        with os.fdopen(fd, "r+", encoding="utf-8") as file:
            if force_regenerate:
                keys = cls.generate()
            else:
                try:
                    keys = cls.from_dict(json.load(file))
                except (ValueError, TypeError):
                    _log.warning("failed to read ADNL keys, generating new")
                    keys = cls.generate()
            keys.save(file)
        return keys

    def save(self, file: IO[str]) -> None:
        file.seek(0)
        json.dump(self.to_dict(), file, indent=2)
        file.truncate()

    def to_dict(self) -> dict[str, str]:
        return {"dht_key": self.dht_key.hex(), "overlay_key": self.overlay_key.hex()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NodeKeys:
        if not isinstance(data, Mapping):
            raise ValueError("Invalid keys: expected a mapping")
        unknown = set(data) - {"dht_key", "overlay_key"}
        if unknown:
            raise ValueError(f"unknown field `{sorted(unknown)[0]}`")
        for name in ("dht_key", "overlay_key"):
            if name not in data:
                raise ValueError(f"missing field `{name}`")
        return cls(
            dht_key=_decode_key(data["dht_key"]),
            overlay_key=_decode_key(data["overlay_key"]),
        )