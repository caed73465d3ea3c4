"""An ordered in-memory key-value store with column families and merge operators."""

from __future__ import annotations

import threading
from enum import Enum
from functools import partial
from typing import Callable, Iterable, Iterator, Optional, Sequence, Union

from sortedcontainers import SortedDict

Key = Union[bytes, bytearray, memoryview, str]
MergeOperator = Callable[[Optional[bytes], Sequence[bytes]], Optional[bytes]]


class Column(str, Enum):
    """Column families of the node database."""

    ARCHIVES = "archives"
    BLOCK_HANDLES = "block_handles"
    KEY_BLOCKS = "key_blocks"
    PACKAGE_ENTRIES = "package_entries"
    SHARD_STATES = "shard_states"
    CELLS = "cells"
    NODE_STATES = "node_states"
    PREV1 = "prev1"
    PREV2 = "prev2"
    NEXT1 = "next1"
    NEXT2 = "next2"


def cell_merge(current_value: bytes | None, operands: Sequence[bytes]) -> bytes | None:
    """Replace the first byte of the stored cell with the last operand's marker."""
    if current_value is None:
        return None
    result = bytearray(current_value)
    if operands:
        last = operands[-1]
        if last and result:
            result[0] = last[0]
    return bytes(result)


def archive_data_merge(
    current_value: bytes | None, operands: Sequence[bytes], prefix: bytes
) -> bytes:
    """Append archive segments, keeping a single archive prefix at the start."""
    parts = [prefix if current_value is None else current_value]
    for data in operands:
        parts.append(data[len(prefix):] if prefix and data.startswith(prefix) else data)
    return b"".join(parts)


def _key(key: Key) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


def _column(column: Column | str) -> Column:
    return Column(column)


class WriteBatch:
    """A sequence of writes applied atomically by :meth:`Database.write`."""

    def __init__(self) -> None:
        self._ops: list[tuple[str, Column, bytes, bytes | None]] = []

    def __len__(self) -> int:
        return len(self._ops)

    def __iter__(self) -> Iterator[tuple[str, Column, bytes, bytes | None]]:
        return iter(self._ops)

    def put(self, column: Column | str, key: Key, value: bytes) -> None:
        self._ops.append(("put", _column(column), _key(key), bytes(value)))

    def delete(self, column: Column | str, key: Key) -> None:
        self._ops.append(("delete", _column(column), _key(key), None))

    def merge(self, column: Column | str, key: Key, value: bytes) -> None:
        self._ops.append(("merge", _column(column), _key(key), bytes(value)))


class Database:
    """Thread-safe ordered store; keys within a column are sorted bytewise."""

    def __init__(self, archive_prefix: bytes = b"") -> None:
        self._lock = threading.RLock()
        self._columns: dict[Column, SortedDict] = {column: SortedDict() for column in Column}
        self._merge_operators: dict[Column, MergeOperator] = {
            Column.ARCHIVES: partial(archive_data_merge, prefix=bytes(archive_prefix)),
            Column.CELLS: cell_merge,
        }

    def _merge_value(self, column: Column, current: bytes | None, operand: bytes) -> bytes:
        operator = self._merge_operators.get(column)
        if operator is None:
            raise ValueError(f"Column `{column.value}` has no merge operator")
        result = operator(current, [operand])
        if result is None:
            raise ValueError(f"Merge failed in column `{column.value}`")
        return result

    def get(self, column: Column | str, key: Key) -> bytes | None:
        with self._lock:
            return self._columns[_column(column)].get(_key(key))

    def put(self, column: Column | str, key: Key, value: bytes) -> None:
        batch = WriteBatch()
        batch.put(column, key, value)
        self.write(batch)

    def delete(self, column: Column | str, key: Key) -> None:
        batch = WriteBatch()
        batch.delete(column, key)
        self.write(batch)

    def merge(self, column: Column | str, key: Key, value: bytes) -> None:
        batch = WriteBatch()
        batch.merge(column, key, value)
        self.write(batch)

    def write(self, batch: Iterable[tuple[str, Column, bytes, bytes | None]]) -> None:
        """Apply all writes of the batch, or none of them if one fails."""
        with self._lock:
            staged: dict[tuple[Column, bytes], bytes | None] = {}

            def current(column: Column, key: bytes) -> bytes | None:
                if (column, key) in staged:
                    return staged[(column, key)]
                return self._columns[column].get(key)

            for kind, column, key, value in batch:
                if kind == "put":
                    staged[(column, key)] = value
                elif kind == "delete":
                    staged[(column, key)] = None
                elif kind == "merge":
                    staged[(column, key)] = self._merge_value(
                        column, current(column, key), value
                    )
                else:
                    raise ValueError(f"Unknown batch operation: {kind}")

            for (column, key), value in staged.items():
                store = self._columns[column]
                if value is None:
                    store.pop(key, None)
                else:
                    store[key] = value

    def iterate(
        self,
        column: Column | str,
        start: Key | None = None,
        reverse: bool = False,
    ) -> Iterator[tuple[bytes, bytes]]:
        """Iterate a snapshot of the column.

        Forward iteration starts at the first key not less than ``start``;
        reverse iteration starts at the last key not greater than ``start``.
        """
        bound = None if start is None else _key(start)
        with self._lock:
            store = self._columns[_column(column)]
            if reverse:
                keys = store.irange(maximum=bound, reverse=True)
            else:
                keys = store.irange(minimum=bound)
            items = [(key, store[key]) for key in keys]
        return iter(items)

    def seek_for_prev(self, column: Column | str, key: Key) -> tuple[bytes, bytes] | None:
        """The entry with the greatest key not greater than ``key``."""
        with self._lock:
            store = self._columns[_column(column)]
            found = next(iter(store.irange(maximum=_key(key), reverse=True)), None)
            return None if found is None else (found, store[found])

    def last(self, column: Column | str) -> tuple[bytes, bytes] | None:
        with self._lock:
            store = self._columns[_column(column)]
            return store.peekitem(-1) if store else None

    def is_empty(self, column: Column | str) -> bool:
        with self._lock:
            return not self._columns[_column(column)]