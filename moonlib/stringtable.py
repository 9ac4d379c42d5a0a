"""Interning table that keeps one shared copy of every string."""

from __future__ import annotations

from typing import Iterator, List, Union

#: Initial number of buckets in a string table.
MIN_STRTAB_SIZE = 32

_MAX_INT = 2**31 - 1
_MASK = 0xFFFFFFFF


def _as_bytes(data: Union[bytes, str]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def lua_hash(data: Union[bytes, str]) -> int:
    """Hash a string the way the string table does (32-bit, unsigned).

    Long strings are sampled: only every ``len // 32 + 1``-th byte,
    counted from the end, takes part.
    """
    raw = _as_bytes(data)
    length = len(raw)
    h = length & _MASK
    step = (length >> 5) + 1
    for pos in range(length, step - 1, -step):
        h = (h ^ (((h << 5) + (h >> 2) + raw[pos - 1]) & _MASK)) & _MASK
    return h


class StringTable:
    """Hash table of interned strings with chained buckets."""

    def __init__(self, size: int = MIN_STRTAB_SIZE) -> None:
        self._check_size(size)
        self._buckets: List[List[bytes]] = [[] for _ in range(size)]
        self._count = 0

    @staticmethod
    def _check_size(size: int) -> None:
        if size < 1 or size & (size - 1):
            raise ValueError("table size must be a positive power of 2")

    @property
    def size(self) -> int:
        """Number of buckets."""
        return len(self._buckets)

    def __len__(self) -> int:
        return self._count

    def __contains__(self, data: object) -> bool:
        if not isinstance(data, (bytes, str)):
            return False
        raw = _as_bytes(data)
        return raw in self._buckets[lua_hash(raw) & (self.size - 1)]

    def __iter__(self) -> Iterator[bytes]:
        for bucket in self._buckets:
            yield from bucket

    def intern(self, data: Union[bytes, str]) -> bytes:
        """Return the shared copy of ``data``, adding it if it is new."""
        raw = _as_bytes(data)
        h = lua_hash(raw)
        bucket = self._buckets[h & (self.size - 1)]
        for existing in bucket:
            if existing == raw:
                return existing
        bucket.insert(0, raw)
        self._count += 1
        if self._count > self.size and self.size <= _MAX_INT // 2:
            self.resize(self.size * 2)
        return raw

    def resize(self, newsize: int) -> None:
        """Rehash every string into ``newsize`` buckets."""
        self._check_size(newsize)
        fresh: List[List[bytes]] = [[] for _ in range(newsize)]
        for bucket in self._buckets:
            for item in bucket:
                fresh[lua_hash(item) & (newsize - 1)].insert(0, item)
        self._buckets = fresh