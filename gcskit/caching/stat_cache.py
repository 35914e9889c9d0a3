"""Caching of object records to eliminate round trips: the stat cache."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime

from gcskit.model import Object


@dataclass(frozen=True)
class _Entry:
    """A cached record; an object of None marks a negative entry."""

    o: Object | None
    expiration: datetime


def _should_replace(o: Object, existing: _Entry) -> bool:
    """Decide whether a new positive record should replace an existing entry."""
    if existing.o is None:
        return True
    if o.generation != existing.o.generation:
        return o.generation > existing.o.generation
    if o.meta_generation != existing.o.meta_generation:
        return o.meta_generation > existing.o.meta_generation
    return True


class StatCache:
    """A bounded LRU map from object name to the most recent known record.

    Callers must provide their own synchronization.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        # Least recently used first.
        self._entries: OrderedDict[str, _Entry] = OrderedDict()

    def _get(self, name: str) -> _Entry | None:
        entry = self._entries.get(name)
        if entry is not None:
            self._entries.move_to_end(name)
        return entry

    def _put(self, name: str, entry: _Entry) -> None:
        self._entries[name] = entry
        self._entries.move_to_end(name)
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def insert(self, o: Object, expiration: datetime) -> None:
        """Record o until expiration, unless a newer positive entry is present."""
        existing = self._get(o.name)
        if existing is not None and not _should_replace(o, existing):
            return
        self._put(o.name, _Entry(o=o, expiration=expiration))

    def add_negative_entry(self, name: str, expiration: datetime) -> None:
        """Record that name does not exist, overwriting any existing entry."""
        self._put(name, _Entry(o=None, expiration=expiration))

    def erase(self, name: str) -> None:
        """Drop the entry for name, if any."""
        self._entries.pop(name, None)

    def look_up(self, name: str, now: datetime) -> tuple[bool, Object | None]:
        """Return (hit, record); the record is None for a negative entry.

        An entry that expired before now is erased and reported as a miss.
        """
        entry = self._get(name)
        if entry is None:
            return False, None
        if entry.expiration < now:
            self.erase(name)
            return False, None
        return True, entry.o

    def check_invariants(self) -> None:
        """Raise RuntimeError if the internal state is inconsistent."""
        if len(self._entries) > self._capacity:
            raise RuntimeError(
                f"Cache holds {len(self._entries)} entries, capacity {self._capacity}"
            )
        for key, entry in self._entries.items():
            if entry.o is not None and entry.o.name != key:
                raise RuntimeError(f"Name mismatch: {entry.o.name!r} vs. {key!r}")