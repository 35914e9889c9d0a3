"""An in-memory stand-in for a connection to the storage service."""

from __future__ import annotations

import threading

from gcskit.fake.bucket import Clock, FakeBucket


class FakeConnection:
    """Gives access to buckets of any name, each initially empty and kept per name."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # Each bucket is stored under its own name.
        self._buckets: dict[str, FakeBucket] = {}

    def check_invariants(self) -> None:
        """Raise RuntimeError if a bucket is stored under a name other than its own."""
        for key, bucket in self._buckets.items():
            if bucket.name() != key:
                raise RuntimeError(f"Name mismatch: {bucket.name()!r} vs. {key!r}")

    def open_bucket(self, name: str) -> FakeBucket:
        """Return the bucket with the given name, creating it if needed."""
        with self._lock:
            self.check_invariants()
            try:
                bucket = self._buckets.get(name)
                if bucket is None:
                    bucket = FakeBucket(self._clock, name)
                    self._buckets[name] = bucket
                return bucket
            finally:
                self.check_invariants()