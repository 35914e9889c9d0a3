"""A bucket wrapper that caches object records to avoid stat round trips."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import BinaryIO, Callable, Iterable

from gcskit.caching.stat_cache import StatCache
from gcskit.errors import NotFoundError
from gcskit.model import (
    Bucket,
    ComposeObjectsRequest,
    CopyObjectRequest,
    CreateObjectRequest,
    DeleteObjectRequest,
    Listing,
    ListObjectsRequest,
    MoveObjectRequest,
    Object,
    ReadObjectRequest,
    StatObjectRequest,
    UpdateObjectRequest,
)


class FastStatBucket(Bucket):
    """Caches records returned by the wrapped bucket for ttl.

    Records are invalidated when modifications go through this bucket. With
    negcache set, a NotFoundError from stat_object is cached as well.
    """

    def __init__(
        self,
        ttl: timedelta,
        cache: StatCache,
        clock: Callable[[], datetime],
        wrapped: Bucket,
        negcache: bool = True,
    ) -> None:
        self._ttl = ttl
        self._cache = cache
        self._clock = clock
        self._wrapped = wrapped
        self._negcache = negcache
        self._lock = threading.Lock()

    def _insert_multiple(self, objects: Iterable[Object]) -> None:
        with self._lock:
            expiration = self._clock() + self._ttl
            for o in objects:
                self._cache.insert(o, expiration)

    def _insert(self, o: Object) -> None:
        self._insert_multiple([o])

    def _add_negative_entry(self, name: str) -> None:
        with self._lock:
            self._cache.add_negative_entry(name, self._clock() + self._ttl)

    def _invalidate(self, name: str) -> None:
        with self._lock:
            self._cache.erase(name)

    def _look_up(self, name: str) -> tuple[bool, Object | None]:
        with self._lock:
            return self._cache.look_up(name, self._clock())

    def name(self) -> str:
        return self._wrapped.name()

    def new_reader(self, req: ReadObjectRequest) -> BinaryIO:
        return self._wrapped.new_reader(req)

    def create_object(self, req: CreateObjectRequest) -> Object:
        self._invalidate(req.name)
        o = self._wrapped.create_object(req)
        self._insert(o)
        return o

    def copy_object(self, req: CopyObjectRequest) -> Object:
        self._invalidate(req.dst_name)
        o = self._wrapped.copy_object(req)
        self._insert(o)
        return o

    def compose_objects(self, req: ComposeObjectsRequest) -> Object:
        self._invalidate(req.dst_name)
        o = self._wrapped.compose_objects(req)
        self._insert(o)
        return o

    def stat_object(self, req: StatObjectRequest) -> Object:
        hit, entry = self._look_up(req.name)
        if hit:
            if entry is None:
                raise NotFoundError(f"Negative cache entry for {req.name}")
            return entry

        try:
            o = self._wrapped.stat_object(req)
        except NotFoundError:
            if self._negcache:
                self._add_negative_entry(req.name)
            raise

        self._insert(o)
        return o

    def list_objects(self, req: ListObjectsRequest) -> Listing:
        listing = self._wrapped.list_objects(req)
        self._insert_multiple(listing.objects)
        return listing

    def update_object(self, req: UpdateObjectRequest) -> Object:
        self._invalidate(req.name)
        o = self._wrapped.update_object(req)
        self._insert(o)
        return o

    def delete_object(self, req: DeleteObjectRequest) -> None:
        self._invalidate(req.name)
        self._wrapped.delete_object(req)

    def move_object(self, req: MoveObjectRequest) -> Object:
        self._invalidate(req.src_name)
        self._invalidate(req.dst_name)
        o = self._wrapped.move_object(req)
        self._insert(o)
        return o