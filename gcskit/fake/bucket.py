"""An in-memory bucket with the same semantics as the storage service."""

from __future__ import annotations

import bisect
import hashlib
import io
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterator

from gcskit.errors import NotFoundError, PreconditionError
from gcskit.model import (
    MAX_COMPONENT_COUNT,
    MAX_SOURCES_PER_COMPOSE_REQUEST,
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

Clock = Callable[[], datetime]

_MAX_NAME_LENGTH = 1024
_DEFAULT_MAX_RESULTS = 1000
_MEDIA_LINK_PREFIX = "http://localhost/download/storage/fake/"
_MAX_CODE_POINT = 0x10FFFF
_SURROGATE_START = 0xD800
_SURROGATE_END = 0xDFFF


def _make_crc32c_table() -> tuple[int, ...]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (c >> 1) ^ 0x82F63B78 if c & 1 else c >> 1
        table.append(c)
    return tuple(table)


_CRC32C_TABLE = _make_crc32c_table()


def _crc32c(data: bytes) -> int:
    """CRC-32 with the Castagnoli polynomial."""
    crc = 0xFFFFFFFF
    for byte in data:
        crc = _CRC32C_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def _copy_object(o: Object) -> Object:
    return replace(o, metadata=dict(o.metadata) if o.metadata is not None else None)


def prefix_successor(prefix: str) -> str:
    """Return the smallest string greater than prefix that does not start with it.

    When no such string exists (the empty string, or one made only of the
    largest code point) the empty string is returned.
    """
    chars = list(prefix)
    while chars:
        last = ord(chars[-1])
        if last != _MAX_CODE_POINT:
            nxt = last + 1
            if _SURROGATE_START <= nxt <= _SURROGATE_END:
                nxt = _SURROGATE_END + 1
            chars[-1] = chr(nxt)
            break
        chars.pop()
    return "".join(chars)


def check_name(name: str) -> None:
    """Raise ValueError if name is not a legal object name."""
    length = len(name.encode("utf-8", "surrogatepass"))
    if length == 0 or length > _MAX_NAME_LENGTH:
        raise ValueError("Invalid object name: length must be in [1, 1024]")
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("Invalid object name: not valid UTF-8") from None
    if "\n" in name or "\r" in name:
        raise ValueError("Invalid object name: must not contain CR or LF")


@dataclass
class _FakeObject:
    metadata: Object
    data: bytes


def _name_key(fo: _FakeObject) -> str:
    return fo.metadata.name


class FakeBucket(Bucket):
    """An in-memory bucket; the clock supplies timestamps for updates."""

    def __init__(self, clock: Clock, name: str) -> None:
        self._clock = clock
        self._name = name
        self._lock = threading.Lock()
        # Sorted by name, strictly increasing.
        self._objects: list[_FakeObject] = []
        # Upper bound on every generation number in _objects.
        self._prev_generation = 0

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            self.check_invariants()
            try:
                yield
            finally:
                self.check_invariants()

    def check_invariants(self) -> None:
        """Raise RuntimeError if the internal state is inconsistent."""
        for a, b in zip(self._objects, self._objects[1:]):
            if not a.metadata.name < b.metadata.name:
                raise RuntimeError(
                    "Object names are not strictly increasing: "
                    f"{a.metadata.name} vs. {b.metadata.name}"
                )
        for fo in self._objects:
            if fo.metadata.generation > self._prev_generation:
                raise RuntimeError(
                    f"Object generation {fo.metadata.generation} "
                    f"exceeds {self._prev_generation}"
                )

    # Index helpers; callers hold the lock.

    def _lower_bound(self, name: str) -> int:
        return bisect.bisect_left(self._objects, name, key=_name_key)

    def _find(self, name: str) -> int | None:
        i = self._lower_bound(name)
        if i < len(self._objects) and self._objects[i].metadata.name == name:
            return i
        return None

    def _prefix_upper_bound(self, prefix: str) -> int:
        successor = prefix_successor(prefix)
        if not successor:
            return len(self._objects)
        return self._lower_bound(successor)

    def _store(self, fo: _FakeObject) -> None:
        index = self._find(fo.metadata.name)
        if index is not None:
            self._objects[index] = fo
        else:
            bisect.insort(self._objects, fo, key=_name_key)

    def _mint_object(self, req: CreateObjectRequest, contents: bytes) -> _FakeObject:
        self._prev_generation += 1
        metadata = Object(
            name=req.name,
            content_type=req.content_type,
            content_language=req.content_language,
            cache_control=req.cache_control,
            owner="user-fake",
            size=len(contents),
            content_encoding=req.content_encoding,
            component_count=1,
            md5=hashlib.md5(contents).digest(),
            crc32c=_crc32c(contents),
            media_link=_MEDIA_LINK_PREFIX + req.name,
            metadata=dict(req.metadata) if req.metadata is not None else None,
            generation=self._prev_generation,
            meta_generation=1,
            storage_class="STANDARD",
            updated=self._clock(),
        )
        return _FakeObject(metadata=metadata, data=contents)

    def _create_object_locked(self, req: CreateObjectRequest) -> Object:
        check_name(req.name)

        contents = req.contents
        if not isinstance(contents, (bytes, bytearray)):
            contents = contents.read()
        contents = bytes(contents)

        index = self._find(req.name)
        existing = self._objects[index] if index is not None else None

        if req.crc32c is not None:
            actual_crc = _crc32c(contents)
            if actual_crc != req.crc32c:
                raise ValueError(
                    f"CRC32C mismatch: got 0x{actual_crc:08x}, "
                    f"expected 0x{req.crc32c:08x}"
                )

        if req.md5 is not None:
            actual_md5 = hashlib.md5(contents).digest()
            if actual_md5 != req.md5:
                raise ValueError(
                    f"MD5 mismatch: got {actual_md5.hex()}, expected {req.md5.hex()}"
                )

        gen_pre = req.generation_precondition
        if gen_pre is not None:
            if gen_pre == 0 and existing is not None:
                raise PreconditionError("Precondition failed: object exists")
            if gen_pre > 0:
                if existing is None:
                    raise PreconditionError(
                        "Precondition failed: object doesn't exist"
                    )
                if existing.metadata.generation != gen_pre:
                    raise PreconditionError(
                        "Precondition failed: object has generation "
                        f"{existing.metadata.generation}"
                    )

        meta_pre = req.meta_generation_precondition
        if meta_pre is not None:
            if existing is None:
                raise PreconditionError("Precondition failed: object doesn't exist")
            if existing.metadata.meta_generation != meta_pre:
                raise PreconditionError(
                    "Precondition failed: object has meta-generation "
                    f"{existing.metadata.meta_generation}"
                )

        fo = self._mint_object(req, contents)
        self._store(fo)
        return _copy_object(fo.metadata)

    def _read_locked(self, req: ReadObjectRequest) -> tuple[bytes, int]:
        index = self._find(req.name)
        if index is None:
            raise NotFoundError(f"Object {req.name} not found")

        fo = self._objects[index]
        if req.generation != 0 and req.generation != fo.metadata.generation:
            raise NotFoundError(
                f"Object {req.name} generation {req.generation} not found"
            )

        result = fo.data
        if req.range is not None:
            start, limit = req.range.start, req.range.limit
            size = len(result)
            if start > limit or start > size:
                start = limit = 0
            limit = min(limit, size)
            result = result[start:limit]

        return result, index

    def _copy_locked(self, req: CopyObjectRequest) -> Object:
        check_name(req.dst_name)

        src_index = self._find(req.src_name)
        if src_index is None:
            raise NotFoundError(f"Object {req.src_name!r} not found")
        src = self._objects[src_index]

        if req.src_generation != 0 and src.metadata.generation != req.src_generation:
            raise NotFoundError(
                f"Object {req.src_name} generation {req.src_generation} not found"
            )

        pre = req.src_meta_generation_precondition
        if pre is not None and src.metadata.meta_generation != pre:
            raise PreconditionError(
                f"Object {req.src_name!r} has meta-generation "
                f"{src.metadata.meta_generation}"
            )

        # A fresh generation keeps the destination's generations increasing.
        self._prev_generation += 1
        metadata = _copy_object(src.metadata)
        metadata.name = req.dst_name
        metadata.media_link = _MEDIA_LINK_PREFIX + req.dst_name
        metadata.generation = self._prev_generation

        self._store(_FakeObject(metadata=metadata, data=src.data))
        return _copy_object(metadata)

    # Public interface.

    def name(self) -> str:
        return self._name

    def list_objects(self, req: ListObjectsRequest) -> Listing:
        with self._locked():
            listing = Listing()
            max_results = req.max_results or _DEFAULT_MAX_RESULTS

            name_start = req.prefix
            if req.continuation_token and req.continuation_token > name_start:
                name_start = req.continuation_token

            index_start = self._lower_bound(name_start)
            prefix_limit = self._prefix_upper_bound(req.prefix)
            index_limit = min(index_start + max_results, prefix_limit)

            last_was_prefix = False
            for fo in self._objects[index_start:index_limit]:
                name = fo.metadata.name
                if req.delimiter:
                    rest = name[len(req.prefix):]
                    pos = rest.find(req.delimiter)
                    if pos >= 0:
                        end = len(req.prefix) + pos + len(req.delimiter)
                        run = name[:end]
                        if not listing.collapsed_runs or listing.collapsed_runs[-1] != run:
                            listing.collapsed_runs.append(run)
                        last_was_prefix = True
                        continue

                last_was_prefix = False
                listing.objects.append(_copy_object(fo.metadata))

            if index_limit < prefix_limit:
                if last_was_prefix:
                    # Skip everything else that would collapse into the same run.
                    token = prefix_successor(listing.collapsed_runs[-1])
                    if not token:
                        raise RuntimeError(
                            "Unexpected empty string from prefix_successor"
                        )
                    listing.continuation_token = token
                else:
                    listing.continuation_token = self._objects[index_limit].metadata.name

            return listing

    def new_reader(self, req: ReadObjectRequest) -> io.BytesIO:
        with self._locked():
            data, _ = self._read_locked(req)
            return io.BytesIO(data)

    def create_object(self, req: CreateObjectRequest) -> Object:
        with self._locked():
            return self._create_object_locked(req)

    def copy_object(self, req: CopyObjectRequest) -> Object:
        with self._locked():
            return self._copy_locked(req)

    def move_object(self, req: MoveObjectRequest) -> Object:
        """Copy the source to the destination name and remove the source."""
        with self._locked():
            moved = self._copy_locked(
                CopyObjectRequest(
                    src_name=req.src_name,
                    dst_name=req.dst_name,
                    src_generation=req.src_generation,
                    src_meta_generation_precondition=req.src_meta_generation_precondition,
                )
            )
            if req.src_name != req.dst_name:
                index = self._find(req.src_name)
                if index is not None:
                    del self._objects[index]
            return moved

    def compose_objects(self, req: ComposeObjectsRequest) -> Object:
        with self._locked():
            if len(req.sources) < 1:
                raise ValueError("You must provide at least one source component")
            if len(req.sources) > MAX_SOURCES_PER_COMPOSE_REQUEST:
                raise ValueError("You have provided too many source components")

            parts = []
            component_count = 0
            for src in req.sources:
                data, index = self._read_locked(
                    ReadObjectRequest(name=src.name, generation=src.generation)
                )
                parts.append(data)
                component_count += self._objects[index].metadata.component_count

            if component_count > MAX_COMPONENT_COUNT:
                raise ValueError("Result would have too many components")

            self._create_object_locked(
                CreateObjectRequest(
                    name=req.dst_name,
                    contents=b"".join(parts),
                    content_type=req.content_type,
                    metadata=req.metadata,
                    generation_precondition=req.dst_generation_precondition,
                    meta_generation_precondition=req.dst_meta_generation_precondition,
                )
            )

            index = self._find(req.dst_name)
            assert index is not None
            metadata = self._objects[index].metadata
            metadata.component_count = component_count
            # Composite objects carry no MD5 hash.
            metadata.md5 = None
            return _copy_object(metadata)

    def stat_object(self, req: StatObjectRequest) -> Object:
        with self._locked():
            index = self._find(req.name)
            if index is None:
                raise NotFoundError(f"Object {req.name} not found")
            return _copy_object(self._objects[index].metadata)

    def update_object(self, req: UpdateObjectRequest) -> Object:
        with self._locked():
            index = self._find(req.name)
            if index is None:
                raise NotFoundError(f"Object {req.name} not found")

            obj = self._objects[index].metadata
            if req.generation != 0 and obj.generation != req.generation:
                raise NotFoundError(
                    f"Object {req.name!r} generation {req.generation} not found"
                )

            pre = req.meta_generation_precondition
            if pre is not None and obj.meta_generation != pre:
                raise PreconditionError(
                    f"Object {obj.name!r} has meta-generation {obj.meta_generation}"
                )

            if req.content_type is not None:
                obj.content_type = req.content_type
            if req.content_encoding is not None:
                obj.content_encoding = req.content_encoding
            if req.content_language is not None:
                obj.content_language = req.content_language
            if req.cache_control is not None:
                obj.cache_control = req.cache_control

            if req.metadata:
                if obj.metadata is None:
                    obj.metadata = {}
                for key, value in req.metadata.items():
                    if value is None:
                        obj.metadata.pop(key, None)
                    else:
                        obj.metadata[key] = value

            obj.meta_generation += 1
            obj.updated = self._clock()
            return _copy_object(obj)

    def delete_object(self, req: DeleteObjectRequest) -> None:
        with self._locked():
            index = self._find(req.name)
            if index is None:
                return

            metadata = self._objects[index].metadata
            if req.generation != 0 and metadata.generation != req.generation:
                return

            pre = req.meta_generation_precondition
            if pre is not None and metadata.meta_generation != pre:
                raise PreconditionError(
                    f"Object {req.name!r} has meta-generation {metadata.meta_generation}"
                )

            del self._objects[index]