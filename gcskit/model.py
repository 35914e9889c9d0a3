"""An incomplete API for interacting with Google Cloud Storage: data types and the bucket interface."""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO

# Limits imposed by the service on compose requests.
MAX_SOURCES_PER_COMPOSE_REQUEST = 32
MAX_COMPONENT_COUNT = 1024


@dataclass
class Object:
    """A record describing one generation of a stored object."""

    name: str = ""
    content_type: str = ""
    content_language: str = ""
    cache_control: str = ""
    owner: str = ""
    size: int = 0
    content_encoding: str = ""
    md5: bytes | None = None
    crc32c: int = 0
    media_link: str = ""
    metadata: dict[str, str] | None = None
    generation: int = 0
    meta_generation: int = 0
    storage_class: str = ""
    deleted: datetime | None = None
    updated: datetime | None = None
    component_count: int = 0


@dataclass
class Listing:
    """One page of results from listing a bucket."""

    objects: list[Object] = field(default_factory=list)
    collapsed_runs: list[str] = field(default_factory=list)
    continuation_token: str = ""


@dataclass
class ByteRange:
    """A half-open range [start, limit) of bytes within an object."""

    start: int = 0
    limit: int = 0


@dataclass
class ReadObjectRequest:
    name: str = ""
    generation: int = 0
    range: ByteRange | None = None


@dataclass
class CreateObjectRequest:
    """Attributes and contents for a new object; bytes contents become a stream."""

    name: str = ""
    contents: BinaryIO | bytes = b""
    content_type: str = ""
    content_language: str = ""
    content_encoding: str = ""
    cache_control: str = ""
    metadata: dict[str, str] | None = None
    crc32c: int | None = None
    md5: bytes | None = None
    generation_precondition: int | None = None
    meta_generation_precondition: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.contents, (bytes, bytearray, memoryview)):
            self.contents = io.BytesIO(bytes(self.contents))


@dataclass
class CopyObjectRequest:
    src_name: str = ""
    dst_name: str = ""
    src_generation: int = 0
    src_meta_generation_precondition: int | None = None


@dataclass
class MoveObjectRequest:
    src_name: str = ""
    dst_name: str = ""
    src_generation: int = 0
    src_meta_generation_precondition: int | None = None


@dataclass
class ComposeSource:
    name: str = ""
    generation: int = 0


@dataclass
class ComposeObjectsRequest:
    dst_name: str = ""
    sources: list[ComposeSource] = field(default_factory=list)
    dst_generation_precondition: int | None = None
    dst_meta_generation_precondition: int | None = None
    content_type: str = ""
    metadata: dict[str, str] | None = None


@dataclass
class StatObjectRequest:
    name: str = ""


@dataclass
class ListObjectsRequest:
    prefix: str = ""
    delimiter: str = ""
    continuation_token: str = ""
    max_results: int = 0


@dataclass
class UpdateObjectRequest:
    """A patch for an object; None fields are left alone, None metadata values are deleted."""

    name: str = ""
    generation: int = 0
    meta_generation_precondition: int | None = None
    content_type: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    cache_control: str | None = None
    metadata: dict[str, str | None] = field(default_factory=dict)


@dataclass
class DeleteObjectRequest:
    name: str = ""
    generation: int = 0
    meta_generation_precondition: int | None = None


class Bucket(ABC):
    """A storage bucket bound to a name. Implementations are safe for concurrent use."""

    @abstractmethod
    def name(self) -> str:
        """Return the bucket's name."""

    @abstractmethod
    def new_reader(self, req: ReadObjectRequest) -> BinaryIO:
        """Return a readable, seekable, closable stream over an object's contents."""

    @abstractmethod
    def create_object(self, req: CreateObjectRequest) -> Object:
        """Create or overwrite an object."""

    @abstractmethod
    def copy_object(self, req: CopyObjectRequest) -> Object:
        """Copy an object to a new name, preserving its metadata."""

    @abstractmethod
    def move_object(self, req: MoveObjectRequest) -> Object:
        """Move an object to a new name, preserving its metadata."""

    @abstractmethod
    def compose_objects(self, req: ComposeObjectsRequest) -> Object:
        """Concatenate source objects into a destination object."""

    @abstractmethod
    def stat_object(self, req: StatObjectRequest) -> Object:
        """Return current information about an object."""

    @abstractmethod
    def list_objects(self, req: ListObjectsRequest) -> Listing:
        """List objects matching the request."""

    @abstractmethod
    def update_object(self, req: UpdateObjectRequest) -> Object:
        """Patch an object's attributes."""

    @abstractmethod
    def delete_object(self, req: DeleteObjectRequest) -> None:
        """Delete an object; a missing object is not an error."""