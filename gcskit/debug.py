"""A bucket wrapper that logs every request and its outcome."""

from __future__ import annotations

import io
import itertools
import json
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, BinaryIO, Iterator

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


def _quote(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def _format_duration(seconds: float) -> str:
    if seconds < 1e-3:
        return f"{seconds * 1e6:.3f}µs"
    if seconds < 1.0:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


class DebugReader:
    """A stream over object contents that logs errors and the end of the read request."""

    def __init__(
        self,
        bucket: DebugBucket,
        request_id: int,
        desc: str,
        start: float,
        wrapped: BinaryIO,
    ) -> None:
        self._bucket = bucket
        self._request_id = request_id
        self._desc = desc
        self._start = start
        self._wrapped = wrapped
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        try:
            return self._wrapped.read(size)
        except Exception as e:
            self._bucket._log(self._request_id, f"-> Read error: {e}")
            raise

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        try:
            return self._wrapped.seek(offset, whence)
        except Exception as e:
            self._bucket._log(self._request_id, f"-> Read error: {e}")
            raise

    def tell(self) -> int:
        return self._wrapped.tell()

    def close(self) -> None:
        """Close the wrapped stream and log the completion of the read request."""
        if self._closed:
            return
        self._closed = True
        try:
            self._wrapped.close()
        except Exception as e:
            self._bucket._finish(self._request_id, self._desc, self._start, e)
            raise
        self._bucket._finish(self._request_id, self._desc, self._start, None)

    def __enter__(self) -> DebugReader:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class DebugBucket:
    """Wraps a bucket, logging the start and finish of each request."""

    def __init__(self, wrapped: Bucket, logger: logging.Logger) -> None:
        self._wrapped = wrapped
        self._logger = logger
        self._ids = itertools.count()
        self._ids_lock = threading.Lock()

    def _mint_request_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def _log(self, request_id: int, text: str) -> None:
        self._logger.debug("Req %s: %s", f"{request_id:#16x}", text)

    def _begin(self, desc: str) -> tuple[int, float]:
        start = time.monotonic()
        request_id = self._mint_request_id()
        self._log(request_id, f"<- {desc}")
        return request_id, start

    def _finish(
        self,
        request_id: int,
        desc: str,
        start: float,
        err: BaseException | None,
    ) -> None:
        duration = _format_duration(time.monotonic() - start)
        outcome = "OK" if err is None else str(err)
        self._log(request_id, f"-> {desc} ({duration}): {outcome}")

    @contextmanager
    def _request(self, desc: str) -> Iterator[None]:
        request_id, start = self._begin(desc)
        try:
            yield
        except Exception as e:
            self._finish(request_id, desc, start, e)
            raise
        self._finish(request_id, desc, start, None)

    def name(self) -> str:
        return self._wrapped.name()

    def move_object(self, req: MoveObjectRequest) -> Object:
        return self._wrapped.move_object(req)

    def new_reader(self, req: ReadObjectRequest) -> DebugReader:
        desc = f"Read({_quote(req.name)}, {req.range})"
        request_id, start = self._begin(desc)
        try:
            stream = self._wrapped.new_reader(req)
        except Exception as e:
            self._finish(request_id, desc, start, e)
            raise
        return DebugReader(self, request_id, desc, start, stream)

    def create_object(self, req: CreateObjectRequest) -> Object:
        with self._request(f"CreateObject({_quote(req.name)})"):
            return self._wrapped.create_object(req)

    def copy_object(self, req: CopyObjectRequest) -> Object:
        desc = f"CopyObject({_quote(req.src_name)}, {_quote(req.dst_name)})"
        with self._request(desc):
            return self._wrapped.copy_object(req)

    def compose_objects(self, req: ComposeObjectsRequest) -> Object:
        with self._request(f"ComposeObjects({_quote(req.dst_name)})"):
            return self._wrapped.compose_objects(req)

    def stat_object(self, req: StatObjectRequest) -> Object:
        with self._request(f"StatObject({_quote(req.name)})"):
            return self._wrapped.stat_object(req)

    def list_objects(self, req: ListObjectsRequest) -> Listing:
        with self._request("ListObjects()"):
            return self._wrapped.list_objects(req)

    def update_object(self, req: UpdateObjectRequest) -> Object:
        with self._request(f"UpdateObject({_quote(req.name)})"):
            return self._wrapped.update_object(req)

    def delete_object(self, req: DeleteObjectRequest) -> None:
        with self._request(f"DeleteObject({_quote(req.name)})"):
            self._wrapped.delete_object(req)