import io
import logging

import pytest

from gcskit.debug import DebugBucket, DebugReader
from gcskit.errors import NotFoundError
from gcskit.model import (
    Bucket,
    ComposeObjectsRequest,
    ComposeSource,
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


class _BrokenStream(io.RawIOBase):
    def readable(self):
        return True

    def read(self, size=-1):
        raise OSError("boom")


class _StubBucket(Bucket):
    def __init__(self):
        self.objects = {}

    def name(self):
        return "some_bucket"

    def _get(self, name):
        if name not in self.objects:
            raise NotFoundError(f"Object {name} not found")
        return self.objects[name]

    def new_reader(self, req):
        if req.name == "broken":
            return _BrokenStream()
        return io.BytesIO(self._get(req.name))

    def create_object(self, req):
        data = req.contents.read()
        self.objects[req.name] = data
        return Object(name=req.name, size=len(data), generation=1)

    def copy_object(self, req):
        data = self._get(req.src_name)
        self.objects[req.dst_name] = data
        return Object(name=req.dst_name, size=len(data))

    def move_object(self, req):
        obj = self.copy_object(CopyObjectRequest(src_name=req.src_name, dst_name=req.dst_name))
        del self.objects[req.src_name]
        return obj

    def compose_objects(self, req):
        data = b"".join(self._get(s.name) for s in req.sources)
        self.objects[req.dst_name] = data
        return Object(name=req.dst_name, size=len(data))

    def stat_object(self, req):
        data = self._get(req.name)
        return Object(name=req.name, size=len(data))

    def list_objects(self, req):
        return Listing(objects=[Object(name=n) for n in sorted(self.objects)])

    def update_object(self, req):
        self._get(req.name)
        return Object(name=req.name, meta_generation=2)

    def delete_object(self, req):
        self.objects.pop(req.name, None)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


@pytest.fixture
def setup(request):
    logger = logging.getLogger(f"gcskit.tests.debug.{request.node.name}")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = _ListHandler()
    logger.addHandler(handler)
    wrapped = _StubBucket()
    bucket = DebugBucket(wrapped, logger)
    yield bucket, wrapped, handler.messages
    logger.removeHandler(handler)


def test_name_passes_through(setup):
    bucket, _, messages = setup
    assert bucket.name() == "some_bucket"
    assert messages == []


def test_create_object_logs_start_and_finish(setup):
    bucket, wrapped, messages = setup
    o = bucket.create_object(CreateObjectRequest(name="taco", contents=b"taco"))
    assert o.size == 4
    assert wrapped.objects["taco"] == b"taco"
    assert len(messages) == 2
    assert messages[0].startswith("Req ")
    assert messages[0].endswith('<- CreateObject("taco")')
    assert '-> CreateObject("taco") (' in messages[1]
    assert messages[1].endswith(": OK")


def test_error_is_logged_and_propagated(setup):
    bucket, _, messages = setup
    with pytest.raises(NotFoundError):
        bucket.stat_object(StatObjectRequest(name="taco"))
    assert len(messages) == 2
    assert '-> StatObject("taco")' in messages[1]
    assert messages[1].endswith("NotFoundError: Object taco not found")


def test_request_ids_increase(setup):
    bucket, _, messages = setup
    bucket.create_object(CreateObjectRequest(name="a", contents=b""))
    bucket.stat_object(StatObjectRequest(name="a"))
    assert len(messages) == 4
    assert "0x0:" in messages[0]
    assert "0x0:" in messages[1]
    assert "0x1:" in messages[2]
    assert "0x1:" in messages[3]


def test_copy_object_logs_both_names(setup):
    bucket, wrapped, messages = setup
    wrapped.objects["taco"] = b"x"
    o = bucket.copy_object(CopyObjectRequest(src_name="taco", dst_name="burrito"))
    assert o.name == "burrito"
    assert messages[0].endswith('<- CopyObject("taco", "burrito")')


def test_list_objects_logged(setup):
    bucket, wrapped, messages = setup
    wrapped.objects["b"] = b""
    wrapped.objects["a"] = b""
    listing = bucket.list_objects(ListObjectsRequest())
    assert [o.name for o in listing.objects] == ["a", "b"]
    assert messages[0].endswith("<- ListObjects()")
    assert messages[1].endswith(": OK")


def test_update_compose_delete_logged(setup):
    bucket, wrapped, messages = setup
    wrapped.objects["a"] = b"12"
    wrapped.objects["b"] = b"345"
    updated = bucket.update_object(UpdateObjectRequest(name="a"))
    composed = bucket.compose_objects(
        ComposeObjectsRequest(
            dst_name="c", sources=[ComposeSource(name="a"), ComposeSource(name="b")]
        )
    )
    bucket.delete_object(DeleteObjectRequest(name="a"))
    assert updated.meta_generation == 2
    assert composed.size == 5
    assert "a" not in wrapped.objects
    assert messages[0].endswith('<- UpdateObject("a")')
    assert messages[2].endswith('<- ComposeObjects("c")')
    assert messages[4].endswith('<- DeleteObject("a")')
    assert len(messages) == 6


def test_move_object_is_not_logged(setup):
    bucket, wrapped, messages = setup
    wrapped.objects["taco"] = b"x"
    o = bucket.move_object(MoveObjectRequest(src_name="taco", dst_name="burrito"))
    assert o.name == "burrito"
    assert wrapped.objects == {"burrito": b"x"}
    assert messages == []


def test_reader_finishes_request_on_close(setup):
    bucket, wrapped, messages = setup
    wrapped.objects["taco"] = b"taco"
    reader = bucket.new_reader(ReadObjectRequest(name="taco"))
    assert isinstance(reader, DebugReader)
    assert reader.read() == b"taco"
    assert len(messages) == 1
    assert messages[0].endswith('<- Read("taco", None)')
    reader.close()
    assert reader.closed
    assert len(messages) == 2
    assert messages[1].endswith(": OK")


def test_reader_close_twice_logs_once(setup):
    bucket, wrapped, messages = setup
    wrapped.objects["taco"] = b"taco"
    with bucket.new_reader(ReadObjectRequest(name="taco")) as reader:
        reader.read(1)
    reader.close()
    assert len(messages) == 2


def test_reader_seek(setup):
    bucket, wrapped, _ = setup
    wrapped.objects["taco"] = b"taco"
    with bucket.new_reader(ReadObjectRequest(name="taco")) as reader:
        assert reader.seek(2) == 2
        assert reader.read() == b"co"
        assert reader.tell() == 4


def test_reader_read_error_is_logged(setup):
    bucket, _, messages = setup
    reader = bucket.new_reader(ReadObjectRequest(name="broken"))
    with pytest.raises(OSError, match="boom"):
        reader.read(10)
    assert messages[1].endswith("-> Read error: boom")


def test_new_reader_failure_finishes_request(setup):
    bucket, _, messages = setup
    with pytest.raises(NotFoundError):
        bucket.new_reader(ReadObjectRequest(name="missing"))
    assert len(messages) == 2
    assert messages[1].endswith("NotFoundError: Object missing not found")