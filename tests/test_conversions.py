import base64
import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from gcskit.conversions import (
    to_listing,
    to_object,
    to_objects,
    to_raw_object,
    to_time,
)
from gcskit.model import CreateObjectRequest


def _crc_field(value):
    return base64.b64encode(value.to_bytes(4, "big")).decode("ascii")


def test_to_time_empty_is_none():
    assert to_time("") is None


def test_to_time_utc():
    assert to_time("2015-04-05T02:15:00Z") == datetime(
        2015, 4, 5, 2, 15, 0, tzinfo=timezone.utc
    )


def test_to_time_offset_and_fraction():
    t = to_time("2015-04-05T02:15:00.5+02:00")
    assert t.utcoffset() == timedelta(hours=2)
    assert t.microsecond == 500000


def test_to_time_rejects_garbage():
    with pytest.raises(ValueError):
        to_time("yesterday")


def test_to_object_basic_fields():
    raw = {
        "name": "taco",
        "contentType": "text/plain",
        "size": "17",
        "generation": "1234",
        "metageneration": "5",
        "owner": {"entity": "user-fake"},
        "crc32c": _crc_field(0xDEADBEEF),
        "updated": "2015-04-05T02:15:00Z",
        "metadata": {"foo": "bar"},
    }
    o = to_object(raw)
    assert o.name == "taco"
    assert o.content_type == "text/plain"
    assert o.size == 17
    assert o.generation == 1234
    assert o.meta_generation == 5
    assert o.owner == "user-fake"
    assert o.crc32c == 0xDEADBEEF
    assert o.metadata == {"foo": "bar"}
    assert o.updated == datetime(2015, 4, 5, 2, 15, tzinfo=timezone.utc)
    assert o.deleted is None
    assert o.md5 is None


def test_zero_component_count_becomes_one():
    o = to_object({"name": "taco", "crc32c": _crc_field(0)})
    assert o.component_count == 1


def test_component_count_kept():
    o = to_object({"name": "taco", "crc32c": _crc_field(0), "componentCount": 3})
    assert o.component_count == 3


def test_md5_decoded():
    digest = hashlib.md5(b"taco").digest()
    raw = {
        "name": "taco",
        "crc32c": _crc_field(0),
        "md5Hash": base64.b64encode(digest).decode("ascii"),
    }
    assert to_object(raw).md5 == digest


def test_md5_wrong_length_rejected():
    raw = {
        "name": "taco",
        "crc32c": _crc_field(0),
        "md5Hash": base64.b64encode(b"short").decode("ascii"),
    }
    with pytest.raises(ValueError, match="Unexpected Md5Hash field"):
        to_object(raw)


def test_missing_crc32c_rejected():
    with pytest.raises(ValueError, match="Wrong length for decoded Crc32c field"):
        to_object({"name": "taco"})


def test_invalid_crc32c_base64_rejected():
    with pytest.raises(ValueError, match="Decoding Crc32c field"):
        to_object({"name": "taco", "crc32c": "!!!!"})


def test_bad_updated_time_rejected():
    raw = {"name": "taco", "crc32c": _crc_field(0), "updated": "nope"}
    with pytest.raises(ValueError, match="Decoding Updated field"):
        to_object(raw)


def test_to_objects_preserves_order():
    items = [
        {"name": "taco", "crc32c": _crc_field(1)},
        {"name": "burrito", "crc32c": _crc_field(2)},
    ]
    assert [o.name for o in to_objects(items)] == ["taco", "burrito"]
    assert to_objects(None) == []


def test_to_objects_names_failing_object():
    with pytest.raises(ValueError, match="burrito"):
        to_objects([{"name": "burrito"}])


def test_to_listing():
    raw = {
        "items": [{"name": "taco", "crc32c": _crc_field(7)}],
        "prefixes": ["enchilada/"],
        "nextPageToken": "queso",
    }
    listing = to_listing(raw)
    assert [o.name for o in listing.objects] == ["taco"]
    assert listing.collapsed_runs == ["enchilada/"]
    assert listing.continuation_token == "queso"


def test_to_listing_empty():
    listing = to_listing({})
    assert listing.objects == []
    assert listing.collapsed_runs == []
    assert listing.continuation_token == ""


def test_to_raw_object_omits_empty_fields():
    raw = to_raw_object("some_bucket", CreateObjectRequest(name="taco"))
    assert raw == {"bucket": "some_bucket", "name": "taco"}


def test_to_raw_object_includes_attributes():
    req = CreateObjectRequest(
        name="taco",
        content_type="text/plain",
        content_language="fr",
        content_encoding="gzip",
        cache_control="no-cache",
        metadata={"foo": "bar"},
    )
    raw = to_raw_object("some_bucket", req)
    assert raw["contentType"] == "text/plain"
    assert raw["contentLanguage"] == "fr"
    assert raw["contentEncoding"] == "gzip"
    assert raw["cacheControl"] == "no-cache"
    assert raw["metadata"] == {"foo": "bar"}


def test_checksums_round_trip():
    digest = hashlib.md5(b"burrito").digest()
    req = CreateObjectRequest(name="taco", crc32c=0xDEADBEEF, md5=digest)
    o = to_object(to_raw_object("some_bucket", req))
    assert o.crc32c == 0xDEADBEEF
    assert o.md5 == digest
    assert o.name == "taco"


def test_crc32c_zero_is_still_sent():
    raw = to_raw_object("b", CreateObjectRequest(name="taco", crc32c=0))
    assert base64.b64decode(raw["crc32c"]) == bytes(4)
    assert "md5Hash" not in raw