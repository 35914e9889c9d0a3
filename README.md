# gcskit

A small, incomplete API for working with Google Cloud Storage buckets: an HTTP
client for the JSON API, a logging wrapper, a stat-caching wrapper and a
complete in-memory fake for tests.

## Installing

```
pip install gcskit
```

To run the test suite:

```
pip install "gcskit[test]"
pytest
```

## The pieces

- `gcskit.model` holds the data types (`Object`, `Listing`, `ByteRange`), the
  request types and the abstract `Bucket` interface.
- `gcskit.http_bucket.HttpBucket` talks to the JSON API with a
  `requests.Session`.
- `gcskit.debug.DebugBucket` wraps a bucket and logs, at debug level, the start
  of each request and its end with duration and outcome. Readers it returns
  are `gcskit.debug.DebugReader` objects, which log read or seek errors and
  log the end of the request when closed.
- `gcskit.caching.fast_stat_bucket.FastStatBucket` wraps a bucket and keeps
  object records in a `gcskit.caching.stat_cache.StatCache`.
- `gcskit.fake.bucket.FakeBucket` is an in-memory bucket;
  `gcskit.fake.connection.FakeConnection` hands out fake buckets by name,
  creating each one empty on first use and returning the same one afterwards.
- `gcskit.conversions` converts between the API's JSON records and the types
  above.

## Bucket operations

Every operation takes a request object from `gcskit.model`:

| Method            | Request                 | Returns                     |
|-------------------|-------------------------|-----------------------------|
| `name`            | –                       | the bucket name             |
| `new_reader`      | `ReadObjectRequest`     | a readable, seekable stream |
| `create_object`   | `CreateObjectRequest`   | `Object`                    |
| `copy_object`     | `CopyObjectRequest`     | `Object`                    |
| `move_object`     | `MoveObjectRequest`     | `Object`                    |
| `compose_objects` | `ComposeObjectsRequest` | `Object`                    |
| `stat_object`     | `StatObjectRequest`     | `Object`                    |
| `list_objects`    | `ListObjectsRequest`    | `Listing`                   |
| `update_object`   | `UpdateObjectRequest`   | `Object`                    |
| `delete_object`   | `DeleteObjectRequest`   | `None`                      |

A read may be limited with a `ByteRange` (half-open `[start, limit)`); a
compose request names its parts with `ComposeSource` entries. The contents of
a `CreateObjectRequest` may be given as bytes or as a binary stream. In an
`UpdateObjectRequest`, fields left as `None` are unchanged and metadata keys
mapped to `None` are removed.

Errors, from `gcskit.errors`:

- `NotFoundError` – the object, or the requested generation, does not exist;
- `PreconditionError` – a generation or meta-generation precondition failed;
- `ApiError` – any other non-2xx HTTP response (`code`, `message`, `body`).

Invalid names, bad checksums and malformed records raise `ValueError`.
Deleting an object that does not exist is not an error.

## Connecting

```python
import logging
from gcskit.connection import ConnConfig, new_conn
from gcskit.model import StatObjectRequest

conn = new_conn(ConnConfig(
    token_source=lambda: "token",
    gcs_debug_logger=logging.getLogger("gcs"),
))
bucket = conn.open_bucket("some-bucket")
obj = bucket.stat_object(StatObjectRequest(name="taco"))
```

`ConnConfig` fields:

- `token_source` (required) – called for every request; its result is sent as
  a bearer token. `new_conn` raises `ValueError` without it.
- `user_agent` – the User-Agent header; `"gcskit"` when empty.
- `transport` – a `requests` adapter mounted for `http://` and `https://`.
- `gcs_debug_logger` – when set, buckets are wrapped in `DebugBucket`.
- `http_debug_logger` – when set, every HTTP request and response status is
  logged; this replaces `transport` with the standard adapter.

`Connection.open_bucket(name)` makes one listing request with
`max_results=1`. A 403 response raises `PermissionError` ("Bad credentials for
bucket ..."), a 404 raises `LookupError` ("Unknown bucket ..."); any other
failure of that probe is ignored and the bucket is returned.

## The stat cache

`StatCache(capacity)` is a least-recently-used map from name to record, with a
per-entry expiration time. A positive entry is not replaced by a record with
an older generation, or the same generation and an older meta-generation;
negative entries (`add_negative_entry`) mark a name as missing. `look_up(name,
now)` returns `(hit, object)`, the object being `None` for a negative entry;
entries whose expiration lies before `now` are dropped. It does no locking of
its own.

`FastStatBucket(ttl, cache, clock, wrapped, negcache=True)` answers
`stat_object` from the cache when it can, records every object returned by
create, copy, compose, move, update, stat and list for `ttl`, and erases the
affected names before modifying calls. With `negcache`, a `NotFoundError` from
the wrapped bucket's `stat_object` is cached as a negative entry. `clock` is a
callable returning the current `datetime`.

## The in-memory fake

`FakeBucket(clock, name)` keeps objects sorted by name and checks names (1 to
1024 bytes of UTF-8, no CR or LF; see `check_name`). Generation numbers grow
strictly across the bucket; MD5 and CRC32C are computed and, when supplied on
upload, verified. Listings honour prefixes, delimiters, `max_results` (default
1000) and continuation tokens; composed objects carry the summed component
count (at most 32 sources and 1024 components) and no MD5. `move_object`
copies and then removes the source.

## Limits

- `HttpBucket` does not implement `new_reader` or `update_object`: it cannot
  download object contents or patch object attributes. Its `move_object` is a
  copy followed by a delete of the source.
- Requests are not retried, and `open_bucket` adds no caching layer; wrap the
  bucket in `FastStatBucket` yourself if you want one.
- There is no command-line tool.