"""Conversions between the service's JSON representation and our types."""

from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from gcskit.model import CreateObjectRequest, Listing, Object

_MD5_SIZE = 16

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(\.\d+)?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)


def to_time(s: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp; an empty string yields None."""
    if not s:
        return None
    m = _RFC3339.match(s)
    if m is None:
        raise ValueError(f"cannot parse {s!r} as RFC 3339")
    year, month, day, hour, minute, second = (int(g) for g in m.groups()[:6])
    frac, zone = m.group(7), m.group(8)
    micro = int((frac[1:] + "000000")[:6]) if frac else 0
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        delta = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * delta)
    return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)


def _to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(value)


def _b64decode(s: str) -> bytes:
    try:
        return base64.b64decode(s, validate=True)
    except binascii.Error as e:
        raise ValueError(str(e)) from e


def to_object(raw: dict[str, Any]) -> Object:
    """Convert a JSON object resource into an Object."""
    out = Object(
        name=raw.get("name", ""),
        content_type=raw.get("contentType", ""),
        content_language=raw.get("contentLanguage", ""),
        cache_control=raw.get("cacheControl", ""),
        content_encoding=raw.get("contentEncoding", ""),
        component_count=_to_int(raw.get("componentCount")),
        size=_to_int(raw.get("size")),
        media_link=raw.get("mediaLink", ""),
        metadata=raw.get("metadata"),
        generation=_to_int(raw.get("generation")),
        meta_generation=_to_int(raw.get("metageneration")),
        storage_class=raw.get("storageClass", ""),
    )

    # The service may report zero components for non-composite objects.
    if out.component_count == 0:
        out.component_count = 1

    owner = raw.get("owner")
    if owner is not None:
        out.owner = owner.get("entity", "")

    try:
        out.deleted = to_time(raw.get("timeDeleted", ""))
    except ValueError as e:
        raise ValueError(f"Decoding TimeDeleted field: {e}") from e

    try:
        out.updated = to_time(raw.get("updated", ""))
    except ValueError as e:
        raise ValueError(f"Decoding Updated field: {e}") from e

    md5_hash = raw.get("md5Hash", "")
    if md5_hash:
        try:
            md5 = _b64decode(md5_hash)
        except ValueError as e:
            raise ValueError(f"Decoding Md5Hash field: {e}") from e
        if len(md5) != _MD5_SIZE:
            raise ValueError(f"Unexpected Md5Hash field: {md5_hash!r}")
        out.md5 = md5

    try:
        crc = _b64decode(raw.get("crc32c", ""))
    except ValueError as e:
        raise ValueError(f"Decoding Crc32c field: {e}") from e
    if len(crc) != 4:
        raise ValueError(f"Wrong length for decoded Crc32c field: {len(crc)}")
    out.crc32c = int.from_bytes(crc, "big")

    return out


def to_objects(raw_items: Iterable[dict[str, Any]] | None) -> list[Object]:
    """Convert a sequence of JSON object resources."""
    result = []
    for raw in raw_items or ():
        try:
            result.append(to_object(raw))
        except ValueError as e:
            raise ValueError(f"converting object {raw.get('name', '')!r}: {e}") from e
    return result


def to_listing(raw: dict[str, Any]) -> Listing:
    """Convert a JSON objects-list response into a Listing."""
    try:
        objects = to_objects(raw.get("items"))
    except ValueError as e:
        raise ValueError(f"converting items: {e}") from e
    return Listing(
        objects=objects,
        collapsed_runs=list(raw.get("prefixes") or []),
        continuation_token=raw.get("nextPageToken", ""),
    )


def to_raw_object(bucket_name: str, req: CreateObjectRequest) -> dict[str, Any]:
    """Build the JSON object resource for an insert request, omitting empty fields."""
    candidates: dict[str, Any] = {
        "bucket": bucket_name,
        "name": req.name,
        "contentType": req.content_type,
        "contentLanguage": req.content_language,
        "contentEncoding": req.content_encoding,
        "cacheControl": req.cache_control,
        "metadata": req.metadata,
    }
    out = {key: value for key, value in candidates.items() if value}

    if req.crc32c is not None:
        crc = (req.crc32c & 0xFFFFFFFF).to_bytes(4, "big")
        out["crc32c"] = base64.b64encode(crc).decode("ascii")

    if req.md5 is not None:
        if len(req.md5) != _MD5_SIZE:
            raise ValueError(f"MD5 must be {_MD5_SIZE} bytes, got {len(req.md5)}")
        out["md5Hash"] = base64.b64encode(req.md5).decode("ascii")

    return out