"""A bucket that talks to the storage service's JSON API over HTTP."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote, urlencode

import requests

from gcskit.conversions import to_listing, to_object, to_raw_object
from gcskit.errors import ApiError, NotFoundError, PreconditionError
from gcskit.model import (
    ComposeObjectsRequest,
    CopyObjectRequest,
    CreateObjectRequest,
    DeleteObjectRequest,
    Listing,
    ListObjectsRequest,
    MoveObjectRequest,
    Object,
    StatObjectRequest,
)

_API_ROOT = "https://www.googleapis.com/storage/v1"
_UPLOAD_ROOT = "https://www.googleapis.com/upload/storage/v1"

_HTTP_NOT_FOUND = 404
_HTTP_PRECONDITION_FAILED = 412


def _segment(s: str) -> str:
    """Encode a string as a single URL path segment."""
    return quote(s, safe="")


def _query(params: dict[str, Any]) -> str:
    return urlencode(sorted((key, str(value)) for key, value in params.items()))


def _url(base: str, params: dict[str, Any]) -> str:
    query = _query(params)
    return f"{base}?{query}" if query else base


def _check_name(name: str) -> None:
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("Invalid object name: not valid UTF-8") from None


def _check_response(resp: requests.Response) -> None:
    """Raise ApiError for any response outside the 2xx range."""
    if 200 <= resp.status_code <= 299:
        return
    body = resp.text
    message = resp.reason or ""
    try:
        decoded = json.loads(body)
    except ValueError:
        decoded = None
    if isinstance(decoded, dict) and isinstance(decoded.get("error"), dict):
        message = decoded["error"].get("message", message) or message
    raise ApiError(resp.status_code, message, body)


def _parse_object(resp: requests.Response) -> Object:
    raw = resp.json()
    try:
        return to_object(raw)
    except ValueError as e:
        raise ValueError(f"toObject: {e}") from e


class HttpBucket:
    """Bucket operations carried out against the service with a requests session."""

    def __init__(
        self,
        client: requests.Session,
        user_agent: str,
        name: str,
    ) -> None:
        self._client = client
        self._user_agent = user_agent
        self._name = name

    def name(self) -> str:
        return self._name

    def _request(
        self,
        method: str,
        url: str,
        *,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        all_headers = {"User-Agent": self._user_agent}
        if headers:
            all_headers.update(headers)
        return self._client.request(method, url, data=data, headers=all_headers)

    def _object_url(self, object_name: str) -> str:
        return f"{_API_ROOT}/b/{_segment(self._name)}/o/{_segment(object_name)}"

    def move_object(self, req: MoveObjectRequest) -> Object:
        """Copy the source to the destination name, then delete the source."""
        copied = self.copy_object(
            CopyObjectRequest(
                src_name=req.src_name,
                dst_name=req.dst_name,
                src_generation=req.src_generation,
                src_meta_generation_precondition=req.src_meta_generation_precondition,
            )
        )
        self.delete_object(
            DeleteObjectRequest(
                name=req.src_name,
                generation=req.src_generation,
                meta_generation_precondition=req.src_meta_generation_precondition,
            )
        )
        return copied

    def list_objects(self, req: ListObjectsRequest) -> Listing:
        params: dict[str, Any] = {"projection": "full"}
        if req.prefix:
            params["prefix"] = req.prefix
        if req.delimiter:
            params["delimiter"] = req.delimiter
        if req.continuation_token:
            params["pageToken"] = req.continuation_token
        if req.max_results:
            params["maxResults"] = req.max_results

        url = _url(f"{_API_ROOT}/b/{_segment(self._name)}/o", params)
        with self._request("GET", url) as resp:
            _check_response(resp)
            return to_listing(resp.json())

    def stat_object(self, req: StatObjectRequest) -> Object:
        url = _url(self._object_url(req.name), {"projection": "full"})
        with self._request("GET", url) as resp:
            try:
                _check_response(resp)
            except ApiError as e:
                if e.code == _HTTP_NOT_FOUND:
                    raise NotFoundError(e) from e
                raise
            return _parse_object(resp)

    def delete_object(self, req: DeleteObjectRequest) -> None:
        """Delete an object; deleting a missing object succeeds."""
        params: dict[str, Any] = {}
        if req.generation:
            params["generation"] = req.generation
        if req.meta_generation_precondition is not None:
            params["ifMetagenerationMatch"] = req.meta_generation_precondition

        url = _url(self._object_url(req.name), params)
        with self._request("DELETE", url) as resp:
            try:
                _check_response(resp)
            except ApiError as e:
                if e.code == _HTTP_NOT_FOUND:
                    return
                if e.code == _HTTP_PRECONDITION_FAILED:
                    raise PreconditionError(e) from e
                raise

    @staticmethod
    def _compose_body(req: ComposeObjectsRequest) -> bytes:
        destination: dict[str, Any] = {}
        if req.dst_name:
            destination["name"] = req.dst_name
        if req.content_type:
            destination["contentType"] = req.content_type
        if req.metadata:
            destination["metadata"] = req.metadata

        sources = []
        for src in req.sources:
            entry: dict[str, Any] = {}
            if src.name:
                entry["name"] = src.name
            if src.generation:
                entry["generation"] = str(src.generation)
            sources.append(entry)

        body: dict[str, Any] = {"destination": destination}
        if sources:
            body["sourceObjects"] = sources
        return json.dumps(body).encode("utf-8")

    def compose_objects(self, req: ComposeObjectsRequest) -> Object:
        _check_name(req.dst_name)

        params: dict[str, Any] = {}
        if req.dst_generation_precondition is not None:
            params["ifGenerationMatch"] = req.dst_generation_precondition
        if req.dst_meta_generation_precondition is not None:
            params["ifMetagenerationMatch"] = req.dst_meta_generation_precondition

        url = _url(f"{self._object_url(req.dst_name)}/compose", params)
        body = self._compose_body(req)
        with self._request(
            "POST", url, data=body, headers={"Content-Type": "application/json"}
        ) as resp:
            try:
                _check_response(resp)
            except ApiError as e:
                if e.code == _HTTP_NOT_FOUND:
                    raise NotFoundError(e) from e
                if e.code == _HTTP_PRECONDITION_FAILED:
                    raise PreconditionError(e) from e
                raise
            return _parse_object(resp)

    def copy_object(self, req: CopyObjectRequest) -> Object:
        _check_name(req.dst_name)

        base = (
            f"{self._object_url(req.src_name)}/copyTo/"
            f"b/{_segment(self._name)}/o/{_segment(req.dst_name)}"
        )
        params: dict[str, Any] = {"projection": "full"}
        if req.src_generation:
            params["sourceGeneration"] = req.src_generation
        if req.src_meta_generation_precondition is not None:
            params["ifSourceMetagenerationMatch"] = req.src_meta_generation_precondition

        url = _url(base, params)
        with self._request(
            "POST", url, headers={"Content-Type": "application/json"}
        ) as resp:
            try:
                _check_response(resp)
            except ApiError as e:
                if e.code == _HTTP_NOT_FOUND:
                    raise NotFoundError(e) from e
                if e.code == _HTTP_PRECONDITION_FAILED:
                    raise PreconditionError(e) from e
                raise
            return _parse_object(resp)

    def _start_resumable_upload(self, req: CreateObjectRequest) -> str:
        params: dict[str, Any] = {"projection": "full", "uploadType": "resumable"}
        if req.generation_precondition is not None:
            params["ifGenerationMatch"] = req.generation_precondition
        if req.meta_generation_precondition is not None:
            params["ifMetagenerationMatch"] = req.meta_generation_precondition

        url = _url(f"{_UPLOAD_ROOT}/b/{_segment(self._name)}/o", params)
        body = json.dumps(to_raw_object(self._name, req)).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Upload-Content-Type": req.content_type,
        }
        with self._request("POST", url, data=body, headers=headers) as resp:
            _check_response(resp)
            location = resp.headers.get("Location", "")
            if not location:
                raise RuntimeError("Expected a Location header.")
            return location

    def create_object(self, req: CreateObjectRequest) -> Object:
        _check_name(req.name)

        upload_url = self._start_resumable_upload(req)
        with self._request(
            "PUT",
            upload_url,
            data=req.contents,
            headers={"Content-Type": req.content_type},
        ) as resp:
            try:
                _check_response(resp)
            except ApiError as e:
                if e.code == _HTTP_PRECONDITION_FAILED:
                    raise PreconditionError(e) from e
                raise
            return _parse_object(resp)