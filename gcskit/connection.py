"""Connections to the storage service, bound to credentials."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import requests
from requests.adapters import BaseAdapter, HTTPAdapter
from requests.auth import AuthBase

from gcskit.debug import DebugBucket
from gcskit.errors import ApiError
from gcskit.http_bucket import HttpBucket
from gcskit.model import ListObjectsRequest

_DEFAULT_USER_AGENT = "gcskit"

_HTTP_FORBIDDEN = 403
_HTTP_NOT_FOUND = 404


@dataclass
class ConnConfig:
    """Options for new_conn.

    token_source is called for every request and returns an OAuth access token.
    transport is a requests adapter used for all traffic; by default the
    standard one. Loggers, when set, receive bucket-level and HTTP-level
    debug output respectively.
    """

    token_source: Callable[[], str] | None = None
    user_agent: str = ""
    transport: BaseAdapter | None = None
    gcs_debug_logger: logging.Logger | None = None
    http_debug_logger: logging.Logger | None = None


class _BearerAuth(AuthBase):
    def __init__(self, token_source: Callable[[], str]) -> None:
        self._token_source = token_source

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        r.headers["Authorization"] = f"Bearer {self._token_source()}"
        return r


class _DebuggingAdapter(BaseAdapter):
    """Logs each HTTP request and the status of its response."""

    def __init__(self, wrapped: BaseAdapter, logger: logging.Logger) -> None:
        super().__init__()
        self._wrapped = wrapped
        self._logger = logger

    def send(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        self._logger.debug("HTTP request: %s %s", request.method, request.url)
        try:
            resp = self._wrapped.send(request, **kwargs)
        except Exception as e:
            self._logger.debug("HTTP error: %s", e)
            raise
        self._logger.debug("HTTP response: %s %s", resp.status_code, resp.reason)
        return resp

    def close(self) -> None:
        self._wrapped.close()


class Connection:
    """A connection to the storage service, bound to credentials."""

    def __init__(
        self,
        client: requests.Session,
        user_agent: str,
        debug_logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._user_agent = user_agent
        self._debug_logger = debug_logger

    def open_bucket(self, name: str) -> HttpBucket | DebugBucket:
        """Return the named bucket, failing early for bad credentials or an unknown bucket."""
        bucket: HttpBucket | DebugBucket = HttpBucket(
            self._client, self._user_agent, name
        )
        if self._debug_logger is not None:
            bucket = DebugBucket(bucket, self._debug_logger)

        # An innocuous probe that turns 403 and 404 into helpful messages.
        try:
            bucket.list_objects(ListObjectsRequest(max_results=1))
        except ApiError as e:
            if e.code == _HTTP_FORBIDDEN:
                raise PermissionError(
                    f"Bad credentials for bucket {bucket.name()!r}. "
                    "Check the bucket name and your credentials."
                ) from e
            if e.code == _HTTP_NOT_FOUND:
                raise LookupError(f"Unknown bucket {bucket.name()!r}") from e
        except Exception:
            # Any other failure of the probe is not ours to report.
            pass

        return bucket


def new_conn(cfg: ConnConfig) -> Connection:
    """Open a connection according to the supplied configuration."""
    user_agent = cfg.user_agent or _DEFAULT_USER_AGENT

    transport = cfg.transport
    if cfg.http_debug_logger is not None:
        transport = _DebuggingAdapter(HTTPAdapter(), cfg.http_debug_logger)

    if cfg.token_source is None:
        raise ValueError("You must set token_source.")

    session = requests.Session()
    if transport is not None:
        session.mount("https://", transport)
        session.mount("http://", transport)
    session.auth = _BearerAuth(cfg.token_source)

    return Connection(session, user_agent, cfg.gcs_debug_logger)