"""Clients fetching debug information files from debuginfod servers."""

from __future__ import annotations

import logging
import posixpath
import queue
import threading
from typing import Any, BinaryIO, Callable, Iterable, Iterator, List, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

import requests

from parca.debuginfo.cacheconfig import DebugInfoNotFoundError, ValidationError, object_path

_CHUNK_SIZE = 64 * 1024
_DEFAULT_TIMEOUT_SECONDS = 5 * 60


class _StreamReader:
    """A closable binary reader over an iterator of byte chunks."""

    def __init__(self, chunks: Iterable[bytes], on_close: Callable[[], None]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._buffer = b""
        self._on_close = on_close
        self._closed = False

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            data = self._buffer + b"".join(self._chunks)
            self._buffer = b""
            return data
        while len(self._buffer) < size:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                break
            self._buffer += chunk
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._on_close()

    def __enter__(self) -> "_StreamReader":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class NopDebugInfodClient:
    """A client that never finds any debug information."""

    def get_debug_info(self, build_id: str) -> BinaryIO:
        raise DebugInfoNotFoundError()


class HTTPDebugInfodClient:
    """Downloads debug information from an ordered list of debuginfod servers."""

    def __init__(
        self,
        server_urls: Sequence[str],
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        upstream: List[str] = []
        for server_url in server_urls:
            scheme = urlsplit(server_url).scheme
            if scheme not in ("http", "https"):
                raise ValidationError(f"unsupported scheme {scheme!r}")
            upstream.append(server_url)
        self.upstream_servers = upstream
        self.timeout = timeout
        self._session = session or requests.Session()
        self._logger = logger or logging.getLogger("parca.debuginfo.debuginfod")

    def _log(self, level: int, msg: str, **fields: Any) -> None:
        self._logger.log(level, msg, extra={"fields": {"component": "debuginfod", **fields}})

    def get_debug_info(self, build_id: str) -> _StreamReader:
        """Return a reader over the first upstream server's copy of the file."""
        for server_url in self.upstream_servers:
            try:
                return self._request(server_url, build_id)
            except Exception as exc:
                self._log(
                    logging.WARNING,
                    "failed to download debug info file from upstream debuginfod server, "
                    "trying next one (if exists)",
                    buildid=build_id,
                    server=server_url,
                    err=exc,
                )
        raise DebugInfoNotFoundError()

    def _request(self, server_url: str, build_id: str) -> _StreamReader:
        # Endpoint: /buildid/BUILDID/debuginfo
        parts = urlsplit(server_url)
        path = posixpath.normpath(posixpath.join("/", parts.path, "buildid", build_id, "debuginfo"))
        url = urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))

        try:
            resp = self._session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise requests.ConnectionError(f"request failed: {exc}") from exc

        status = f"{resp.status_code} {resp.reason}".strip()
        category = resp.status_code // 100
        if category == 2:
            return _StreamReader(resp.iter_content(chunk_size=_CHUNK_SIZE), resp.close)
        resp.close()
        if category == 4:
            if resp.status_code == 404:
                raise DebugInfoNotFoundError()
            raise requests.HTTPError(f"client error: {status}", response=resp)
        if category == 5:
            raise requests.HTTPError(f"server error: {status}", response=resp)
        raise requests.HTTPError(f"unexpected status code: {status}", response=resp)


class _Pipe:
    """A one-way in-memory pipe: written by one thread, read by another."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._buffer = b""
        self._eof = False
        self._write_closed = False
        self._reader_gone = False
        self._lock = threading.Lock()

    def write(self, data: bytes) -> None:
        with self._lock:
            if self._write_closed or self._reader_gone:
                return
            self._queue.put(bytes(data))

    def close_write(self) -> None:
        with self._lock:
            if self._write_closed:
                return
            self._write_closed = True
            self._queue.put(None)

    def abandon(self) -> None:
        with self._lock:
            self._reader_gone = True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            parts = []
            while True:
                part = self.read(_CHUNK_SIZE)
                if not part:
                    return b"".join(parts)
                parts.append(part)
        while not self._buffer and not self._eof:
            chunk = self._queue.get()
            if chunk is None:
                self._eof = True
            else:
                self._buffer = chunk
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data


class _TeeReader:
    """Reads from a source while copying everything read into a pipe."""

    def __init__(self, source: Any, pipe: _Pipe, uploader: threading.Thread) -> None:
        self._source = source
        self._pipe = pipe
        self._uploader = uploader
        self._closed = False

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        if data:
            self._pipe.write(data)
        return data

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._pipe.close_write()
            self._uploader.join()
        finally:
            self._source.close()

    def __enter__(self) -> "_TeeReader":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class DebugInfodClientObjectStorageCache:
    """Wraps a debuginfod client, storing what it downloads in a bucket."""

    def __init__(self, client: Any, bucket: Any, logger: Optional[logging.Logger] = None) -> None:
        self._client = client
        self._bucket = bucket
        self._logger = logger or logging.getLogger("parca.debuginfo.debuginfod")

    def get_debug_info(self, build_id: str) -> _TeeReader:
        """Return a reader over the file; what is read is uploaded as it goes.

        The upload completes when the returned reader is closed.
        """
        debug_info = self._client.get_debug_info(build_id)
        pipe = _Pipe()

        def upload() -> None:
            try:
                self._bucket.upload(object_path(build_id), pipe)
            except Exception as exc:
                self._logger.error(
                    "failed to upload downloaded debuginfod file",
                    extra={"fields": {"buildid": build_id, "err": exc}},
                )
            finally:
                pipe.abandon()

        uploader = threading.Thread(target=upload, name=f"debuginfod-upload-{build_id}", daemon=True)
        uploader.start()
        return _TeeReader(debug_info, pipe, uploader)