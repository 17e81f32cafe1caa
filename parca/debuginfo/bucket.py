"""Object storage buckets holding debug information files and their metadata."""

from __future__ import annotations

import io
import os
import posixpath
import shutil
import tempfile
import threading
from collections.abc import Mapping as AbcMapping
from typing import Any, BinaryIO, Dict, Iterator, Union

from parca.debuginfo.cacheconfig import BucketConfig, ValidationError

_COPY_CHUNK = 1024 * 1024

Readable = Union[bytes, bytearray, memoryview, BinaryIO, Any]


class ObjectNotFoundError(LookupError):
    """Raised when an object does not exist in a bucket."""


def _clean_name(name: str) -> str:
    cleaned = posixpath.normpath("/" + name).lstrip("/")
    if not cleaned or cleaned == ".":
        raise ValueError(f"invalid object name {name!r}")
    return cleaned


def _dir_prefix(prefix: str) -> str:
    prefix = prefix.strip("/")
    return prefix + "/" if prefix else ""


def _read_all(reader: Readable) -> bytes:
    if isinstance(reader, (bytes, bytearray, memoryview)):
        return bytes(reader)
    parts = []
    while True:
        chunk = reader.read(_COPY_CHUNK)
        if not chunk:
            break
        parts.append(bytes(chunk))
    return b"".join(parts)


class FilesystemBucket:
    """A bucket storing each object as a file below a root directory."""

    def __init__(self, directory: Union[str, os.PathLike]) -> None:
        self.directory = os.fspath(directory)
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, *_clean_name(name).split("/"))

    def upload(self, name: str, reader: Readable) -> None:
        """Store everything read from reader under name, replacing any old object."""
        path = self._path(name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                if isinstance(reader, (bytes, bytearray, memoryview)):
                    tmp.write(reader)
                else:
                    shutil.copyfileobj(reader, tmp, _COPY_CHUNK)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, name: str) -> BinaryIO:
        """Open the named object for reading; the caller closes it."""
        path = self._path(name)
        if not os.path.isfile(path):
            raise ObjectNotFoundError(name)
        return open(path, "rb")

    def iter(self, prefix: str) -> Iterator[str]:
        """Yield the objects and sub-directories directly under prefix.

        Sub-directories are yielded with a trailing slash.
        """
        dir_prefix = _dir_prefix(prefix)
        directory = os.path.join(self.directory, *[p for p in dir_prefix.split("/") if p])
        if not os.path.isdir(directory):
            return
        with os.scandir(directory) as entries:
            names = sorted(
                (entry.name + "/" if entry.is_dir() else entry.name)
                for entry in entries
                if not entry.name.startswith(".upload-")
            )
        for child in names:
            yield dir_prefix + child


class InMemoryBucket:
    """A bucket holding its objects in memory."""

    def __init__(self) -> None:
        self._objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def upload(self, name: str, reader: Readable) -> None:
        """Store everything read from reader under name, replacing any old object."""
        key = _clean_name(name)
        data = _read_all(reader)
        with self._lock:
            self._objects[key] = data

    def get(self, name: str) -> BinaryIO:
        """Return a stream over the named object's contents."""
        key = _clean_name(name)
        with self._lock:
            try:
                data = self._objects[key]
            except KeyError:
                raise ObjectNotFoundError(name) from None
        return io.BytesIO(data)

    def iter(self, prefix: str) -> Iterator[str]:
        """Yield the objects and sub-directories directly under prefix.

        Sub-directories are yielded with a trailing slash.
        """
        dir_prefix = _dir_prefix(prefix)
        with self._lock:
            keys = list(self._objects)
        children = set()
        for key in keys:
            if not key.startswith(dir_prefix):
                continue
            head, sep, _ = key[len(dir_prefix):].partition("/")
            children.add(head + sep)
        for child in sorted(children):
            yield dir_prefix + child


def _directory_of(config: Any) -> str:
    if config is None:
        return ""
    if isinstance(config, AbcMapping):
        directory = config.get("directory", "")
    else:
        directory = getattr(config, "directory", "")
    return os.fspath(directory) if directory else ""


def new_bucket(bucket_config: BucketConfig) -> FilesystemBucket:
    """Create the bucket described by a bucket configuration."""
    bucket_config.validate()
    provider = getattr(bucket_config.type, "value", bucket_config.type)
    if str(provider).upper() != "FILESYSTEM":
        raise ValidationError(f"unsupported bucket type: {provider}")
    directory = _directory_of(bucket_config.config)
    if not directory:
        raise ValidationError("missing directory for filesystem bucket")
    return FilesystemBucket(directory)