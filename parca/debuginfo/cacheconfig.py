"""Debug information storage configuration and input validation."""

from __future__ import annotations

import os
import posixpath
import string
from collections.abc import Mapping as AbcMapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class ValidationError(ValueError):
    """Raised when a configuration or an input value is not valid."""


class DebugInfoNotFoundError(LookupError):
    """Raised when no debug information exists for a build ID."""

    def __init__(self, message: str = "debug info not found") -> None:
        super().__init__(message)


class CacheProvider(str, Enum):
    FILESYSTEM = "FILESYSTEM"


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (str, bytes, list, tuple, dict, set, AbcMapping)):
        return len(value) == 0
    return False


@dataclass
class BucketConfig:
    """Object storage bucket settings: a provider type and its configuration."""

    type: str = ""
    config: Any = None

    def validate(self) -> None:
        """Raise ValidationError unless both type and config are set."""
        errors = []
        if _is_blank(self.type):
            errors.append("type: cannot be blank")
        if _is_blank(self.config):
            errors.append("config: cannot be blank")
        if errors:
            raise ValidationError("; ".join(errors) + ".")


@dataclass
class FilesystemCacheConfig:
    directory: str = ""


@dataclass
class CacheConfig:
    type: Union[CacheProvider, str] = CacheProvider.FILESYSTEM
    config: Any = None


@dataclass
class DebugInfoConfig:
    bucket: Optional[BucketConfig] = None
    cache: Optional[CacheConfig] = None

    def validate(self) -> None:
        """Raise ValidationError unless a valid bucket is configured."""
        if self.bucket is None:
            raise ValidationError("bucket: cannot be blank.")
        if not isinstance(self.bucket, BucketConfig):
            raise ValidationError("bucket: BucketConfig is invalid.")
        try:
            self.bucket.validate()
        except ValidationError as exc:
            raise ValidationError(f"bucket: ({exc})") from exc


def _provider_name(provider: Union[CacheProvider, str]) -> str:
    if isinstance(provider, CacheProvider):
        return provider.value
    return str(provider)


def _directory_of(config: Any) -> str:
    if config is None:
        return ""
    if isinstance(config, FilesystemCacheConfig):
        directory = config.directory
    elif isinstance(config, AbcMapping):
        directory = config.get("directory", "")
    else:
        directory = getattr(config, "directory", "")
    if directory is None:
        return ""
    return os.fspath(directory) if isinstance(directory, os.PathLike) else str(directory)


def new_cache(cache_config: Optional[CacheConfig]) -> FilesystemCacheConfig:
    """Build the local cache settings, creating the cache directory if needed."""
    if cache_config is None:
        raise ValidationError("cache configuration is missing")

    provider = _provider_name(cache_config.type)
    if provider.upper() != CacheProvider.FILESYSTEM.value:
        raise ValidationError(f"cache with type {provider} is not supported")

    directory = _directory_of(cache_config.config)
    if not directory:
        raise ValidationError("missing directory for filesystem bucket")

    if not os.path.exists(directory):
        os.makedirs(directory, mode=0o700, exist_ok=True)
    return FilesystemCacheConfig(directory=directory)


def validate_input(value: str) -> None:
    """Raise ValidationError unless value is a hex string longer than 2 characters."""
    if len(value) % 2 != 0:
        raise ValidationError("failed to validate input: odd length hex string")
    for char in value:
        if char not in string.hexdigits:
            raise ValidationError(
                f"failed to validate input: invalid byte: {char!r}"
            )
    if len(value) <= 2:
        raise ValidationError("unexpectedly short input")


def object_path(build_id: str) -> str:
    """Return the bucket path of the debug information file for a build ID."""
    return posixpath.normpath(posixpath.join(build_id, "debuginfo"))