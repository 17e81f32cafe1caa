"""Records stored in the metastore and the keys they are stored under."""

from __future__ import annotations

import base64
import hashlib
import struct
from dataclasses import dataclass, field
from typing import List, Optional

_MASK = 0xFFFFFFFFFFFFFFFF

# Locations are namespaced by their mapping ID:
# v1/locations/by-key/<hashed-mapping-key>/<hashed-location-key>
LOCATIONS_KEY_PREFIX = "v1/locations/by-key/"
LOCATION_LINES_KEY_PREFIX = "v1/location-lines/by-key/"
UNSYMBOLIZED_LOCATION_LINES_KEY_PREFIX = "v1/unsymbolized-locations/by-key/"
# Functions are namespaced by their filename hash.
FUNCTION_KEY_PREFIX = "v1/functions/by-key/"
MAPPING_KEY_PREFIX = "v1/mappings/by-key/"
# Stacktraces are prefixed by their root location.
STACKTRACE_KEY_PREFIX = "v1/stacktraces/by-key/"

# Mapping sizes are rounded up to the next 4K boundary to absorb minor
# differences caused by address space randomisation.
MAPSIZE_ROUNDING = 0x1000


@dataclass
class Mapping:
    start: int = 0
    limit: int = 0
    offset: int = 0
    file: str = ""
    build_id: str = ""
    id: str = ""


@dataclass
class Function:
    name: str = ""
    system_name: str = ""
    filename: str = ""
    start_line: int = 0
    id: str = ""


@dataclass
class Line:
    function_id: str = ""
    line: int = 0


@dataclass
class LocationLines:
    entries: List[Line] = field(default_factory=list)


@dataclass
class Location:
    address: int = 0
    mapping_id: str = ""
    is_folded: bool = False
    lines: Optional[LocationLines] = None
    id: str = ""


@dataclass
class Stacktrace:
    location_ids: List[str] = field(default_factory=list)
    id: str = ""


def _hasher():
    return hashlib.new("sha512_256")


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def _u64(value: int) -> bytes:
    return struct.pack(">Q", value & _MASK)


def _i64(value: int) -> bytes:
    return struct.pack(">q", value)


def make_location_key(location: Location) -> str:
    return make_location_key_with_id(make_location_id(location))


def make_location_key_with_id(location_id: str) -> str:
    return LOCATIONS_KEY_PREFIX + location_id


def make_location_lines_key_with_id(location_id: str) -> str:
    return LOCATION_LINES_KEY_PREFIX + location_id


def make_unsymbolized_location_key_with_id(location_id: str) -> str:
    return UNSYMBOLIZED_LOCATION_LINES_KEY_PREFIX + location_id


def location_id_from_unsymbolized_key(key: str) -> str:
    return key[len(UNSYMBOLIZED_LOCATION_LINES_KEY_PREFIX):]


def location_id_from_key(key: str) -> str:
    return key[len(LOCATIONS_KEY_PREFIX):]


def make_location_id(location: Location) -> str:
    """Identify a location by its mapping, address and, for address 0, its lines.

    The folded flag takes no part in the identifier.
    """
    h = _hasher()
    h.update(location.mapping_id.encode())
    h.update(_u64(location.address))

    # Without an address the location comes from a dynamic runtime; its lines
    # are the only thing that makes it unique.
    if location.address == 0 and location.lines is not None:
        for line in location.lines.entries:
            h.update(line.function_id.encode())
            h.update(_i64(line.line))

    mapping_id = location.mapping_id or "unknown-mapping"
    return mapping_id + "/" + _b64(h.digest())


def make_function_key(function: Function) -> str:
    return make_function_key_with_id(make_function_id(function))


def make_function_key_with_id(function_id: str) -> str:
    return FUNCTION_KEY_PREFIX + function_id


def function_id_from_key(key: str) -> str:
    return key[len(FUNCTION_KEY_PREFIX):]


def make_function_id(function: Function) -> str:
    """Identify a function by name, system name, filename and start line."""
    h = _hasher()
    h.update(_i64(function.start_line))
    h.update(function.name.encode())
    h.update(function.system_name.encode())
    h.update(function.filename.encode())
    digest = _b64(h.digest())

    if not function.filename:
        return "unknown-filename/" + digest

    filename_hash = _hasher()
    filename_hash.update(function.filename.encode())
    return _b64(filename_hash.digest()) + "/" + digest


def make_mapping_key(mapping: Mapping) -> str:
    return make_mapping_key_with_id(make_mapping_id(mapping))


def make_mapping_key_with_id(mapping_id: str) -> str:
    return MAPPING_KEY_PREFIX + mapping_id


def mapping_id_from_key(key: str) -> str:
    return key[len(MAPPING_KEY_PREFIX):]


def make_mapping_id(mapping: Mapping) -> str:
    """Identify a mapping by build ID (or file), rounded size and offset."""
    h = _hasher()

    size = (mapping.limit - mapping.start) & _MASK
    size = (size + MAPSIZE_ROUNDING - 1) & _MASK
    size -= size % MAPSIZE_ROUNDING

    # The build ID is more reliably unique than the file name. A mapping with
    # neither is a fake mapping and all such mappings share one identity.
    if mapping.build_id:
        h.update(mapping.build_id.encode())
    elif mapping.file:
        h.update(mapping.file.encode())

    h.update(_u64(size))
    h.update(_u64(mapping.offset))
    return _b64(h.digest())


def make_stacktrace_key(stacktrace: Stacktrace) -> str:
    return make_stacktrace_key_with_id(make_stacktrace_id(stacktrace))


def make_stacktrace_key_with_id(stacktrace_id: str) -> str:
    return STACKTRACE_KEY_PREFIX + stacktrace_id


def stacktrace_id_from_key(key: str) -> str:
    return key[len(STACKTRACE_KEY_PREFIX):]


def make_stacktrace_id(stacktrace: Stacktrace) -> str:
    """Identify a stacktrace by its ordered location IDs."""
    if not stacktrace.location_ids:
        return "empty-stacktrace"

    h = _hasher()
    for location_id in stacktrace.location_ids:
        h.update(location_id.encode())
    return stacktrace.location_ids[-1] + "/" + _b64(h.digest())