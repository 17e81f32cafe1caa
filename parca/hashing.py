"""Content hashing with the 64-bit xxHash algorithm."""

from __future__ import annotations

import os
import struct
from typing import BinaryIO, Union

_MASK = 0xFFFFFFFFFFFFFFFF

_P1 = 0x9E3779B185EBCA87
_P2 = 0xC2B2AE3D27D4EB4F
_P3 = 0x165667B19E3779F9
_P4 = 0x85EBCA77C2B2AE63
_P5 = 0x27D4EB2F165667C5

_STRIPE = 32
_CHUNK_SIZE = 64 * 1024


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & _MASK


def _round(acc: int, lane: int) -> int:
    acc = (acc + lane * _P2) & _MASK
    acc = _rotl(acc, 31)
    return (acc * _P1) & _MASK


def _merge_round(acc: int, value: int) -> int:
    acc ^= _round(0, value)
    return (acc * _P1 + _P4) & _MASK


class XXH64:
    """Incremental 64-bit xxHash."""

    def __init__(self, data: bytes = b"", seed: int = 0) -> None:
        self._seed = seed & _MASK
        self._acc = (
            (self._seed + _P1 + _P2) & _MASK,
            (self._seed + _P2) & _MASK,
            self._seed,
            (self._seed - _P1) & _MASK,
        )
        self._buffer = b""
        self._length = 0
        if data:
            self.update(data)

    def update(self, data: Union[bytes, bytearray, memoryview]) -> None:
        """Feed more bytes into the hash."""
        data = bytes(data)
        self._length += len(data)
        buffer = self._buffer + data
        usable = len(buffer) - len(buffer) % _STRIPE
        v1, v2, v3, v4 = self._acc
        for l1, l2, l3, l4 in struct.iter_unpack("<4Q", buffer[:usable]):
            v1 = _round(v1, l1)
            v2 = _round(v2, l2)
            v3 = _round(v3, l3)
            v4 = _round(v4, l4)
        self._acc = (v1, v2, v3, v4)
        self._buffer = buffer[usable:]

    def _intdigest(self) -> int:
        if self._length >= _STRIPE:
            v1, v2, v3, v4 = self._acc
            h = (_rotl(v1, 1) + _rotl(v2, 7) + _rotl(v3, 12) + _rotl(v4, 18)) & _MASK
            for v in self._acc:
                h = _merge_round(h, v)
        else:
            h = (self._seed + _P5) & _MASK

        h = (h + self._length) & _MASK

        tail = self._buffer
        pos = 0
        while pos + 8 <= len(tail):
            (lane,) = struct.unpack_from("<Q", tail, pos)
            h ^= _round(0, lane)
            h = (_rotl(h, 27) * _P1 + _P4) & _MASK
            pos += 8
        if pos + 4 <= len(tail):
            (word,) = struct.unpack_from("<I", tail, pos)
            h ^= (word * _P1) & _MASK
            h = (_rotl(h, 23) * _P2 + _P3) & _MASK
            pos += 4
        for byte in tail[pos:]:
            h ^= (byte * _P5) & _MASK
            h = (_rotl(h, 11) * _P1) & _MASK

        h ^= h >> 33
        h = (h * _P2) & _MASK
        h ^= h >> 29
        h = (h * _P3) & _MASK
        h ^= h >> 32
        return h

    def digest(self) -> bytes:
        """Return the hash as 8 big-endian bytes."""
        return self._intdigest().to_bytes(8, "big")

    def hexdigest(self) -> str:
        """Return the hash as 16 lower-case hex digits."""
        return self.digest().hex()


def hash_reader(reader: BinaryIO) -> str:
    """Return the hex hash of everything readable from a binary stream."""
    hasher = XXH64()
    while True:
        chunk = reader.read(_CHUNK_SIZE)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.hexdigest()


def hash_file(path: Union[str, os.PathLike]) -> str:
    """Return the hex hash of a file's contents."""
    with open(path, "rb") as f:
        return hash_reader(f)