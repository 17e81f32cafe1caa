"""An in-memory metastore backed by a transactional key-value map."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from parca.metastore.kv import (
    UNSYMBOLIZED_LOCATION_LINES_KEY_PREFIX,
    Function,
    Location,
    LocationLines,
    Mapping,
    Stacktrace,
    function_id_from_key,
    location_id_from_key,
    location_id_from_unsymbolized_key,
    make_function_key,
    make_function_key_with_id,
    make_location_id,
    make_location_key,
    make_location_key_with_id,
    make_location_lines_key_with_id,
    make_mapping_key,
    make_mapping_key_with_id,
    make_stacktrace_key,
    make_stacktrace_key_with_id,
    make_unsymbolized_location_key_with_id,
    mapping_id_from_key,
    stacktrace_id_from_key,
)

_DELETED = object()


class KeyNotFoundError(KeyError):
    """Raised when a requested key is not present in the store."""


class _Transaction:
    """A read-write view over the store; writes apply only on commit."""

    def __init__(self, data: Dict[str, Any]) -> None:
        self._data = data
        self._writes: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        if key in self._writes:
            value = self._writes[key]
        else:
            value = self._data.get(key, _DELETED)
        if value is _DELETED:
            raise KeyNotFoundError(key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._writes[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._writes[key] = _DELETED

    def keys_with_prefix(self, prefix: str) -> List[str]:
        keys = set(self._data) | set(self._writes)
        return sorted(
            key
            for key in keys
            if key.startswith(prefix) and self._writes.get(key, None) is not _DELETED
        )

    def commit(self) -> None:
        for key, value in self._writes.items():
            if value is _DELETED:
                self._data.pop(key, None)
            else:
                self._data[key] = value
        self._writes.clear()


class InMemoryMetastore:
    """Stores mappings, functions, locations and stacktraces keyed by content.

    Every update runs as one transaction: if it raises, none of its writes
    become visible.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self._lock = threading.RLock()

    @contextmanager
    def _view(self) -> Iterator[_Transaction]:
        with self._lock:
            yield _Transaction(self._data)

    @contextmanager
    def _update(self) -> Iterator[_Transaction]:
        with self._lock:
            txn = _Transaction(self._data)
            yield txn
            txn.commit()

    def _get_or_create(self, items: Sequence[Any], make_key, id_from_key) -> List[Any]:
        result: List[Any] = []
        with self._update() as txn:
            for item in items:
                key = make_key(item)
                try:
                    result.append(txn.get(key))
                except KeyNotFoundError:
                    item.id = id_from_key(key)
                    txn.set(key, item)
                    result.append(item)
        return result

    def _fetch(self, ids: Sequence[str], make_key) -> List[Any]:
        with self._view() as txn:
            return [txn.get(make_key(item_id)) for item_id in ids]

    def mappings(self, mapping_ids: Sequence[str]) -> List[Mapping]:
        """Return the mappings with the given IDs, in order."""
        return self._fetch(mapping_ids, make_mapping_key_with_id)

    def get_or_create_mappings(self, mappings: Sequence[Mapping]) -> List[Mapping]:
        """Return stored mappings, storing and assigning IDs to new ones."""
        return self._get_or_create(mappings, make_mapping_key, mapping_id_from_key)

    def functions(self, function_ids: Sequence[str]) -> List[Function]:
        """Return the functions with the given IDs, in order."""
        return self._fetch(function_ids, make_function_key_with_id)

    def get_or_create_functions(self, functions: Sequence[Function]) -> List[Function]:
        """Return stored functions, storing and assigning IDs to new ones."""
        return self._get_or_create(functions, make_function_key, function_id_from_key)

    def location_lines(self, location_ids: Sequence[str]) -> List[Optional[LocationLines]]:
        """Return the lines of each location, or None where not yet symbolized."""
        result: List[Optional[LocationLines]] = []
        with self._view() as txn:
            for location_id in location_ids:
                try:
                    result.append(txn.get(make_location_lines_key_with_id(location_id)))
                except KeyNotFoundError:
                    result.append(None)
        return result

    def locations(self, location_ids: Sequence[str]) -> List[Location]:
        """Return the locations with the given IDs, in order."""
        return self._fetch(location_ids, make_location_key_with_id)

    def get_or_create_locations(self, locations: Sequence[Location]) -> List[Location]:
        """Return stored locations, storing new ones.

        New locations with a mapping and an address but no lines are recorded
        as unsymbolized; the lines of all other new locations are stored.
        """
        result: List[Location] = []
        symbolized: List[Location] = []
        with self._update() as txn:
            for location in locations:
                key = make_location_key(location)
                try:
                    result.append(txn.get(key))
                    continue
                except KeyNotFoundError:
                    pass
                location.id = location_id_from_key(key)
                txn.set(key, location)
                result.append(location)

                has_lines = location.lines is not None and bool(location.lines.entries)
                if location.mapping_id and location.address != 0 and not has_lines:
                    txn.set(make_unsymbolized_location_key_with_id(location.id), b"")
                    continue
                symbolized.append(location)

            self._create_location_lines(txn, [loc.id for loc in symbolized], symbolized)
        return result

    def unsymbolized_locations(self) -> List[Location]:
        """Return all locations still awaiting symbolization, in key order."""
        with self._view() as txn:
            keys = txn.keys_with_prefix(UNSYMBOLIZED_LOCATION_LINES_KEY_PREFIX)
            return [
                txn.get(make_location_key_with_id(location_id_from_unsymbolized_key(key)))
                for key in keys
            ]

    def create_location_lines(self, locations: Sequence[Location]) -> None:
        """Store the lines of the given locations and mark them symbolized."""
        location_ids = [make_location_id(location) for location in locations]
        with self._update() as txn:
            self._create_location_lines(txn, location_ids, locations)

    @staticmethod
    def _create_location_lines(
        txn: _Transaction, location_ids: Sequence[str], locations: Sequence[Location]
    ) -> None:
        for location_id, location in zip(location_ids, locations):
            lines = location.lines if location.lines is not None else LocationLines()
            txn.set(make_location_lines_key_with_id(location_id), lines)
            txn.delete(make_unsymbolized_location_key_with_id(location_id))

    def get_or_create_stacktraces(self, stacktraces: Sequence[Stacktrace]) -> List[Stacktrace]:
        """Return stored stacktraces, storing and assigning IDs to new ones."""
        return self._get_or_create(stacktraces, make_stacktrace_key, stacktrace_id_from_key)

    def stacktraces(self, stacktrace_ids: Sequence[str]) -> List[Stacktrace]:
        """Return the stacktraces with the given IDs, in order."""
        return self._fetch(stacktrace_ids, make_stacktrace_key_with_id)