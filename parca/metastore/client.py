"""A metastore client that calls a metastore in the same process."""

from __future__ import annotations

from typing import List, Optional, Sequence

from parca.metastore.kv import Function, Location, LocationLines, Mapping, Stacktrace
from parca.metastore.memory import InMemoryMetastore


class InProcessClient:
    """Client interface over a metastore living in the same process."""

    def __init__(self, metastore: InMemoryMetastore) -> None:
        self._metastore = metastore

    def mappings(self, mapping_ids: Sequence[str]) -> List[Mapping]:
        return self._metastore.mappings(mapping_ids)

    def get_or_create_mappings(self, mappings: Sequence[Mapping]) -> List[Mapping]:
        return self._metastore.get_or_create_mappings(mappings)

    def functions(self, function_ids: Sequence[str]) -> List[Function]:
        return self._metastore.functions(function_ids)

    def get_or_create_functions(self, functions: Sequence[Function]) -> List[Function]:
        return self._metastore.get_or_create_functions(functions)

    def location_lines(self, location_ids: Sequence[str]) -> List[Optional[LocationLines]]:
        return self._metastore.location_lines(location_ids)

    def locations(self, location_ids: Sequence[str]) -> List[Location]:
        return self._metastore.locations(location_ids)

    def get_or_create_locations(self, locations: Sequence[Location]) -> List[Location]:
        return self._metastore.get_or_create_locations(locations)

    def unsymbolized_locations(self) -> List[Location]:
        return self._metastore.unsymbolized_locations()

    def create_location_lines(self, locations: Sequence[Location]) -> None:
        self._metastore.create_location_lines(locations)

    def get_or_create_stacktraces(self, stacktraces: Sequence[Stacktrace]) -> List[Stacktrace]:
        return self._metastore.get_or_create_stacktraces(stacktraces)

    def stacktraces(self, stacktrace_ids: Sequence[str]) -> List[Stacktrace]:
        return self._metastore.stacktraces(stacktrace_ids)


def new_test_metastore() -> InMemoryMetastore:
    """Return a fresh, empty in-memory metastore for use in tests."""
    return InMemoryMetastore()