import pytest

from parca.metastore.kv import (
    Function,
    Line,
    Location,
    LocationLines,
    Mapping,
    Stacktrace,
    function_id_from_key,
    location_id_from_key,
    location_id_from_unsymbolized_key,
    make_function_id,
    make_function_key,
    make_function_key_with_id,
    make_location_id,
    make_location_key,
    make_location_key_with_id,
    make_location_lines_key_with_id,
    make_mapping_id,
    make_mapping_key,
    make_mapping_key_with_id,
    make_stacktrace_id,
    make_stacktrace_key,
    make_stacktrace_key_with_id,
    make_unsymbolized_location_key_with_id,
    mapping_id_from_key,
    stacktrace_id_from_key,
)


def test_key_prefixes():
    assert make_location_key_with_id("abc") == "v1/locations/by-key/abc"
    assert make_location_lines_key_with_id("abc") == "v1/location-lines/by-key/abc"
    assert make_unsymbolized_location_key_with_id("abc") == "v1/unsymbolized-locations/by-key/abc"
    assert make_function_key_with_id("abc") == "v1/functions/by-key/abc"
    assert make_mapping_key_with_id("abc") == "v1/mappings/by-key/abc"
    assert make_stacktrace_key_with_id("abc") == "v1/stacktraces/by-key/abc"


@pytest.mark.parametrize("ident", ["a/b", "m/xyz=", "plain"])
def test_key_round_trips(ident):
    assert location_id_from_key(make_location_key_with_id(ident)) == ident
    assert location_id_from_unsymbolized_key(make_unsymbolized_location_key_with_id(ident)) == ident
    assert function_id_from_key(make_function_key_with_id(ident)) == ident
    assert mapping_id_from_key(make_mapping_key_with_id(ident)) == ident
    assert stacktrace_id_from_key(make_stacktrace_key_with_id(ident)) == ident


def test_mapping_id_is_deterministic_and_encoded():
    m = Mapping(start=0x1000, limit=0x5000, offset=0, build_id="deadbeef")
    ident = make_mapping_id(m)
    assert ident == make_mapping_id(Mapping(start=0x1000, limit=0x5000, build_id="deadbeef"))
    assert len(ident) == 44
    assert ident.endswith("=")
    assert make_mapping_key(m) == make_mapping_key_with_id(ident)


def test_mapping_size_rounds_up_to_page():
    a = Mapping(start=0, limit=1, file="/bin/x")
    b = Mapping(start=0, limit=0x1000, file="/bin/x")
    c = Mapping(start=0, limit=0x1001, file="/bin/x")
    assert make_mapping_id(a) == make_mapping_id(b)
    assert make_mapping_id(b) != make_mapping_id(c)


def test_mapping_build_id_takes_precedence_over_file():
    a = Mapping(limit=0x1000, build_id="id", file="/a")
    b = Mapping(limit=0x1000, build_id="id", file="/b")
    c = Mapping(limit=0x1000, file="/a")
    assert make_mapping_id(a) == make_mapping_id(b)
    assert make_mapping_id(a) != make_mapping_id(c)


def test_mapping_offset_matters():
    assert make_mapping_id(Mapping(limit=0x1000, offset=0)) != make_mapping_id(
        Mapping(limit=0x1000, offset=0x1000)
    )


def test_location_id_prefixed_by_mapping():
    loc = Location(address=0x1234, mapping_id="map/one")
    assert make_location_id(loc).startswith("map/one/")
    assert make_location_key(loc) == make_location_key_with_id(make_location_id(loc))


def test_location_without_mapping():
    assert make_location_id(Location(address=5)).startswith("unknown-mapping/")


def test_location_address_matters():
    assert make_location_id(Location(address=1, mapping_id="m")) != make_location_id(
        Location(address=2, mapping_id="m")
    )


def test_location_folded_flag_not_part_of_id():
    assert make_location_id(Location(address=1, mapping_id="m", is_folded=True)) == make_location_id(
        Location(address=1, mapping_id="m", is_folded=False)
    )


def test_location_lines_used_only_without_address():
    lines_a = LocationLines(entries=[Line(function_id="f1", line=10)])
    lines_b = LocationLines(entries=[Line(function_id="f1", line=11)])
    assert make_location_id(Location(lines=lines_a)) != make_location_id(Location(lines=lines_b))
    assert make_location_id(Location(address=9, lines=lines_a)) == make_location_id(
        Location(address=9, lines=lines_b)
    )


def test_function_without_filename():
    assert make_function_id(Function(name="main")).startswith("unknown-filename/")


def test_function_id_namespaced_by_filename():
    f1 = make_function_id(Function(name="a", filename="x.go", start_line=1))
    f2 = make_function_id(Function(name="b", filename="x.go", start_line=1))
    f3 = make_function_id(Function(name="a", filename="y.go", start_line=1))
    assert f1.split("/")[0] == f2.split("/")[0]
    assert f1 != f2
    assert f1.split("/")[0] != f3.split("/")[0]
    assert make_function_key(Function(name="a", filename="x.go", start_line=1)) == make_function_key_with_id(f1)


def test_function_start_line_matters():
    assert make_function_id(Function(name="a", start_line=1)) != make_function_id(
        Function(name="a", start_line=2)
    )


def test_empty_stacktrace():
    assert make_stacktrace_id(Stacktrace()) == "empty-stacktrace"


def test_stacktrace_prefixed_by_last_location():
    st = Stacktrace(location_ids=["leaf", "mid", "root"])
    ident = make_stacktrace_id(st)
    assert ident.startswith("root/")
    assert make_stacktrace_key(st) == make_stacktrace_key_with_id(ident)


def test_stacktrace_order_matters():
    assert make_stacktrace_id(Stacktrace(location_ids=["a", "b", "c"])) != make_stacktrace_id(
        Stacktrace(location_ids=["b", "a", "c"])
    )