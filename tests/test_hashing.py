import io

import pytest

from parca.hashing import XXH64, hash_file, hash_reader


def test_empty_input_digest():
    assert XXH64().hexdigest() == "ef46db3751d8e999"


def test_digest_is_big_endian_form_of_hexdigest():
    h = XXH64(b"some data to hash")
    assert h.digest() == bytes.fromhex(h.hexdigest())
    assert len(h.digest()) == 8


@pytest.mark.parametrize("length", [0, 1, 3, 4, 7, 8, 15, 31, 32, 33, 63, 64, 100, 257])
def test_incremental_matches_one_shot(length):
    data = bytes((i * 7 + 3) % 256 for i in range(length))
    one_shot = XXH64(data).hexdigest()
    for split in {0, length // 3, length // 2, length}:
        h = XXH64()
        h.update(data[:split])
        h.update(data[split:])
        assert h.hexdigest() == one_shot


def test_byte_by_byte_matches_one_shot():
    data = bytes(range(200))
    h = XXH64()
    for b in data:
        h.update(bytes([b]))
    assert h.hexdigest() == XXH64(data).hexdigest()


def test_digest_does_not_consume_state():
    h = XXH64(b"abc")
    first = h.hexdigest()
    assert h.hexdigest() == first
    h.update(b"def")
    assert h.hexdigest() == XXH64(b"abcdef").hexdigest()


def test_different_inputs_differ():
    assert XXH64(b"a").hexdigest() != XXH64(b"b").hexdigest()


def test_seed_changes_result():
    assert XXH64(b"abc", seed=1).hexdigest() != XXH64(b"abc").hexdigest()


def test_hash_reader_matches_hasher():
    data = b"x" * 100_000 + b"tail"
    assert hash_reader(io.BytesIO(data)) == XXH64(data).hexdigest()


def test_hash_file_matches_reader(tmp_path):
    data = bytes(range(256)) * 50
    path = tmp_path / "blob.bin"
    path.write_bytes(data)
    assert hash_file(path) == hash_reader(io.BytesIO(data))
    assert hash_file(str(path)) == XXH64(data).hexdigest()


def test_hash_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        hash_file(tmp_path / "does-not-exist")