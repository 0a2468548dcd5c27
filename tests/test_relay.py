"""Tests for relay ids, cursors and page-size normalization."""
import pytest

from protoc_gen_synapse.runtime.relay import (
    PageArgs,
    base62_decode,
    base62_encode,
    decode_cursor,
    decode_global_id,
    decode_int_cursor,
    encode_cursor,
    encode_global_id,
    local_id,
    normalize_page_size,
    try_decode_global_id,
)


def test_base62_keeps_leading_zero_bytes():
    data = b"\x00\x00abc"
    encoded = base62_encode(data)
    assert encoded.startswith("00")
    assert base62_decode(encoded) == data
    assert base62_encode(b"") == ""


def test_base62_rejects_foreign_characters():
    with pytest.raises(ValueError):
        base62_decode("abc-def")


def test_global_id_carries_type_and_local_id():
    global_id = encode_global_id("User", 42)
    assert global_id.isalnum()
    assert decode_global_id(global_id) == ("User", "42")


def test_malformed_global_ids():
    no_separator = base62_encode(b"User42")
    with pytest.raises(ValueError):
        decode_global_id(no_separator)
    assert try_decode_global_id(no_separator) is None
    assert try_decode_global_id("not-base62!") is None


def test_local_id_accepts_global_or_raw_ids():
    assert local_id(encode_global_id("User", 7), "User") == "7"
    assert local_id("7", "User") == "7"
    other = encode_global_id("Post", 7)
    assert local_id(other, "User") == other


def test_integer_keys_decode_as_ints():
    assert decode_global_id(encode_global_id("User", 42), int) == ("User", 42)
    assert try_decode_global_id(encode_global_id("User", 42), int) == ("User", 42)
    assert local_id(encode_global_id("User", 7), "User", int) == 7
    assert local_id("7", "User", int) == 7
    with pytest.raises(ValueError):
        local_id(encode_global_id("User", "abc"), "User", int)
    with pytest.raises(ValueError):
        local_id("seven", "User", int)


def test_cursors():
    assert decode_cursor(encode_cursor("abc")) == "abc"
    assert decode_int_cursor(encode_cursor(15)) == 15


class TestPageSize:
    def test_defaults_and_clamping(self):
        assert normalize_page_size() == 20
        assert normalize_page_size(first=5) == 5
        assert normalize_page_size(last=7) == 7
        assert normalize_page_size(first=3, last=9) == 3
        assert normalize_page_size(first=0) == 1
        assert normalize_page_size(first=-4) == 1
        assert normalize_page_size(first=500) == 100
        assert normalize_page_size(first=500, maximum=1000) == 500

    def test_page_args(self):
        forward = PageArgs.from_args(first=10, after="abc")
        assert forward == PageArgs(size=10, backward=False, after="abc")
        backward = PageArgs.from_args(last=4, before="", default=15, maximum=50)
        assert backward.size == 4
        assert backward.backward
        assert backward.before is None
        assert PageArgs.from_args(default=15).size == 15
