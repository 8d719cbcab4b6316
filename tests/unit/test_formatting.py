"""Unit tests for the formatting module."""

import json

import base58
import pytest

from fabric_doctor.codec import (
    Atom,
    Binary,
    BitBinary,
    ExternalFun,
    Float,
    ImproperList,
    Integer,
    List,
    Map,
    Pid,
    Port,
    Reference,
    Tuple,
    encode_safe,
)
from fabric_doctor.utils.formatting import (
    decode_store_key,
    format_bytes,
    format_value,
    term_to_json,
)

# 48 bytes that are not valid UTF-8
PUBLIC_KEY = bytes(range(128, 176))
PUBLIC_KEY_B58 = base58.b58encode(PUBLIC_KEY).decode("ascii")


# --- format_bytes tests ---


class TestFormatBytes:
    """Tests for format_bytes()."""

    def test_printable_text(self):
        assert format_bytes(b"hello") == "hello"

    def test_public_key_in_base58(self):
        assert format_bytes(PUBLIC_KEY) == PUBLIC_KEY_B58

    def test_other_bytes_in_hex(self):
        assert format_bytes(b"\x00\x01") == "hex:0001"


# --- term_to_json tests ---


class TestTermToJson:
    """Tests for term_to_json()."""

    @pytest.mark.parametrize(
        "name,expected", [("true", True), ("false", False), ("nil", None), ("ok", "ok")]
    )
    def test_atoms(self, name, expected):
        assert term_to_json(Atom(name)) == expected

    def test_numbers(self):
        assert term_to_json(Integer(5)) == 5
        assert term_to_json(Float(1.5)) == 1.5

    def test_map_with_text_keys_becomes_dict(self):
        term = Map(((Atom("a"), Integer(1)), (Binary(b"b"), List((Integer(2),)))))
        assert term_to_json(term) == {"a": 1, "b": [2]}

    def test_map_with_other_keys_becomes_pairs(self):
        term = Map(((Integer(1), Atom("x")),))
        assert term_to_json(term) == [[1, "x"]]

    def test_tuple_and_improper_list(self):
        assert term_to_json(Tuple((Atom("ok"), Integer(1)))) == ["ok", 1]
        assert term_to_json(ImproperList((Integer(1),), Integer(2))) == {
            "elements": [1],
            "tail": 2,
        }

    def test_bit_binary(self):
        assert term_to_json(BitBinary(b"\xf0", 4)) == {"bits": "f0", "tail_bits": 4}

    def test_identifiers(self):
        node = Atom("n@h")
        assert term_to_json(Pid(node, 1, 2, 0)) == "#Pid<n@h.1.2>"
        assert term_to_json(Port(node, 7, 0)) == "#Port<n@h.7>"
        assert term_to_json(Reference(node, (1, 2), 0)) == "#Ref<n@h.1.2>"
        assert (
            term_to_json(ExternalFun(Atom("lists"), Atom("map"), 2))
            == "fun lists:map/2"
        )

    def test_result_is_json_serializable(self):
        term = Map(((Atom("k"), Binary(PUBLIC_KEY)),))
        assert json.loads(json.dumps(term_to_json(term))) == {"k": PUBLIC_KEY_B58}


# --- format_value tests ---


class TestFormatValue:
    """Tests for format_value()."""

    def test_digits_become_int(self):
        assert format_value(b"12345") == 12345

    def test_text(self):
        assert format_value(b"abc") == "abc"

    def test_raw_bytes(self):
        assert format_value(b"\xff\xfe") == {"raw_hex": "fffe", "size_bytes": 2}

    def test_encoded_term(self):
        assert format_value(encode_safe(Map(((Atom("height"), Integer(3)),)))) == {
            "height": 3
        }

    def test_undecodable_term(self):
        result = format_value(bytes([131, 200]))
        assert result["etf_format"] is True
        assert result["decodable"] is False
        assert result["raw_hex"] == "83c8"


# --- decode_store_key tests ---


class TestDecodeStoreKey:
    """Tests for decode_store_key()."""

    def test_text_key_unchanged(self):
        assert decode_store_key(b"bic:epoch:segment_vr_hash") == "bic:epoch:segment_vr_hash"

    def test_public_key_segment(self):
        key = b"bic:coin:balance:" + PUBLIC_KEY + b":AMA"
        assert decode_store_key(key) == f"bic:coin:balance:{PUBLIC_KEY_B58}:AMA"

    def test_height_then_binary_tail(self):
        key = b"bic:epoch:trainers:000000000123\xff"
        assert decode_store_key(key) == "bic:epoch:trainers:000000000123:hex:ff"

    def test_nonce_after_public_key(self):
        key = b"bic:base:nonce:" + PUBLIC_KEY + b"00000000000000000042"
        assert (
            decode_store_key(key)
            == f"bic:base:nonce:{PUBLIC_KEY_B58}00000000000000000042"
        )

    def test_unknown_prefix(self):
        assert decode_store_key(b"\xff\x00") == "hex:ff00"
