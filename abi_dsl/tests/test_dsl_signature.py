"""
Tests for canonical signatures and id derivation.
"""

import hashlib

import pytest

from abi_dsl.dsl_ast import (
    AbiVersion, Address, Array, Bool, Param, Tuple, Uint, make_params,
)
from abi_dsl.dsl_signature import (
    build_event, build_function, calc_function_id, event_signature, format_id,
    function_signature, parse_id_literal, split_function_id, types_csv,
)


def sha_prefix(text):
    return int.from_bytes(hashlib.sha256(text.encode()).digest()[:4], "big")


class TestSignatures:
    """Tests for canonical signature text."""

    def test_types_csv(self):
        params = make_params([Uint(8), Array(Address())])
        assert types_csv(params) == "uint8,address[]"
        assert types_csv([]) == ""

    def test_function_signature(self):
        inputs = make_params([Uint(32)])
        outputs = make_params([Bool()])
        assert function_signature("foo", inputs, outputs) == "foo(uint32)(bool)v2"
        assert function_signature("foo", [], [], AbiVersion(1, 0)) == "foo()()v1"

    def test_minor_version_is_not_signed(self):
        a = function_signature("f", [], [], AbiVersion(2, 1))
        b = function_signature("f", [], [], AbiVersion(2, 3))
        assert a == b == "f()()v2"

    def test_param_names_are_not_signed(self):
        tuple_a = Tuple([Param("a", Uint(8))])
        tuple_b = Tuple([Param("b", Uint(8))])
        assert (function_signature("f", [Param("x", tuple_a)], []) ==
                function_signature("f", [Param("y", tuple_b)], []))

    def test_event_signature(self):
        inputs = make_params([Address(), Uint(128)])
        assert event_signature("Transfer", inputs) == "Transfer(address,uint128)v2"


class TestIds:
    """Tests for id derivation."""

    def test_calc_function_id(self):
        assert calc_function_id("foo(uint32)(bool)v2") == sha_prefix("foo(uint32)(bool)v2")

    def test_split_function_id(self):
        assert split_function_id(0xFFFFFFFF) == (0x7FFFFFFF, 0xFFFFFFFF)
        assert split_function_id(0x12345678) == (0x12345678, 0x92345678)

    def test_build_function(self):
        entity = build_function("foo", make_params([Uint(32)]), make_params([Bool()]))
        base = sha_prefix("foo(uint32)(bool)v2")
        assert entity.input_id == base & 0x7FFFFFFF
        assert entity.output_id == base | 0x80000000
        assert entity.explicit_id is False

    def test_build_function_explicit(self):
        entity = build_function("foo", [], [], explicit_id=0xDEADBEEF)
        assert entity.input_id == entity.output_id == 0xDEADBEEF
        assert entity.explicit_id is True

    def test_build_event(self):
        inputs = make_params([Address()])
        event = build_event("Transfer", inputs)
        assert event.id == sha_prefix("Transfer(address)v2") & 0x7FFFFFFF
        assert event.id < 0x80000000

    def test_build_event_explicit(self):
        event = build_event("Transfer", [], explicit_id=0x80000001)
        assert event.id == 0x80000001
        assert event.explicit_id is True

    def test_format_id(self):
        assert format_id(0x1a2b) == "0x00001a2b"
        assert format_id(0xFFFFFFFF) == "0xffffffff"


class TestIdLiterals:
    """Tests for explicit id literals in documents."""

    @pytest.mark.parametrize("value,expected", [
        (0, 0),
        (0xFFFFFFFF, 0xFFFFFFFF),
        ("1234", 1234),
        ("0x1a2B", 0x1a2b),
        ("0X10", 16),
        ("#ff", 255),
        (" 0x10 ", 16),
    ])
    def test_valid(self, value, expected):
        assert parse_id_literal(value) == expected

    @pytest.mark.parametrize("value", [
        True, -1, 0x100000000, "", "0x", "#", "12ab", "0xZZ", "0x100000000", 1.5, None,
    ])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_id_literal(value)
