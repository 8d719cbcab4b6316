"""Tests for canonical term ordering."""

import pytest

from fabric_doctor.codec import (
    NIL,
    Atom,
    BigInteger,
    Binary,
    ByteList,
    ExternalFun,
    Float,
    Integer,
    List,
    Map,
    Pid,
    Port,
    Reference,
    Tuple,
    compare_terms,
    sort_pairs,
)
from fabric_doctor.codec.ordering import type_rank

NODE = Atom("n")


class TestCompareTerms:
    def test_type_order(self):
        ordered = [
            Integer(10),
            Atom("a"),
            Reference(NODE, (1,), 0),
            Port(NODE, 1, 0),
            Pid(NODE, 1, 0, 0),
            Tuple(()),
            Map(),
            NIL,
            Binary(b""),
            ExternalFun(Atom("m"), Atom("f"), 0),
        ]
        for lower, higher in zip(ordered, ordered[1:]):
            assert compare_terms(lower, higher) == -1
            assert compare_terms(higher, lower) == 1

    def test_numbers_compare_by_value_across_kinds(self):
        assert compare_terms(Float(0.5), Integer(1)) == -1
        assert compare_terms(BigInteger(2**40), Integer(5)) == 1
        assert compare_terms(Integer(-3), Float(-2.5)) == -1

    def test_equal_numbers_order_integer_before_float(self):
        assert compare_terms(Integer(1), Float(1.0)) == -1
        assert compare_terms(Integer(1), BigInteger(1)) == -1

    def test_binaries_compare_bytewise(self):
        assert compare_terms(Binary(b"apple"), Binary(b"banana")) == -1
        assert compare_terms(Binary(b"ab"), Binary(b"abc")) == -1

    def test_byte_list_shares_binary_rank(self):
        assert type_rank(ByteList(b"x")) == type_rank(Binary(b"x"))

    def test_tuples_compare_by_size_first(self):
        small = Tuple((Integer(9),))
        large = Tuple((Integer(1), Integer(1)))
        assert compare_terms(small, large) == -1

    def test_identical_terms_are_equal(self):
        assert compare_terms(Atom("a"), Atom("a")) == 0
        assert compare_terms(List((Integer(1),)), List((Integer(1),))) == 0

    def test_not_a_term(self):
        with pytest.raises(TypeError):
            type_rank("x")


class TestSortPairs:
    def test_sorts_by_key_only(self):
        pairs = [
            (Atom("zebra"), Integer(1)),
            (Atom("apple"), Integer(3)),
            (Atom("banana"), Integer(2)),
        ]
        assert [k.name for k, _ in sort_pairs(pairs)] == ["apple", "banana", "zebra"]
