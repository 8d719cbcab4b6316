"""
Canonical cross-type term ordering.

The ordering follows the runtime's standard term order:

    number < atom < reference < port < pid < tuple < map < list < binary < fun

It is only used to sort map keys for deterministic encoding, so it must be
total and stable: two different keys never produce the same sort key.
"""

from __future__ import annotations

from typing import Any

from fabric_doctor.codec.terms import (
    Atom,
    BigInteger,
    Binary,
    BitBinary,
    ByteList,
    ExternalFun,
    Float,
    ImproperList,
    Integer,
    List,
    Map,
    NewFun,
    OldFun,
    Pid,
    Port,
    Reference,
    Term,
    Tuple,
)

NUMBER_RANK = 1
ATOM_RANK = 2
REFERENCE_RANK = 3
PORT_RANK = 4
PID_RANK = 5
TUPLE_RANK = 6
MAP_RANK = 7
LIST_RANK = 8
BINARY_RANK = 9
FUN_RANK = 10

# Tie-breakers for equal numeric values: integers before floats
_NUMBER_KIND = {Integer: 0, BigInteger: 1, Float: 2}
_BINARY_KIND = {Binary: 0, BitBinary: 1, ByteList: 2}


def type_rank(term: Term) -> int:
    """Return the position of ``term``'s type in the canonical order."""
    if isinstance(term, (Integer, BigInteger, Float)):
        return NUMBER_RANK
    if isinstance(term, Atom):
        return ATOM_RANK
    if isinstance(term, Reference):
        return REFERENCE_RANK
    if isinstance(term, Port):
        return PORT_RANK
    if isinstance(term, Pid):
        return PID_RANK
    if isinstance(term, Tuple):
        return TUPLE_RANK
    if isinstance(term, Map):
        return MAP_RANK
    if isinstance(term, (List, ImproperList)):
        return LIST_RANK
    if isinstance(term, (Binary, BitBinary, ByteList)):
        return BINARY_RANK
    if isinstance(term, (ExternalFun, OldFun, NewFun)):
        return FUN_RANK
    raise TypeError(f"Not a term: {term!r}")


def canonical_key(term: Term) -> tuple[Any, ...]:
    """
    Build a sort key for ``term``.

    Keys of different terms with the same type rank always have the same
    shape, so Python's tuple comparison never has to compare unrelated types.
    """
    rank = type_rank(term)

    if rank == NUMBER_RANK:
        return (rank, term.value, _NUMBER_KIND[type(term)])
    if rank == ATOM_RANK:
        return (rank, term.name)
    if isinstance(term, Reference):
        return (rank, term.node.name, term.ids, term.creation)
    if isinstance(term, Port):
        return (rank, term.node.name, term.id, term.creation)
    if isinstance(term, Pid):
        return (rank, term.node.name, term.id, term.serial, term.creation)
    if isinstance(term, Tuple):
        return (
            rank,
            len(term.elements),
            tuple(canonical_key(e) for e in term.elements),
        )
    if isinstance(term, Map):
        pairs = sort_pairs(term.pairs)
        return (
            rank,
            len(pairs),
            tuple(canonical_key(k) for k, _ in pairs),
            tuple(canonical_key(v) for _, v in pairs),
        )
    if isinstance(term, List):
        return (rank, tuple(canonical_key(e) for e in term.elements), ())
    if isinstance(term, ImproperList):
        return (
            rank,
            tuple(canonical_key(e) for e in term.elements),
            canonical_key(term.tail),
        )
    if rank == BINARY_RANK:
        tail_bits = term.tail_bits if isinstance(term, BitBinary) else 8
        return (rank, term.data, tail_bits, _BINARY_KIND[type(term)])

    # funs
    if isinstance(term, ExternalFun):
        return (rank, 0, term.module.name, term.function.name, term.arity, b"")
    if isinstance(term, OldFun):
        return (rank, 1, term.module.name, term.index, term.uniq, b"")
    return (rank, 2, term.module.name, term.index, term.old_uniq, term.uniq)


def compare_terms(a: Term, b: Term) -> int:
    """Return -1, 0 or 1 as ``a`` sorts before, equal to, or after ``b``."""
    ka = canonical_key(a)
    kb = canonical_key(b)
    return (ka > kb) - (ka < kb)


def sort_pairs(pairs):
    """Sort map pairs by canonical order of their keys."""
    return sorted(pairs, key=lambda pair: canonical_key(pair[0]))
